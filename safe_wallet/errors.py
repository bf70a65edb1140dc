"""
Exceptions raised by the local chain and the wallet contracts.

Hierarchy
---------
SafeError (base)
 ├─ Revert              : raised by contract code to abort the current frame
 ├─ OutOfGas            : raised by the gas meter, consumes the frame's gas
 └─ TransactionReverted : a top-level transaction or call failed
     ├─ ValidationError     : malformed input (blob length, operation kind, setup)
     ├─ AuthorizationError  : signatures, owners, modules or caller checks
     ├─ PolicyError         : gas policy (GS010, GS013)
     └─ FatalTransferError  : refund payment failed (GS011, GS012)

``Revert`` and ``OutOfGas`` never leave the chain: frames turn them into a
failure flag plus return data. Only ``TransactionReverted`` reaches callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError

ERROR_SELECTOR = bytes.fromhex("08c379a0")

REVERT_CODES = {
    "GS000": "Could not finish initialization",
    "GS001": "Threshold needs to be defined",
    "GS002": "A call to set up modules couldn't be executed because the destination account was not a contract",
    "GS010": "Not enough gas to execute Safe transaction",
    "GS011": "Could not pay gas costs with ether",
    "GS012": "Could not pay gas costs with token",
    "GS013": "Safe transaction failed when gasPrice and safeTxGas were 0",
    "GS014": "Reentrant call into the transaction dispatcher",
    "GS015": "Unknown operation",
    "GS020": "Signatures data too short",
    "GS021": "Invalid contract signature location: inside static part",
    "GS022": "Invalid contract signature location: length not present",
    "GS023": "Invalid contract signature location: data not complete",
    "GS024": "Invalid contract signature provided",
    "GS025": "Hash has not been approved",
    "GS026": "Invalid owner provided",
    "GS030": "Only owners can approve a hash",
    "GS031": "Method can only be called from this contract",
    "GS100": "Modules have already been initialized",
    "GS101": "Invalid module address provided",
    "GS102": "Module has already been added",
    "GS103": "Module is not enabled",
    "GS104": "Method can only be called from an enabled module",
    "GS200": "Owners have already been setup",
    "GS201": "Threshold cannot exceed owner count",
    "GS202": "Threshold needs to be greater than 0",
    "GS203": "Invalid owner address provided",
    "GS204": "Address is already an owner",
    "GS205": "Address is not an owner",
    "GS400": "Fallback handler cannot be the Safe itself",
}


@dataclass
class SafeError(Exception):
    """
    Base error.

    Attributes:
        message: Human-readable explanation.
        code:    Stable machine code (a GSxxx revert code where one applies).
        data:    Optional JSON-safe details.
    """

    message: str = "safe error"
    code: str = "SAFE_ERROR"
    data: Optional[Dict[str, Any]] = field(default=None)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out


class Revert(SafeError):
    """
    Contract-triggered revert. ``return_data`` is what the failing frame
    hands back to its caller: the ``Error(string)`` encoding of ``reason``,
    or raw bytes bubbled up from a nested call.
    """

    def __init__(self, reason: Optional[str] = None, *, return_data: Optional[bytes] = None):
        if return_data is None:
            return_data = encode_revert_reason(reason) if reason is not None else b""
        if reason is None:
            reason = decode_revert_reason(return_data)
        super().__init__(message=reason or "reverted", code=reason or "REVERT")
        self.reason = reason
        self.return_data = bytes(return_data)


class OutOfGas(SafeError):
    def __init__(self, message: str = "out of gas"):
        super().__init__(message=message, code="OUT_OF_GAS")


class TransactionReverted(SafeError):
    """
    A transaction or call sent to the chain failed.

    ``revert_msg`` is the decoded ``Error(string)`` reason (None for bare
    reverts), ``return_data`` the raw bytes and ``receipt`` the mined receipt
    when the failure came from a transaction.
    """

    def __init__(
        self,
        revert_msg: Optional[str] = None,
        *,
        return_data: bytes = b"",
        receipt: Any = None,
    ):
        message = REVERT_CODES.get(revert_msg or "", revert_msg or "execution reverted")
        data = {"return_data": "0x" + bytes(return_data).hex()} if return_data else None
        super().__init__(message=message, code=revert_msg or "REVERT", data=data)
        self.revert_msg = revert_msg
        self.return_data = bytes(return_data)
        self.receipt = receipt


class ValidationError(TransactionReverted):
    pass


class AuthorizationError(TransactionReverted):
    pass


class PolicyError(TransactionReverted):
    pass


class FatalTransferError(TransactionReverted):
    pass


_VALIDATION = {
    "GS000", "GS002", "GS015", "GS020", "GS021", "GS022", "GS023", "GS100", "GS101",
    "GS102", "GS103", "GS200", "GS201", "GS202", "GS203", "GS204", "GS205", "GS400",
}
_AUTHORIZATION = {"GS001", "GS014", "GS024", "GS025", "GS026", "GS030", "GS031", "GS104"}
_POLICY = {"GS010", "GS013"}
_FATAL_TRANSFER = {"GS011", "GS012"}


def classify(code: Optional[str]):
    """Exception class for a revert code."""
    if code in _VALIDATION:
        return ValidationError
    if code in _AUTHORIZATION:
        return AuthorizationError
    if code in _POLICY:
        return PolicyError
    if code in _FATAL_TRANSFER:
        return FatalTransferError
    return TransactionReverted


def error_from_return_data(return_data: bytes, receipt: Any = None) -> TransactionReverted:
    reason = decode_revert_reason(return_data)
    return classify(reason)(reason, return_data=return_data, receipt=receipt)


def encode_revert_reason(reason: str) -> bytes:
    return ERROR_SELECTOR + encode(["string"], [reason])


def decode_revert_reason(return_data: bytes) -> Optional[str]:
    if len(return_data) < 4 or bytes(return_data[:4]) != ERROR_SELECTOR:
        return None
    try:
        return decode(["string"], bytes(return_data[4:]))[0]
    except DecodingError:
        return None

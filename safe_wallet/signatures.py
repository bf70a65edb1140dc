"""
Safe signature blobs.

A blob is a run of 65-byte static parts ``r ‖ s ‖ v``, one per signer and in
ascending signer order, followed by the dynamic payloads of contract
signatures. The ``v`` byte selects the kind:

    v == 0   contract signature, r = validator address, s = payload offset
    v == 1   pre-approved hash, r = owner address
    v >  30  eth_sign over "\\x19Ethereum Signed Message:\\n32" ‖ digest, v - 4
    else     ECDSA signature over the digest

``decode_signatures`` turns a blob into the tagged variants below once; the
wallet then dispatches on the variant type. The ``sign_*`` and
``build_signature_bytes`` helpers produce blobs client side.
"""

from dataclasses import dataclass
from typing import List, Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError

from safe_wallet.utils import ZERO_ADDRESS, int_to_address, keccak, to_address, to_bytes

SIGNATURE_LENGTH = 65
CONTRACT_SIGNATURE_V = 0
APPROVED_HASH_V = 1
ETH_SIGN_V_OFFSET = 4

ETH_SIGNED_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n32"


@dataclass(frozen=True)
class EcdsaSignature:
    v: int
    r: int
    s: int


@dataclass(frozen=True)
class EthSignSignature:
    v: int
    r: int
    s: int


@dataclass(frozen=True)
class ApprovedHashSignature:
    owner: str


@dataclass(frozen=True)
class ContractSignature:
    owner: str
    payload: bytes


DecodedSignature = Union[EcdsaSignature, EthSignSignature, ApprovedHashSignature, ContractSignature]


class SignatureFormatError(ValueError):
    """A malformed blob. ``code`` is the revert code the wallet reports."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


def split_signature(blob: bytes, index: int):
    """(v, r, s) of the ``index``-th static part."""
    offset = index * SIGNATURE_LENGTH
    r = int.from_bytes(blob[offset : offset + 32], "big")
    s = int.from_bytes(blob[offset + 32 : offset + 64], "big")
    v = blob[offset + 64]
    return v, r, s


def decode_signatures(blob: bytes, required: int) -> List[DecodedSignature]:
    """
    Decode the first ``required`` signatures of ``blob``. Contract signature
    payload bounds are checked here, the kind-specific validation is left to
    the verifier.
    """
    blob = to_bytes(blob)
    if len(blob) < required * SIGNATURE_LENGTH:
        raise SignatureFormatError("GS020")
    decoded: List[DecodedSignature] = []
    for i in range(required):
        v, r, s = split_signature(blob, i)
        if v == CONTRACT_SIGNATURE_V:
            # s points at a length word followed by the payload
            if s < required * SIGNATURE_LENGTH:
                raise SignatureFormatError("GS021")
            if s + 32 > len(blob):
                raise SignatureFormatError("GS022")
            length = int.from_bytes(blob[s : s + 32], "big")
            if s + 32 + length > len(blob):
                raise SignatureFormatError("GS023")
            decoded.append(ContractSignature(int_to_address(r), blob[s + 32 : s + 32 + length]))
        elif v == APPROVED_HASH_V:
            decoded.append(ApprovedHashSignature(int_to_address(r)))
        elif v > 30:
            decoded.append(EthSignSignature(v - ETH_SIGN_V_OFFSET, r, s))
        else:
            decoded.append(EcdsaSignature(v, r, s))
    return decoded


def eth_signed_message_hash(digest: bytes) -> bytes:
    return keccak(ETH_SIGNED_MESSAGE_PREFIX + to_bytes(digest))


def recover_address(digest: bytes, v: int, r: int, s: int) -> str:
    """ecrecover: the zero address for anything unrecoverable."""
    if v not in (27, 28):
        return ZERO_ADDRESS
    try:
        signature = keys.Signature(vrs=(v - 27, r, s))
        return signature.recover_public_key_from_msg_hash(to_bytes(digest)).to_checksum_address()
    except (BadSignature, KeyValidationError):
        return ZERO_ADDRESS


# ------------------------------------------------------------------------------
# client side
# ------------------------------------------------------------------------------


@dataclass(frozen=True)
class SafeSignature:
    """One signer's contribution to a blob."""

    signer: str
    data: bytes
    dynamic: bool = False


def _private_key(account):
    if hasattr(account, "private_key"):
        return account.private_key
    return getattr(account, "key", account)


def sign_hash(account, digest: bytes) -> SafeSignature:
    """ECDSA over the raw digest."""
    signed = Account.unsafe_sign_hash(to_bytes(digest), _private_key(account))
    return SafeSignature(to_address(account), _pack(signed.r, signed.s, signed.v))


def eth_sign(account, digest: bytes) -> SafeSignature:
    """Personal-message signature over the digest, tagged with v + 4."""
    signed = Account.sign_message(encode_defunct(primitive=to_bytes(digest)), _private_key(account))
    return SafeSignature(to_address(account), _pack(signed.r, signed.s, signed.v + ETH_SIGN_V_OFFSET))


def sign_typed_data(account, typed_data: dict) -> SafeSignature:
    signed = Account.sign_typed_data(_private_key(account), full_message=typed_data)
    return SafeSignature(to_address(account), _pack(signed.r, signed.s, signed.v))


def approved_hash_signature(owner) -> SafeSignature:
    owner = to_address(owner)
    return SafeSignature(owner, _pack(int(owner, 16), 0, APPROVED_HASH_V))


def contract_signature(validator, payload: bytes = b"") -> SafeSignature:
    return SafeSignature(to_address(validator), to_bytes(payload), dynamic=True)


def _pack(r: int, s: int, v: int) -> bytes:
    return r.to_bytes(32, "big") + s.to_bytes(32, "big") + bytes([v])


def build_signature_bytes(signatures: List[SafeSignature]) -> bytes:
    """
    Sort by signer and lay out static parts first. Contract signatures get an
    offset in their ``s`` word pointing at ``length ‖ payload`` in the tail.
    """
    ordered = sorted(signatures, key=lambda sig: int(sig.signer, 16))
    static_length = len(ordered) * SIGNATURE_LENGTH
    static, tail = b"", b""
    for sig in ordered:
        if sig.dynamic:
            static += _pack(int(sig.signer, 16), static_length + len(tail), CONTRACT_SIGNATURE_V)
            tail += len(sig.data).to_bytes(32, "big") + sig.data
        else:
            static += sig.data
    return static + tail

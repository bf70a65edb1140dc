"""
Guardian based recovery of a wallet's owner set.

A wallet registers guardians and a guardian threshold with the module (by
calling it through ``execTransaction``). Guardians approve a new owner set
either one by one with ``confirmRecovery`` or in a batch of signatures with
``multiConfirmRecovery``. Once enough guardians agree, ``executeRecovery``
records the request and starts the recovery period. After it has passed,
anyone may ``finalizeRecovery`` to swap the owners through the module path.
The wallet's owners can ``cancelRecovery`` while the request is pending.
"""

import logging

from eth_abi import encode

from safe_wallet.abi import ContractCode, Event, encode_call, external
from safe_wallet.contracts.storage import (
    SENTINEL,
    AddressSet,
    StorageArray,
    mapping_slot,
    nested_mapping_slot,
)
from safe_wallet.signatures import SIGNATURE_LENGTH
from safe_wallet.transaction import Operation
from safe_wallet.utils import ZERO_ADDRESS, address_to_int, int_to_address, keccak

logger = logging.getLogger(__name__)

NAME = "SocialRecoveryModule"
MODULE_VERSION = "0.0.1"

DOMAIN_TYPEHASH = keccak(b"EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)")
EXECUTE_RECOVERY_TYPEHASH = keccak(
    b"ExecuteRecovery(address wallet,address[] newOwners,uint256 newThreshold,uint256 nonce)"
)

GUARDIANS_SLOT = 0
THRESHOLD_SLOT = 1
NONCE_SLOT = 2
RECOVERY_REQUESTS_SLOT = 3
CONFIRMED_HASHES_SLOT = 4
RECOVERY_PERIOD_SLOT = 5

# bytes4(keccak("isValidSignature(bytes32,bytes)"))
EIP1271_MAGIC_VALUE = bytes.fromhex("1626ba7e")


class SocialRecoveryModule(ContractCode):
    CONSTRUCTOR = ("uint256",)
    EVENTS = (
        Event("GuardianAdded", "address indexed wallet", "address indexed guardian"),
        Event("GuardianRevoked", "address indexed wallet", "address indexed guardian"),
        Event("ChangedThreshold", "address indexed wallet", "uint256 threshold"),
        Event("RecoveryConfirmed", "address indexed wallet", "address indexed guardian", "bytes32 recoveryHash"),
        Event(
            "RecoveryExecuted",
            "address indexed wallet",
            "address[] newOwners",
            "uint256 newThreshold",
            "uint256 nonce",
            "uint256 executeAfter",
            "uint256 guardiansApprovalCount",
        ),
        Event("RecoveryFinalized", "address indexed wallet", "address[] newOwners", "uint256 newThreshold"),
        Event("RecoveryCanceled", "address indexed wallet", "uint256 nonce"),
    )

    def constructor(self, ctx, recovery_period):
        ctx.sstore(RECOVERY_PERIOD_SLOT, recovery_period)

    # ------------------------------------------------------------------ storage

    def _guardians(self, ctx, wallet) -> AddressSet:
        return AddressSet(ctx, mapping_slot(wallet, GUARDIANS_SLOT))

    def _request_slot(self, ctx, wallet) -> int:
        return mapping_slot(wallet, RECOVERY_REQUESTS_SLOT)

    def _new_owners(self, ctx, wallet) -> StorageArray:
        return StorageArray(ctx, self._request_slot(ctx, wallet) + 3)

    def _confirmed_slot(self, recovery_hash, guardian) -> int:
        return nested_mapping_slot(recovery_hash, guardian, CONFIRMED_HASHES_SLOT, "bytes32", "address")

    def _authorized(self, ctx, wallet):
        ctx.require(ctx.sender == wallet, "SM: unauthorized")
        enabled = ctx.call_function(wallet, "isModuleEnabled(address)", ctx.this, returns=("bool",), static=True)
        ctx.require(enabled, "SM: module not enabled")

    def _check_threshold(self, ctx, wallet, threshold):
        count = len(self._guardians(ctx, wallet))
        valid = threshold == 0 if count == 0 else 0 < threshold <= count
        ctx.require(valid, "SM: invalid threshold")

    def _set_threshold(self, ctx, wallet, threshold):
        self._check_threshold(ctx, wallet, threshold)
        ctx.sstore(mapping_slot(wallet, THRESHOLD_SLOT), threshold)
        ctx.emit("ChangedThreshold", wallet=wallet, threshold=threshold)

    # --------------------------------------------------------------- guardians

    @external("addGuardianWithThreshold(address,address,uint256)")
    def addGuardianWithThreshold(self, ctx, wallet, guardian, threshold):
        self._authorized(ctx, wallet)
        ctx.require(guardian not in (ZERO_ADDRESS, SENTINEL, wallet), "SM: invalid guardian")
        is_owner = ctx.call_function(wallet, "isOwner(address)", guardian, returns=("bool",), static=True)
        ctx.require(not is_owner, "SM: guardian cannot be an owner")
        ctx.require(self._guardians(ctx, wallet).add(guardian), "SM: duplicate guardian")
        ctx.emit("GuardianAdded", wallet=wallet, guardian=guardian)
        self._set_threshold(ctx, wallet, threshold)

    @external("revokeGuardianWithThreshold(address,address,uint256)")
    def revokeGuardianWithThreshold(self, ctx, wallet, guardian, threshold):
        self._authorized(ctx, wallet)
        ctx.require(self._guardians(ctx, wallet).remove(guardian), "SM: not a guardian")
        ctx.emit("GuardianRevoked", wallet=wallet, guardian=guardian)
        self._set_threshold(ctx, wallet, threshold)

    @external("changeThreshold(address,uint256)")
    def changeThreshold(self, ctx, wallet, threshold):
        self._authorized(ctx, wallet)
        self._set_threshold(ctx, wallet, threshold)

    # ---------------------------------------------------------------- recovery

    @external("getRecoveryHash(address,address[],uint256,uint256)", returns=("bytes32",), view=True)
    def getRecoveryHash(self, ctx, wallet, new_owners, new_threshold, nonce):
        separator = keccak(
            encode(
                ["bytes32", "bytes32", "bytes32", "uint256", "address"],
                [DOMAIN_TYPEHASH, keccak(NAME.encode()), keccak(MODULE_VERSION.encode()), ctx.chain_id, ctx.this],
            )
        )
        struct_hash = keccak(
            encode(
                ["bytes32", "address", "bytes32", "uint256", "uint256"],
                [
                    EXECUTE_RECOVERY_TYPEHASH,
                    wallet,
                    keccak(b"".join(encode(["address"], [owner]) for owner in new_owners)),
                    new_threshold,
                    nonce,
                ],
            )
        )
        return ctx.keccak(b"\x19\x01" + separator + struct_hash)

    def _check_new_owners(self, ctx, new_owners, new_threshold):
        ctx.require(len(new_owners) > 0, "SM: owners cannot be empty")
        ctx.require(0 < new_threshold <= len(new_owners), "SM: invalid new threshold")

    def _current_hash(self, ctx, wallet, new_owners, new_threshold):
        nonce = ctx.sload(mapping_slot(wallet, NONCE_SLOT))
        return self.getRecoveryHash(ctx, wallet, new_owners, new_threshold, nonce)

    def _confirm(self, ctx, wallet, guardian, recovery_hash):
        ctx.sstore(self._confirmed_slot(recovery_hash, guardian), 1)
        ctx.emit("RecoveryConfirmed", wallet=wallet, guardian=guardian, recoveryHash=recovery_hash)

    @external("confirmRecovery(address,address[],uint256,bool)")
    def confirmRecovery(self, ctx, wallet, new_owners, new_threshold, execute):
        ctx.require(ctx.sender in self._guardians(ctx, wallet), "SM: unauthorized")
        self._check_new_owners(ctx, new_owners, new_threshold)
        self._confirm(ctx, wallet, ctx.sender, self._current_hash(ctx, wallet, new_owners, new_threshold))
        if execute:
            self.executeRecovery(ctx, wallet, new_owners, new_threshold)

    @external("multiConfirmRecovery(address,address[],uint256,(address,bytes)[],bool)")
    def multiConfirmRecovery(self, ctx, wallet, new_owners, new_threshold, signatures, execute):
        """
        ``signatures`` is a list of ``(signer, signature)`` pairs sorted by
        signer. An empty signature stands for the caller's own approval.
        """
        ctx.require(len(signatures) > 0, "SM: empty signatures")
        self._check_new_owners(ctx, new_owners, new_threshold)
        recovery_hash = self._current_hash(ctx, wallet, new_owners, new_threshold)
        guardians = self._guardians(ctx, wallet)
        last_signer = 0
        for signer, signature in signatures:
            ctx.require(address_to_int(signer) > last_signer, "SM: duplicate signatures")
            last_signer = address_to_int(signer)
            ctx.require(signer in guardians, "SM: not a guardian")
            ctx.require(
                self._is_valid_guardian_signature(ctx, signer, recovery_hash, signature),
                "SM: invalid guardian signature",
            )
            self._confirm(ctx, wallet, signer, recovery_hash)
        if execute:
            self.executeRecovery(ctx, wallet, new_owners, new_threshold)

    def _is_valid_guardian_signature(self, ctx, signer, recovery_hash, signature):
        if len(signature) == 0:
            return signer == ctx.sender
        if ctx.is_contract(signer):
            success, output = ctx.staticcall(
                signer, encode_call("isValidSignature(bytes32,bytes)", recovery_hash, signature)
            )
            return success and len(output) >= 32 and output[:4] == EIP1271_MAGIC_VALUE
        if len(signature) != SIGNATURE_LENGTH:
            return False
        r = int.from_bytes(signature[:32], "big")
        s = int.from_bytes(signature[32:64], "big")
        return ctx.ecrecover(recovery_hash, signature[64], r, s) == signer

    @external("executeRecovery(address,address[],uint256)")
    def executeRecovery(self, ctx, wallet, new_owners, new_threshold):
        threshold = ctx.sload(mapping_slot(wallet, THRESHOLD_SLOT))
        ctx.require(threshold > 0, "SM: empty guardians")
        self._check_new_owners(ctx, new_owners, new_threshold)
        approvals = self.getRecoveryApprovals(ctx, wallet, new_owners, new_threshold)
        ctx.require(approvals >= threshold, "SM: confirmed signatures less than threshold")

        base = self._request_slot(ctx, wallet)
        if ctx.sload(base + 2) != 0:
            # a pending request is only replaced by a better supported one
            ctx.require(approvals > ctx.sload(base), "SM: not enough approvals for override")
            ctx.emit("RecoveryCanceled", wallet=wallet, nonce=ctx.sload(mapping_slot(wallet, NONCE_SLOT)) - 1)

        execute_after = ctx.timestamp + ctx.sload(RECOVERY_PERIOD_SLOT)
        ctx.sstore(base, approvals)
        ctx.sstore(base + 1, new_threshold)
        ctx.sstore(base + 2, execute_after)
        owners = self._new_owners(ctx, wallet)
        owners.clear()
        for owner in new_owners:
            owners.push(address_to_int(owner))

        nonce_slot = mapping_slot(wallet, NONCE_SLOT)
        nonce = ctx.sload(nonce_slot)
        ctx.sstore(nonce_slot, nonce + 1)
        logger.info("recovery of %s scheduled for %d with %d approvals", wallet, execute_after, approvals)
        ctx.emit(
            "RecoveryExecuted",
            wallet=wallet,
            newOwners=new_owners,
            newThreshold=new_threshold,
            nonce=nonce,
            executeAfter=execute_after,
            guardiansApprovalCount=approvals,
        )

    @external("finalizeRecovery(address)")
    def finalizeRecovery(self, ctx, wallet):
        base = self._request_slot(ctx, wallet)
        execute_after = ctx.sload(base + 2)
        ctx.require(execute_after > 0, "SM: no recovery request")
        ctx.require(ctx.timestamp >= execute_after, "SM: recovery period still pending")
        new_threshold = ctx.sload(base + 1)
        new_owners = [int_to_address(v) for v in self._new_owners(ctx, wallet).values()]
        self._clear_request(ctx, wallet)

        current = ctx.call_function(wallet, "getOwners()", returns=("address[]",), static=True)
        # add first so the wallet never runs out of owners
        for owner in new_owners:
            if owner not in current:
                self._exec_owner_change(ctx, wallet, "addOwnerWithThreshold(address,uint256)", owner, 1)
        for owner in current:
            if owner not in new_owners:
                self._exec_owner_change(ctx, wallet, "removeOwner(address,uint256)", owner, 1)
        self._exec_owner_change(ctx, wallet, "changeThreshold(uint256)", new_threshold)
        ctx.emit("RecoveryFinalized", wallet=wallet, newOwners=new_owners, newThreshold=new_threshold)

    def _exec_owner_change(self, ctx, wallet, signature, *args):
        success = ctx.call_function(
            wallet,
            "execTransactionFromModule(address,uint256,bytes,uint8)",
            wallet,
            0,
            encode_call(signature, *args),
            Operation.CALL,
            returns=("bool",),
        )
        ctx.require(success, "SM: owner change failed")

    @external("cancelRecovery(address)")
    def cancelRecovery(self, ctx, wallet):
        self._authorized(ctx, wallet)
        ctx.require(ctx.sload(self._request_slot(ctx, wallet) + 2) > 0, "SM: no recovery request")
        self._clear_request(ctx, wallet)
        ctx.emit("RecoveryCanceled", wallet=wallet, nonce=ctx.sload(mapping_slot(wallet, NONCE_SLOT)) - 1)

    def _clear_request(self, ctx, wallet):
        base = self._request_slot(ctx, wallet)
        for offset in range(3):
            ctx.sstore(base + offset, 0)
        self._new_owners(ctx, wallet).clear()

    # ------------------------------------------------------------------- views

    @external("getRecoveryRequest(address)", returns=("uint256", "uint256", "uint256", "address[]"), view=True)
    def getRecoveryRequest(self, ctx, wallet):
        """Approval count, new threshold, earliest finalization time and new owners."""
        base = self._request_slot(ctx, wallet)
        owners = [int_to_address(v) for v in self._new_owners(ctx, wallet).values()]
        return ctx.sload(base), ctx.sload(base + 1), ctx.sload(base + 2), owners

    @external("getRecoveryApprovals(address,address[],uint256)", returns=("uint256",), view=True)
    def getRecoveryApprovals(self, ctx, wallet, new_owners, new_threshold):
        recovery_hash = self._current_hash(ctx, wallet, new_owners, new_threshold)
        return sum(
            1 for guardian in self._guardians(ctx, wallet).values()
            if ctx.sload(self._confirmed_slot(recovery_hash, guardian)) != 0
        )

    @external("hasGuardianApproved(address,address,address[],uint256)", returns=("bool",), view=True)
    def hasGuardianApproved(self, ctx, wallet, guardian, new_owners, new_threshold):
        recovery_hash = self._current_hash(ctx, wallet, new_owners, new_threshold)
        return ctx.sload(self._confirmed_slot(recovery_hash, guardian)) != 0

    @external("isGuardian(address,address)", returns=("bool",), view=True)
    def isGuardian(self, ctx, wallet, guardian):
        return guardian in self._guardians(ctx, wallet)

    @external("guardiansCount(address)", returns=("uint256",), view=True)
    def guardiansCount(self, ctx, wallet):
        return len(self._guardians(ctx, wallet))

    @external("getGuardians(address)", returns=("address[]",), view=True)
    def getGuardians(self, ctx, wallet):
        return self._guardians(ctx, wallet).values()

    @external("threshold(address)", returns=("uint256",), view=True)
    def threshold(self, ctx, wallet):
        return ctx.sload(mapping_slot(wallet, THRESHOLD_SLOT))

    @external("nonce(address)", returns=("uint256",), view=True)
    def nonce(self, ctx, wallet):
        return ctx.sload(mapping_slot(wallet, NONCE_SLOT))

    @external("recoveryPeriod()", returns=("uint256",), view=True)
    def recoveryPeriod(self, ctx):
        return ctx.sload(RECOVERY_PERIOD_SLOT)

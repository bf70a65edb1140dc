"""
The wallet singleton. Proxies delegatecall into it, so all state lives in
the proxy's storage.

``execTransaction`` is a small state machine whose phase is kept in transient
storage for the duration of the call:

    IDLE -> SIGNATURE_CHECKING -> NONCE_ADVANCE -> DISPATCHING -> ACCOUNTING -> IDLE

Entering while the phase is not IDLE fails with GS014. Any revert unwinds the
whole call including the nonce; a failing dispatched call does not revert,
it is reported through ``ExecutionFailure`` and a ``False`` return value.
"""

import logging
from enum import IntEnum

from safe_wallet.abi import ContractCode, Event, encode_call, external
from safe_wallet.contracts.fallback_manager import FallbackManager
from safe_wallet.contracts.module_manager import ModuleManager
from safe_wallet.contracts.owner_manager import OwnerManager
from safe_wallet.contracts.signature_verifier import SignatureVerifier
from safe_wallet.contracts.storage import (
    APPROVED_HASHES_SLOT,
    EXECUTION_PHASE_SLOT,
    NONCE_SLOT,
    SIGNED_MESSAGES_SLOT,
    THRESHOLD_SLOT,
    mapping_slot,
    nested_mapping_slot,
)
from safe_wallet.transaction import (
    Operation,
    domain_separator,
    encode_transaction_data,
    safe_tx_struct_hash,
)
from safe_wallet.utils import ZERO_ADDRESS

logger = logging.getLogger(__name__)

VERSION = "1.3.0"

SAFE_TX_ARGS = "address,uint256,bytes,uint8,uint256,uint256,uint256,address,address"


class ExecutionPhase(IntEnum):
    IDLE = 0
    SIGNATURE_CHECKING = 1
    NONCE_ADVANCE = 2
    DISPATCHING = 3
    ACCOUNTING = 4


class Safe(ModuleManager, OwnerManager, FallbackManager, SignatureVerifier, ContractCode):
    EVENTS = (
        Event(
            "SafeSetup",
            "address indexed initiator",
            "address[] owners",
            "uint256 threshold",
            "address initializer",
            "address fallbackHandler",
        ),
        Event("ApproveHash", "bytes32 indexed approvedHash", "address indexed owner"),
        Event("SignMsg", "bytes32 indexed msgHash"),
        Event("SignaturesChecked", "bytes32 indexed txHash", "uint256 nonce", "address[] signers"),
        Event("ExecutionFailure", "bytes32 txHash", "uint256 payment"),
        Event("ExecutionSuccess", "bytes32 txHash", "uint256 payment"),
        Event("SafeReceived", "address indexed sender", "uint256 value"),
    )

    def constructor(self, ctx):
        # the singleton itself can never be set up
        ctx.sstore(THRESHOLD_SLOT, 1)

    def receive(self, ctx):
        ctx.emit("SafeReceived", sender=ctx.sender, value=ctx.value)
        return b""

    @external("setup(address[],uint256,address,bytes,address,address,uint256,address)")
    def setup(self, ctx, owners, threshold, to, data, fallback_handler, payment_token, payment, payment_receiver):
        self._setup_owners(ctx, owners, threshold)
        if fallback_handler != ZERO_ADDRESS:
            self._internal_set_fallback_handler(ctx, fallback_handler)
        self._setup_modules(ctx, to, data)
        if payment > 0:
            self._handle_payment(ctx, payment, 0, 1, payment_token, payment_receiver)
        ctx.emit(
            "SafeSetup",
            initiator=ctx.sender,
            owners=owners,
            threshold=threshold,
            initializer=to,
            fallbackHandler=fallback_handler,
        )

    # ------------------------------------------------------------------ dispatch

    @external(f"execTransaction({SAFE_TX_ARGS},bytes)", returns=("bool",), payable=True)
    def execTransaction(
        self, ctx, to, value, data, operation, safe_tx_gas, base_gas, gas_price, gas_token, refund_receiver, signatures
    ):
        ctx.require(operation in (Operation.CALL, Operation.DELEGATE_CALL), "GS015")
        ctx.require(ctx.tload(EXECUTION_PHASE_SLOT) == ExecutionPhase.IDLE, "GS014")
        try:
            return self._run_transaction(
                ctx, to, value, data, operation, safe_tx_gas, base_gas, gas_price, gas_token, refund_receiver, signatures
            )
        finally:
            ctx.tstore(EXECUTION_PHASE_SLOT, ExecutionPhase.IDLE, metered=False)

    def _enter(self, ctx, phase):
        logger.debug("safe %s: %s", ctx.this, phase.name)
        ctx.tstore(EXECUTION_PHASE_SLOT, phase)

    def _run_transaction(
        self, ctx, to, value, data, operation, safe_tx_gas, base_gas, gas_price, gas_token, refund_receiver, signatures
    ):
        self._enter(ctx, ExecutionPhase.SIGNATURE_CHECKING)
        nonce = ctx.sload(NONCE_SLOT)
        tx_hash_data = self.encodeTransactionData(
            ctx, to, value, data, operation, safe_tx_gas, base_gas, gas_price, gas_token, refund_receiver, nonce
        )
        tx_hash = ctx.keccak(tx_hash_data)
        signers = self._check_signatures(ctx, tx_hash, signatures)
        ctx.emit("SignaturesChecked", txHash=tx_hash, nonce=nonce, signers=signers)

        self._enter(ctx, ExecutionPhase.NONCE_ADVANCE)
        ctx.sstore(NONCE_SLOT, nonce + 1)

        self._enter(ctx, ExecutionPhase.DISPATCHING)
        # leave enough gas for the call itself and for the event and payment afterwards
        ctx.require(ctx.gas_left() >= max(safe_tx_gas * 64 // 63, safe_tx_gas + 2500) + 500, "GS010")
        gas_before = ctx.gas_left()
        dispatch_gas = safe_tx_gas if gas_price > 0 else max(ctx.gas_left() - 2500, 0)
        success = self._execute(ctx, to, value, data, operation, dispatch_gas)
        gas_used = gas_before - ctx.gas_left()
        ctx.require(success or safe_tx_gas != 0 or gas_price != 0, "GS013")

        self._enter(ctx, ExecutionPhase.ACCOUNTING)
        payment = 0
        if gas_price > 0:
            payment = self._handle_payment(ctx, gas_used, base_gas, gas_price, gas_token, refund_receiver)
        if success:
            ctx.emit("ExecutionSuccess", txHash=tx_hash, payment=payment)
        else:
            ctx.emit("ExecutionFailure", txHash=tx_hash, payment=payment)
        return success

    def _handle_payment(self, ctx, gas_used, base_gas, gas_price, gas_token, refund_receiver):
        receiver = ctx.origin if refund_receiver == ZERO_ADDRESS else refund_receiver
        if gas_token == ZERO_ADDRESS:
            # never refund above the price the relayer actually paid
            payment = (gas_used + base_gas) * min(gas_price, ctx.gas_price)
            ctx.require(ctx.send(receiver, payment), "GS011")
        else:
            payment = (gas_used + base_gas) * gas_price
            ctx.require(self._transfer_token(ctx, gas_token, receiver, payment), "GS012")
        return payment

    def _transfer_token(self, ctx, token, receiver, amount):
        if not ctx.is_contract(token):
            return False
        success, output = ctx.call(
            token,
            encode_call("transfer(address,uint256)", receiver, amount),
            gas=max(ctx.gas_left() - 10_000, 0),
        )
        if not success:
            return False
        # tokens that return nothing are treated as successful
        return len(output) == 0 or (len(output) >= 32 and int.from_bytes(output[:32], "big") != 0)

    @external("approveHash(bytes32)")
    def approveHash(self, ctx, hash_to_approve):
        ctx.require(ctx.sender in self._owners(ctx), "GS030")
        ctx.sstore(nested_mapping_slot(ctx.sender, hash_to_approve, APPROVED_HASHES_SLOT), 1)
        ctx.emit("ApproveHash", approvedHash=hash_to_approve, owner=ctx.sender)

    # --------------------------------------------------------------------- views

    @external("VERSION()", returns=("string",), view=True)
    def version(self, ctx):
        return VERSION

    @external("nonce()", returns=("uint256",), view=True)
    def nonce(self, ctx):
        return ctx.sload(NONCE_SLOT)

    @external("getChainId()", returns=("uint256",), view=True)
    def getChainId(self, ctx):
        return ctx.chain_id

    @external("domainSeparator()", returns=("bytes32",), view=True)
    def domainSeparator(self, ctx):
        return domain_separator(ctx.chain_id, ctx.this)

    @external("approvedHashes(address,bytes32)", returns=("uint256",), view=True)
    def approvedHashes(self, ctx, owner, data_hash):
        return ctx.sload(nested_mapping_slot(owner, data_hash, APPROVED_HASHES_SLOT))

    @external("signedMessages(bytes32)", returns=("uint256",), view=True)
    def signedMessages(self, ctx, message_hash):
        return ctx.sload(mapping_slot(message_hash, SIGNED_MESSAGES_SLOT, "bytes32"))

    @external(f"encodeTransactionData({SAFE_TX_ARGS},uint256)", returns=("bytes",), view=True)
    def encodeTransactionData(
        self, ctx, to, value, data, operation, safe_tx_gas, base_gas, gas_price, gas_token, refund_receiver, nonce
    ):
        struct_hash = safe_tx_struct_hash(
            to, value, data, operation, safe_tx_gas, base_gas, gas_price, gas_token, refund_receiver, nonce
        )
        return encode_transaction_data(domain_separator(ctx.chain_id, ctx.this), struct_hash)

    @external(f"getTransactionHash({SAFE_TX_ARGS},uint256)", returns=("bytes32",), view=True)
    def getTransactionHash(
        self, ctx, to, value, data, operation, safe_tx_gas, base_gas, gas_price, gas_token, refund_receiver, nonce
    ):
        return ctx.keccak(
            self.encodeTransactionData(
                ctx, to, value, data, operation, safe_tx_gas, base_gas, gas_price, gas_token, refund_receiver, nonce
            )
        )

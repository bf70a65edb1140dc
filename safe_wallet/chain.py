"""
In-memory chain the wallet contracts execute on.

``Chain`` owns the world state and runs call frames: CALL, DELEGATECALL,
STATICCALL, CREATE and CREATE2, each with its own gas meter and journal
checkpoint. Contract code sees a ``CallContext``. Failing frames roll back to
their checkpoint and hand return data to their caller; a failing top-level
transaction raises a ``TransactionReverted`` subclass picked from the revert
code.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, List, NamedTuple, Optional, Tuple

from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes

from safe_wallet.abi import ContractCode, decode_values, encode_call, encode_values, unwrap
from safe_wallet.accounts import Accounts
from safe_wallet.config import ChainConfig, get_config
from safe_wallet.contract import Contract, TransactionReceipt
from safe_wallet.errors import OutOfGas, Revert, TransactionReverted, error_from_return_data
from safe_wallet.gas import GasMeter, call_gas_cap, intrinsic_gas, keccak_cost, log_cost
from safe_wallet.signatures import recover_address
from safe_wallet.state import Log, WorldState
from safe_wallet.utils import (
    ZERO_ADDRESS,
    compute_create2_address,
    compute_create_address,
    keccak,
    to_address,
    to_bytes,
    to_word,
)

logger = logging.getLogger(__name__)

CALL = "call"
DELEGATECALL = "delegatecall"
STATICCALL = "staticcall"
CREATE = "create"


@dataclass(frozen=True)
class Message:
    kind: str
    sender: str
    this: str
    code_address: str
    value: int
    data: bytes
    gas: int
    depth: int
    static: bool
    origin: str
    gas_price: int


class FrameResult(NamedTuple):
    success: bool
    output: bytes
    gas_left: int
    error: Optional[str] = None


class CallContext:
    """What running contract code can see and do."""

    def __init__(self, chain: "Chain", msg: Message, code: ContractCode) -> None:
        self.chain = chain
        self.msg = msg
        self.code = code
        self.meter = GasMeter(msg.gas)
        self._schedule = chain.config.gas

    # ------------------------------ environment -----------------------------

    @property
    def this(self) -> str:
        return self.msg.this

    @property
    def sender(self) -> str:
        return self.msg.sender

    @property
    def value(self) -> int:
        return self.msg.value

    @property
    def data(self) -> bytes:
        return self.msg.data

    @property
    def origin(self) -> str:
        return self.msg.origin

    @property
    def gas_price(self) -> int:
        return self.msg.gas_price

    @property
    def chain_id(self) -> int:
        return self.chain.config.chain_id

    @property
    def timestamp(self) -> int:
        return self.chain.time()

    @property
    def block_number(self) -> int:
        return self.chain.block_number

    def gas_left(self) -> int:
        return self.meter.remaining

    def use_gas(self, amount: int, reason: Optional[str] = None) -> None:
        self.meter.debit(amount, reason=reason)

    def revert(self, reason: Optional[str] = None):
        raise Revert(reason)

    def revert_with(self, return_data: bytes):
        """Revert with raw return data, e.g. bubbled up from a failed call."""
        raise Revert(return_data=return_data)

    def require(self, condition: Any, reason: Optional[str] = None) -> None:
        if not condition:
            raise Revert(reason)

    def _writable(self) -> None:
        if self.msg.static:
            raise Revert("state change in static call")

    # -------------------------------- storage -------------------------------

    def sload(self, slot: int) -> int:
        self.use_gas(self._schedule.sload, "sload")
        return self.chain.state.sload(self.this, slot)

    def sstore(self, slot: int, value: int) -> None:
        self._writable()
        value %= 2**256
        current = self.chain.state.sload(self.this, slot)
        fresh = current == 0 and value != 0
        self.use_gas(self._schedule.sstore_set if fresh else self._schedule.sstore_reset, "sstore")
        self.chain.state.sstore(self.this, slot, value)

    def tload(self, slot: int) -> int:
        self.use_gas(self._schedule.transient, "tload")
        return self.chain.state.tload(self.this, slot)

    def tstore(self, slot: int, value: int, metered: bool = True) -> None:
        self._writable()
        if metered:
            self.use_gas(self._schedule.transient, "tstore")
        self.chain.state.tstore(self.this, slot, value % 2**256)

    def balance(self, address=None) -> int:
        self.use_gas(self._schedule.balance, "balance")
        return self.chain.state.get_balance(to_address(address) if address else self.this)

    def code_at(self, address):
        return self.chain.state.get_code(to_address(address))

    def is_contract(self, address) -> bool:
        return self.code_at(address) is not None

    # ------------------------------ primitives ------------------------------

    def keccak(self, data: bytes) -> bytes:
        self.use_gas(keccak_cost(len(data), self._schedule), "keccak")
        return keccak(data)

    def ecrecover(self, digest: bytes, v: int, r: int, s: int) -> str:
        self.use_gas(self._schedule.ecrecover, "ecrecover")
        return recover_address(digest, v, r, s)

    def emit(self, name: str, **args) -> None:
        self._writable()
        event = self.code.event(name)
        topics, data = event.encode(args)
        self.use_gas(log_cost(len(topics), len(data), self._schedule), "log")
        self.chain.state.add_log(Log(self.this, name, event.decode(topics, data), topics, data))

    # --------------------------------- calls --------------------------------

    def call(self, to, data: bytes = b"", value: int = 0, gas: Optional[int] = None) -> Tuple[bool, bytes]:
        to = to_address(to)
        return self._message_call(CALL, self.this, to, to, value, data, gas)

    def delegatecall(self, to, data: bytes = b"", gas: Optional[int] = None) -> Tuple[bool, bytes]:
        return self._message_call(
            DELEGATECALL, self.sender, self.this, to_address(to), self.value, data, gas
        )

    def staticcall(self, to, data: bytes = b"", gas: Optional[int] = None) -> Tuple[bool, bytes]:
        to = to_address(to)
        return self._message_call(STATICCALL, self.this, to, to, 0, data, gas)

    def send(self, to, value: int) -> bool:
        """Value transfer with only the stipend forwarded."""
        success, _ = self.call(to, b"", value, gas=0)
        return success

    def _message_call(self, kind, sender, this, code_address, value, data, gas) -> Tuple[bool, bytes]:
        schedule = self._schedule
        transfers = kind == CALL and value > 0
        if transfers:
            self._writable()
        self.use_gas(schedule.call + (schedule.call_value if transfers else 0), kind)
        forwarded = call_gas_cap(self.meter.remaining)
        if gas is not None:
            forwarded = min(max(gas, 0), forwarded)
        self.meter.debit(forwarded)
        msg = Message(
            kind=kind,
            sender=sender,
            this=this,
            code_address=code_address,
            value=value,
            data=to_bytes(data),
            gas=forwarded + (schedule.call_stipend if transfers else 0),
            depth=self.msg.depth + 1,
            static=self.msg.static or kind == STATICCALL,
            origin=self.origin,
            gas_price=self.gas_price,
        )
        result = self.chain._run_frame(msg)
        self.meter.return_gas(result.gas_left)
        return result.success, result.output

    def call_function(self, to, signature: str, *args, returns=(), value: int = 0, static: bool = False):
        """
        ABI call that bubbles the callee's revert, like a high-level call in
        Solidity.
        """
        if not self.is_contract(to):
            self.revert("function call to a non-contract account")
        data = encode_call(signature, *args)
        if static:
            success, output = self.staticcall(to, data)
        else:
            success, output = self.call(to, data, value)
        if not success:
            raise Revert(return_data=output)
        try:
            return unwrap(decode_values(returns, output), returns)
        except DecodingError:
            self.revert()

    # -------------------------------- create --------------------------------

    def create(self, code_cls, args: bytes = b"", value: int = 0) -> str:
        """CREATE that bubbles a failing constructor's revert."""
        address, output = self._create(code_cls, args, value, None)
        if address is None:
            raise Revert(return_data=output)
        return address

    def create2(self, code_cls, salt: bytes, args: bytes = b"", value: int = 0) -> str:
        """CREATE2; the zero address when deployment fails."""
        address, _ = self._create(code_cls, args, value, to_bytes(salt))
        return address or ZERO_ADDRESS

    def _create(self, code_cls, args, value, salt):
        self._writable()
        self.use_gas(self._schedule.create, "create")
        forwarded = call_gas_cap(self.meter.remaining)
        self.meter.debit(forwarded)
        address, output, gas_left = self.chain._create(
            self.this, code_cls, to_bytes(args), value, forwarded, self.msg.depth + 1,
            salt, self.origin, self.gas_price,
        )
        self.meter.return_gas(gas_left)
        return address, output


class Chain:
    """
    A single-node development chain. Every transaction mines one block.
    Senders are not charged for gas; ``gas_price`` only reaches contracts as
    ``tx.gasprice``.
    """

    def __init__(self, config: Optional[ChainConfig] = None) -> None:
        self.config = config or get_config()
        self.state = WorldState()
        self.block_number = 0
        self._genesis_time = int(time.time())
        self._time_offset = 0
        self._snapshots: List[tuple] = []
        self._created: List[str] = []
        self.accounts = Accounts(self, self.config.dev_accounts, self.config.dev_balance)

    def __repr__(self) -> str:
        return f"<Chain id={self.config.chain_id} block={self.block_number}>"

    # --------------------------------- time ---------------------------------

    def time(self) -> int:
        return self._genesis_time + self._time_offset

    def sleep(self, seconds: int) -> None:
        self._time_offset += int(seconds)

    def mine(self, blocks: int = 1) -> int:
        self.block_number += blocks
        return self.block_number

    # ------------------------------- snapshots ------------------------------

    def snapshot(self) -> None:
        self._snapshots.append((self.state.copy(), self.block_number, self._time_offset))

    def revert(self) -> None:
        if not self._snapshots:
            raise ValueError("No snapshot to revert to")
        self.state, self.block_number, self._time_offset = self._snapshots.pop()

    # --------------------------------- reads --------------------------------

    def balance(self, address) -> int:
        return self.state.get_balance(to_address(address))

    def get_code(self, address):
        return self.state.get_code(to_address(address))

    def get_nonce(self, address) -> int:
        return self.state.get_nonce(to_address(address))

    def get_storage_at(self, address, slot: int) -> HexBytes:
        return HexBytes(to_word(self.state.sload(to_address(address), slot)))

    def set_balance(self, address, value: int) -> None:
        self.state.set_balance(to_address(address), value)
        self.state.commit()

    def at(self, address, code_cls=None) -> Contract:
        """Handle for a deployed contract, optionally viewed through another ABI."""
        address = to_address(address)
        code = self.state.get_code(address)
        if code_cls is None:
            if code is None:
                raise ValueError(f"No contract deployed at {address}")
            code_cls = type(code)
        return Contract(self, address, code_cls)

    # ------------------------------ transactions ----------------------------

    def deploy(self, code_cls, *args, tx: Optional[dict] = None) -> Contract:
        """Deploy ``code_cls`` from ``tx["from"]`` with CREATE."""
        tx = tx or {}
        encoded = encode_values(code_cls.CONSTRUCTOR, args)
        receipt = self.transact(
            tx["from"], None, encoded, tx.get("value", 0), tx.get("gas_limit"), tx.get("gas_price"),
            code_cls=code_cls,
        )
        contract = Contract(self, receipt.contract_address, code_cls)
        contract.tx = receipt
        return contract

    def transact(
        self,
        sender,
        to,
        data: bytes = b"",
        value: int = 0,
        gas_limit: Optional[int] = None,
        gas_price: Optional[int] = None,
        code_cls=None,
    ) -> TransactionReceipt:
        sender = to_address(sender)
        data = to_bytes(data)
        gas_limit = self.config.block_gas_limit if gas_limit is None else gas_limit
        gas_price = self.config.gas_price if gas_price is None else gas_price
        payload = code_cls.creation_code() + data if code_cls is not None else data
        intrinsic = intrinsic_gas(payload, self.config.gas)
        if code_cls is not None:
            intrinsic += self.config.gas.create
        if gas_limit < intrinsic:
            raise ValueError(f"Intrinsic gas too low: {gas_limit} < {intrinsic}")
        if gas_limit > self.config.block_gas_limit:
            raise ValueError("Gas limit exceeds block gas limit")

        nonce = self.state.get_nonce(sender)
        txid = HexBytes(keccak(bytes.fromhex(sender[2:]) + to_word(nonce)))
        logs_start = len(self.state.logs)
        self._created = []
        contract_address = None
        if code_cls is not None:
            address, output, gas_left = self._create(
                sender, code_cls, data, value, gas_limit - intrinsic, 0, None, sender, gas_price
            )
            result = FrameResult(address is not None, output, gas_left)
            contract_address = address
        else:
            to = to_address(to)
            self.state.increment_nonce(sender)
            result = self._run_frame(
                Message(CALL, sender, to, to, value, data, gas_limit - intrinsic, 0, False, sender, gas_price)
            )
        self.block_number += 1
        logs = self.state.logs_since(logs_start)
        new_contracts = [a for a in self._created if self.state.get_code(a) is not None]
        self.state.commit()

        receipt = TransactionReceipt(
            chain=self,
            txid=txid,
            sender=sender,
            receiver=None if code_cls is not None else to,
            value=value,
            input=data,
            gas_limit=gas_limit,
            gas_price=gas_price,
            gas_used=gas_limit - result.gas_left,
            status=1 if result.success else 0,
            output=result.output,
            logs=logs,
            block_number=self.block_number,
            contract_address=contract_address,
            new_contracts=new_contracts,
        )
        if not result.success:
            logger.debug("tx %s from %s reverted: %s", txid.hex(), sender, result.error or result.output.hex())
            if result.error == "out of gas":
                raise TransactionReverted("out of gas", receipt=receipt)
            raise error_from_return_data(result.output, receipt)
        logger.debug("tx %s from %s mined in block %d, gas used %d", txid.hex(), sender, self.block_number, receipt.gas_used)
        return receipt

    def call(self, sender, to, data: bytes = b"", value: int = 0, gas_limit: Optional[int] = None) -> bytes:
        """Run a message call against the current state and discard its effects."""
        sender = to_address(sender) if sender else ZERO_ADDRESS
        to = to_address(to)
        gas_limit = self.config.block_gas_limit if gas_limit is None else gas_limit
        checkpoint = self.state.checkpoint()
        try:
            result = self._run_frame(
                Message(CALL, sender, to, to, value, to_bytes(data), gas_limit, 0, False, sender, self.config.gas_price)
            )
        finally:
            self.state.revert_to(checkpoint)
        if not result.success:
            if result.error == "out of gas":
                raise TransactionReverted("out of gas")
            raise error_from_return_data(result.output)
        return result.output

    # -------------------------------- frames --------------------------------

    def _run_frame(self, msg: Message) -> FrameResult:
        state = self.state
        if msg.depth > self.config.max_call_depth:
            return FrameResult(False, b"", msg.gas, "call depth exceeded")
        checkpoint = state.checkpoint()
        if msg.kind == CALL and msg.value:
            if not state.transfer(msg.sender, msg.this, msg.value):
                return FrameResult(False, b"", msg.gas, "insufficient balance")
        code = state.get_code(msg.code_address)
        if code is None:
            return FrameResult(True, b"", msg.gas)
        ctx = CallContext(self, msg, code)
        try:
            ctx.use_gas(self.config.gas.entry, "entry")
            output = code.dispatch(ctx)
        except Revert as e:
            state.revert_to(checkpoint)
            return FrameResult(False, e.return_data, ctx.meter.remaining, "revert")
        except OutOfGas:
            state.revert_to(checkpoint)
            return FrameResult(False, b"", 0, "out of gas")
        return FrameResult(True, output or b"", ctx.meter.remaining)

    def _create(self, sender, code_cls, args, value, gas, depth, salt, origin, gas_price):
        state = self.state
        if depth > self.config.max_call_depth:
            return None, b"", gas
        if salt is None:
            address = compute_create_address(sender, state.get_nonce(sender))
        else:
            address = compute_create2_address(sender, salt, code_cls.creation_code() + args)
        state.increment_nonce(sender)
        if state.get_code(address) is not None or state.get_nonce(address) > 0:
            logger.debug("create collision at %s", address)
            return None, b"", 0
        checkpoint = state.checkpoint()
        if not state.transfer(sender, address, value):
            state.revert_to(checkpoint)
            return None, b"", gas
        code = code_cls()
        state.set_nonce(address, 1)
        state.set_code(address, code)
        msg = Message(CREATE, sender, address, address, value, args, gas, depth, False, origin, gas_price)
        ctx = CallContext(self, msg, code)
        try:
            ctx.use_gas(self.config.gas.entry, "entry")
            try:
                ctor_args = decode_values(code_cls.CONSTRUCTOR, args) if code_cls.CONSTRUCTOR else ()
            except DecodingError:
                ctx.revert()
            code.constructor(ctx, *ctor_args)
        except Revert as e:
            state.revert_to(checkpoint)
            return None, e.return_data, ctx.meter.remaining
        except OutOfGas:
            state.revert_to(checkpoint)
            return None, b"", 0
        self._created.append(address)
        logger.debug("deployed %s at %s", code_cls.__name__, address)
        return address, b"", ctx.meter.remaining

"""
Handles for deployed contracts and mined transactions.

``Contract`` exposes each ABI function of a contract class as an attribute:
view functions are called, everything else is sent as a transaction. The last
positional argument may be a transaction dict with ``from``, ``value``,
``gas_limit`` and ``gas_price`` keys.

    proxy.execTransaction(*args, signatures, {"from": owner})
    proxy.nonce()
    proxy.execTransaction.encode_input(*args, signatures)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from hexbytes import HexBytes

from safe_wallet.abi import External
from safe_wallet.utils import ZERO_ADDRESS, parse_value, to_address


class EventLog(dict):
    """Decoded event arguments; ``address`` is the emitting account."""

    def __init__(self, name: str, address: str, args: Dict[str, Any]):
        super().__init__(args)
        self.name = name
        self.address = address


class EventItem(list):
    """All events with one name. String keys read from the first one."""

    def __getitem__(self, key):
        if isinstance(key, str):
            return super().__getitem__(0)[key]
        return super().__getitem__(key)


class EventDict:
    def __init__(self, logs) -> None:
        self._ordered: List[EventLog] = [EventLog(log.event, log.address, log.args) for log in logs]
        self._by_name: Dict[str, EventItem] = {}
        for event in self._ordered:
            self._by_name.setdefault(event.name, EventItem()).append(event)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def __getitem__(self, key):
        if isinstance(key, int):
            return self._ordered[key]
        return self._by_name[key]

    def __iter__(self):
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)

    def keys(self):
        return self._by_name.keys()

    def count(self, name: str) -> int:
        return len(self._by_name.get(name, ()))

    def __repr__(self) -> str:
        return f"<EventDict {[e.name for e in self._ordered]}>"


class TransactionReceipt:
    def __init__(
        self,
        *,
        chain,
        txid: HexBytes,
        sender: str,
        receiver: Optional[str],
        value: int,
        input: bytes,
        gas_limit: int,
        gas_price: int,
        gas_used: int,
        status: int,
        output: bytes,
        logs,
        block_number: int,
        contract_address: Optional[str],
        new_contracts: List[str],
    ) -> None:
        self._chain = chain
        self.txid = txid
        self.sender = sender
        self.receiver = receiver
        self.value = value
        self.input = input
        self.gas_limit = gas_limit
        self.gas_price = gas_price
        self.gas_used = gas_used
        self.status = status
        self.output = output
        self.logs = list(logs)
        self.events = EventDict(self.logs)
        self.block_number = block_number
        self.contract_address = contract_address
        self.new_contracts = new_contracts
        self.return_value = None

    def __repr__(self) -> str:
        return f"<TransactionReceipt {self.txid.hex()} status={self.status}>"


def parse_tx(tx: Optional[dict]) -> dict:
    tx = dict(tx or {})
    unknown = set(tx) - {"from", "value", "gas_limit", "gas_price"}
    if unknown:
        raise ValueError(f"Unknown transaction fields: {sorted(unknown)}")
    if "value" in tx:
        tx["value"] = parse_value(tx["value"])
    return tx


class ContractMethod:
    def __init__(self, contract: "Contract", spec: External) -> None:
        self._contract = contract
        self.abi = spec
        self.signature = spec.selector
        self.__name__ = spec.name

    def __repr__(self) -> str:
        return f"<ContractMethod {self.abi.signature}>"

    @property
    def address(self) -> str:
        """Address of the contract the method belongs to."""
        return self._contract.address

    def _split(self, args):
        if len(args) == len(self.abi.inputs) + 1 and isinstance(args[-1], dict):
            return args[:-1], args[-1]
        if len(args) != len(self.abi.inputs):
            raise TypeError(f"{self.abi.signature} expects {len(self.abi.inputs)} arguments, got {len(args)}")
        return args, None

    def __call__(self, *args):
        args, tx = self._split(args)
        if self.abi.view:
            return self._call(args, tx)
        return self._transact(args, tx)

    def encode_input(self, *args) -> str:
        return "0x" + self.abi.encode_input(args).hex()

    def decode_output(self, data: bytes) -> Any:
        return self.abi.decode_output(data)

    def call(self, *args):
        return self._call(*self._split(args))

    def transact(self, *args) -> TransactionReceipt:
        return self._transact(*self._split(args))

    def _call(self, args, tx):
        tx = parse_tx(tx)
        output = self._contract._chain.call(
            tx.get("from", ZERO_ADDRESS),
            self._contract.address,
            self.abi.encode_input(args),
            tx.get("value", 0),
            tx.get("gas_limit"),
        )
        return self.decode_output(output)

    def _transact(self, args, tx) -> TransactionReceipt:
        tx = parse_tx(tx)
        if "from" not in tx:
            raise ValueError(f"{self.abi.name}: transaction needs a 'from' account")
        receipt = self._contract._chain.transact(
            tx["from"],
            self._contract.address,
            self.abi.encode_input(args),
            tx.get("value", 0),
            tx.get("gas_limit"),
            tx.get("gas_price"),
        )
        receipt.return_value = self.decode_output(receipt.output) if receipt.output else None
        return receipt


class OverloadedMethod:
    """
    Functions sharing a name. Pick one by its input types:

        handler.isValidSignature["bytes32,bytes"](digest, signature)
    """

    def __init__(self, name: str) -> None:
        self.__name__ = name
        self.methods: Dict[str, ContractMethod] = {}

    def __getitem__(self, key) -> ContractMethod:
        if isinstance(key, (tuple, list)):
            key = ",".join(key)
        return self.methods[key.replace(" ", "")]

    def __call__(self, *args):
        matches = [m for m in self.methods.values() if len(m.abi.inputs) in (len(args), len(args) - 1)]
        if len(matches) != 1:
            raise ValueError(f"Ambiguous call to {self.__name__}, select an overload by its input types")
        return matches[0](*args)


class Contract:
    """A deployed contract, seen through the ABI of ``code_cls``."""

    def __init__(self, chain, address: str, code_cls) -> None:
        self._chain = chain
        self.address = to_address(address)
        self._name = code_cls.__name__
        self.tx: Optional[TransactionReceipt] = None
        for spec in code_cls.externals():
            method = ContractMethod(self, spec)
            existing = self.__dict__.get(spec.name)
            if existing is None:
                setattr(self, spec.name, method)
                continue
            if isinstance(existing, ContractMethod):
                overloaded = OverloadedMethod(spec.name)
                overloaded.methods[",".join(existing.abi.inputs)] = existing
                setattr(self, spec.name, overloaded)
                existing = overloaded
            existing.methods[",".join(spec.inputs)] = method

    @property
    def chain(self):
        return self._chain

    def balance(self) -> int:
        return self._chain.balance(self.address)

    def __str__(self) -> str:
        return self.address

    def __repr__(self) -> str:
        return f"<{self._name} '{self.address}'>"

    def __hash__(self) -> int:
        return hash(self.address)

    def __eq__(self, other) -> bool:
        if isinstance(other, str):
            return other.lower() == self.address.lower()
        if hasattr(other, "address"):
            return other.address == self.address
        return NotImplemented

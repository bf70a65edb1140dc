"""
ABI plumbing for Python contract code.

Contract classes derive from ``ContractCode`` and mark entry points with
``@external("transfer(address,uint256)", returns=("bool",))``. Calldata is
dispatched by 4-byte selector and decoded with eth-abi, return values and
events are encoded the same way, so callers only ever see ABI bytes.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_abi.grammar import TupleType, parse

from safe_wallet.utils import keccak, parse_value, to_address, to_bytes


def split_types(types: str) -> List[str]:
    """``"address,(uint256,bytes)[]"`` -> ``["address", "(uint256,bytes)[]"]``"""
    if not types:
        return []
    return [component.to_type_str() for component in parse(f"({types})").components]


def parse_signature(signature: str) -> Tuple[str, List[str]]:
    name, _, rest = signature.partition("(")
    if not rest.endswith(")"):
        raise ValueError(f"Malformed signature {signature!r}")
    return name, split_types(rest[:-1])


def function_selector(signature: str) -> bytes:
    return keccak(signature.encode())[:4]


def prepare_value(value: Any, abi_type) -> Any:
    """Coerce handles, hex strings and unit strings into what eth-abi encodes."""
    if isinstance(abi_type, str):
        abi_type = parse(abi_type)
    if abi_type.is_array:
        return [prepare_value(item, abi_type.item_type) for item in value]
    if isinstance(abi_type, TupleType):
        return tuple(prepare_value(item, t) for item, t in zip(value, abi_type.components))
    base = abi_type.base
    if base == "address":
        return to_address(value)
    if base == "bytes":
        return to_bytes(value)
    if base in ("uint", "int"):
        if isinstance(value, str):
            return parse_value(value)
        return int(value)
    if base == "bool":
        return bool(value)
    return value


def normalize_value(value: Any, abi_type) -> Any:
    """Decoded arrays as lists and addresses checksummed, the way callers build them."""
    if isinstance(abi_type, str):
        abi_type = parse(abi_type)
    if abi_type.is_array:
        return [normalize_value(item, abi_type.item_type) for item in value]
    if isinstance(abi_type, TupleType):
        return tuple(normalize_value(item, t) for item, t in zip(value, abi_type.components))
    if abi_type.base == "address":
        return to_address(value)
    return value


def encode_values(types: Sequence[str], values: Sequence[Any]) -> bytes:
    if len(types) != len(values):
        raise ValueError(f"Expected {len(types)} values, got {len(values)}")
    return encode(list(types), [prepare_value(v, t) for v, t in zip(values, types)])


def decode_values(types: Sequence[str], data: bytes) -> tuple:
    values = decode(list(types), bytes(data))
    return tuple(normalize_value(v, t) for v, t in zip(values, types))


def encode_call(signature: str, *args) -> bytes:
    _, types = parse_signature(signature)
    return function_selector(signature) + encode_values(types, args)


def unwrap(values: tuple, types: Sequence[str]) -> Any:
    if not types:
        return None
    if len(types) == 1:
        return values[0]
    return values


class External:
    """An ABI entry point of a contract class."""

    def __init__(self, signature, returns, view, payable, attr):
        self.signature = signature
        self.name, self.inputs = parse_signature(signature)
        self.outputs = list(returns)
        self.selector = function_selector(signature)
        self.view = view
        self.payable = payable
        self.attr = attr

    def __repr__(self) -> str:
        return f"<External {self.signature}>"

    def encode_input(self, args: Sequence[Any]) -> bytes:
        return self.selector + encode_values(self.inputs, args)

    def decode_input(self, data: bytes) -> tuple:
        return decode_values(self.inputs, data)

    def encode_output(self, result: Any) -> bytes:
        if not self.outputs:
            return b""
        values = [result] if len(self.outputs) == 1 else list(result)
        return encode_values(self.outputs, values)

    def decode_output(self, data: bytes) -> Any:
        if not self.outputs:
            return None
        return unwrap(decode_values(self.outputs, data), self.outputs)


def external(signature: str, returns: Iterable[str] = (), view: bool = False, payable: bool = False):
    def decorator(fn):
        fn.__external__ = External(signature, tuple(returns), view, payable, fn.__name__)
        return fn

    return decorator


class Event:
    """
    ``Event("ApproveHash", "bytes32 indexed approvedHash", "address indexed owner")``
    """

    def __init__(self, name: str, *params: str):
        self.name = name
        self.params: List[Tuple[str, str, bool]] = []
        for param in params:
            parts = param.split()
            self.params.append((parts[-1], parts[0], "indexed" in parts[1:-1]))
        self.signature = f"{name}({','.join(t for _, t, _ in self.params)})"
        self.topic = keccak(self.signature.encode())

    def encode(self, args: Dict[str, Any]) -> Tuple[List[bytes], bytes]:
        mismatch = {n for n, _, _ in self.params} ^ set(args)
        if mismatch:
            raise ValueError(f"{self.name}: argument mismatch {sorted(mismatch)}")
        topics = [self.topic]
        data_types, data_values = [], []
        for name, abi_type, indexed in self.params:
            if indexed:
                topics.append(encode_values([abi_type], [args[name]]))
            else:
                data_types.append(abi_type)
                data_values.append(args[name])
        return topics, encode_values(data_types, data_values)

    def decode(self, topics: Sequence[bytes], data: bytes) -> Dict[str, Any]:
        indexed = iter(topics[1:])
        data_params = [(n, t) for n, t, i in self.params if not i]
        values = iter(decode_values([t for _, t in data_params], data))
        out = {}
        for name, abi_type, is_indexed in self.params:
            if is_indexed:
                out[name] = decode_values([abi_type], next(indexed))[0]
            else:
                out[name] = next(values)
        return out


class ContractCode:
    """
    Base class of contract code. Instances hold no state: everything lives in
    the storage of the account the code runs against (``ctx.this``).
    """

    EVENTS: Tuple[Event, ...] = ()
    CONSTRUCTOR: Tuple[str, ...] = ()

    _externals: Dict[bytes, External] = {}
    _events: Dict[str, Event] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        externals: Dict[bytes, External] = {}
        events: Dict[str, Event] = {}
        for klass in reversed(cls.__mro__):
            for value in vars(klass).values():
                spec = getattr(value, "__external__", None)
                if spec is not None:
                    externals[spec.selector] = spec
            for event in vars(klass).get("EVENTS", ()):
                events[event.name] = event
        cls._externals = externals
        cls._events = events

    @classmethod
    def externals(cls) -> List[External]:
        return list(cls._externals.values())

    @classmethod
    def event(cls, name: str) -> Event:
        return cls._events[name]

    @classmethod
    def runtime_code(cls) -> bytes:
        """Deterministic stand-in for deployed code."""
        return keccak(f"{cls.__module__}.{cls.__qualname__}".encode())

    @classmethod
    def creation_code(cls) -> bytes:
        """Stand-in for init code, hashed into CREATE2 addresses."""
        return b"\x60\x80" + cls.runtime_code()

    def constructor(self, ctx, *args) -> None:
        pass

    def receive(self, ctx) -> bytes:
        return self.fallback(ctx)

    def fallback(self, ctx) -> bytes:
        ctx.revert()

    def dispatch(self, ctx, data: Optional[bytes] = None) -> bytes:
        data = ctx.data if data is None else data
        if not data:
            return self.receive(ctx)
        spec = self._externals.get(bytes(data[:4])) if len(data) >= 4 else None
        if spec is None:
            return self.fallback(ctx)
        if ctx.value and not spec.payable:
            ctx.revert()
        try:
            args = spec.decode_input(data[4:])
        except DecodingError:
            ctx.revert()
        result = getattr(self, spec.attr)(ctx, *args)
        return spec.encode_output(result)

"""
Storage layout helpers shared by the wallet and code delegatecalled into it.
"""

from eth_abi import encode

from safe_wallet.utils import address_to_int, int_to_address, keccak, to_address

# wallet storage
SINGLETON_SLOT = 0
MODULES_SLOT = 1
OWNERS_SLOT = 2
THRESHOLD_SLOT = 3
NONCE_SLOT = 4
SIGNED_MESSAGES_SLOT = 5
APPROVED_HASHES_SLOT = 6
FALLBACK_HANDLER_SLOT = int.from_bytes(keccak(b"fallback_manager.handler.address"), "big")

# transient storage
EXECUTION_PHASE_SLOT = int.from_bytes(keccak(b"safe.execution.phase"), "big")

# reserved, never an owner or a module
SENTINEL = "0x0000000000000000000000000000000000000001"


def mapping_slot(key, slot: int, key_type: str = "address") -> int:
    """Slot of ``mapping[key]`` for a mapping declared at ``slot``."""
    if key_type == "address":
        key = to_address(key)
    return int.from_bytes(keccak(encode([key_type, "uint256"], [key, slot])), "big")


def nested_mapping_slot(outer, inner, slot: int, outer_type: str = "address", inner_type: str = "bytes32") -> int:
    return mapping_slot(inner, mapping_slot(outer, slot, outer_type), inner_type)


def array_data_slot(slot: int) -> int:
    return int.from_bytes(keccak(slot.to_bytes(32, "big")), "big")


class StorageArray:
    """Dynamic array of words: length at ``slot``, items from ``keccak(slot)``."""

    def __init__(self, ctx, slot: int) -> None:
        self.ctx = ctx
        self.slot = slot
        self._data = array_data_slot(slot)

    def __len__(self) -> int:
        return self.ctx.sload(self.slot)

    def get(self, index: int) -> int:
        return self.ctx.sload(self._data + index)

    def set(self, index: int, value: int) -> None:
        self.ctx.sstore(self._data + index, value)

    def push(self, value: int) -> None:
        length = len(self)
        self.ctx.sstore(self._data + length, value)
        self.ctx.sstore(self.slot, length + 1)

    def pop(self) -> int:
        length = len(self)
        value = self.get(length - 1)
        self.ctx.sstore(self._data + length - 1, 0)
        self.ctx.sstore(self.slot, length - 1)
        return value

    def clear(self) -> None:
        for index in range(len(self)):
            self.ctx.sstore(self._data + index, 0)
        self.ctx.sstore(self.slot, 0)

    def values(self) -> list:
        return [self.get(i) for i in range(len(self))]


class AddressSet:
    """
    Insertion-ordered set of addresses: an array of members plus a
    ``member -> index + 1`` mapping for O(1) membership. Removal moves the
    last member into the freed position.
    """

    def __init__(self, ctx, slot: int) -> None:
        self.ctx = ctx
        self.slot = slot
        self._members = StorageArray(ctx, slot)

    def _index_slot(self, address) -> int:
        return mapping_slot(address, self.slot)

    def __contains__(self, address) -> bool:
        return self.ctx.sload(self._index_slot(address)) != 0

    def __len__(self) -> int:
        return len(self._members)

    def add(self, address) -> bool:
        if address in self:
            return False
        self._members.push(address_to_int(address))
        self.ctx.sstore(self._index_slot(address), len(self._members))
        return True

    def remove(self, address) -> bool:
        position = self.ctx.sload(self._index_slot(address))
        if position == 0:
            return False
        last = self._members.pop()
        if position <= len(self._members):
            self._members.set(position - 1, last)
            self.ctx.sstore(self._index_slot(int_to_address(last)), position)
        self.ctx.sstore(self._index_slot(address), 0)
        return True

    def replace(self, old, new) -> bool:
        """Put ``new`` at the position of ``old``."""
        position = self.ctx.sload(self._index_slot(old))
        if position == 0 or new in self:
            return False
        self._members.set(position - 1, address_to_int(new))
        self.ctx.sstore(self._index_slot(new), position)
        self.ctx.sstore(self._index_slot(old), 0)
        return True

    def at(self, index: int) -> str:
        return int_to_address(self._members.get(index))

    def values(self) -> list:
        return [int_to_address(v) for v in self._members.values()]

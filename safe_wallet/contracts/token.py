from safe_wallet.abi import ContractCode, Event, external
from safe_wallet.contracts.storage import mapping_slot, nested_mapping_slot
from safe_wallet.utils import ZERO_ADDRESS, address_to_int, int_to_address

TOTAL_SUPPLY_SLOT = 0
BALANCES_SLOT = 1
ALLOWANCES_SLOT = 2
MINTER_SLOT = 3
NAME_SLOT = 4
SYMBOL_SLOT = 5
DECIMALS_SLOT = 6


def _pack_short_string(value: str) -> int:
    """Strings up to 31 bytes in one word: data left-aligned, length * 2 in the low byte."""
    raw = value.encode()
    return int.from_bytes(raw.ljust(31, b"\x00") + bytes([len(raw) * 2]), "big")


def _unpack_short_string(word: int) -> str:
    raw = word.to_bytes(32, "big")
    return raw[: raw[31] // 2].decode()


class ERC20(ContractCode):
    """Mintable ERC-20 token. The deployer is the only minter."""

    CONSTRUCTOR = ("string", "string", "uint8")
    EVENTS = (
        Event("Transfer", "address indexed sender", "address indexed receiver", "uint256 value"),
        Event("Approval", "address indexed owner", "address indexed spender", "uint256 value"),
    )

    def constructor(self, ctx, name, symbol, decimals):
        ctx.require(len(name.encode()) < 32 and len(symbol.encode()) < 32, "ERC20: name too long")
        ctx.sstore(NAME_SLOT, _pack_short_string(name))
        ctx.sstore(SYMBOL_SLOT, _pack_short_string(symbol))
        ctx.sstore(DECIMALS_SLOT, decimals)
        ctx.sstore(MINTER_SLOT, address_to_int(ctx.sender))

    @external("name()", returns=("string",), view=True)
    def name(self, ctx):
        return _unpack_short_string(ctx.sload(NAME_SLOT))

    @external("symbol()", returns=("string",), view=True)
    def symbol(self, ctx):
        return _unpack_short_string(ctx.sload(SYMBOL_SLOT))

    @external("decimals()", returns=("uint8",), view=True)
    def decimals(self, ctx):
        return ctx.sload(DECIMALS_SLOT)

    @external("totalSupply()", returns=("uint256",), view=True)
    def totalSupply(self, ctx):
        return ctx.sload(TOTAL_SUPPLY_SLOT)

    @external("balanceOf(address)", returns=("uint256",), view=True)
    def balanceOf(self, ctx, account):
        return ctx.sload(mapping_slot(account, BALANCES_SLOT))

    @external("allowance(address,address)", returns=("uint256",), view=True)
    def allowance(self, ctx, owner, spender):
        return ctx.sload(nested_mapping_slot(owner, spender, ALLOWANCES_SLOT, inner_type="address"))

    @external("transfer(address,uint256)", returns=("bool",))
    def transfer(self, ctx, to, amount):
        self._transfer(ctx, ctx.sender, to, amount)
        return True

    @external("transferFrom(address,address,uint256)", returns=("bool",))
    def transferFrom(self, ctx, sender, to, amount):
        slot = nested_mapping_slot(sender, ctx.sender, ALLOWANCES_SLOT, inner_type="address")
        allowed = ctx.sload(slot)
        ctx.require(allowed >= amount, "ERC20: insufficient allowance")
        if allowed != 2**256 - 1:
            ctx.sstore(slot, allowed - amount)
        self._transfer(ctx, sender, to, amount)
        return True

    @external("approve(address,uint256)", returns=("bool",))
    def approve(self, ctx, spender, amount):
        ctx.sstore(nested_mapping_slot(ctx.sender, spender, ALLOWANCES_SLOT, inner_type="address"), amount)
        ctx.emit("Approval", owner=ctx.sender, spender=spender, value=amount)
        return True

    @external("mint(address,uint256)")
    def mint(self, ctx, to, amount):
        ctx.require(ctx.sender == int_to_address(ctx.sload(MINTER_SLOT)), "ERC20: caller is not the minter")
        ctx.require(to != ZERO_ADDRESS, "ERC20: mint to the zero address")
        ctx.sstore(TOTAL_SUPPLY_SLOT, ctx.sload(TOTAL_SUPPLY_SLOT) + amount)
        slot = mapping_slot(to, BALANCES_SLOT)
        ctx.sstore(slot, ctx.sload(slot) + amount)
        ctx.emit("Transfer", sender=ZERO_ADDRESS, receiver=to, value=amount)

    def _transfer(self, ctx, sender, to, amount):
        ctx.require(to != ZERO_ADDRESS, "ERC20: transfer to the zero address")
        sender_slot = mapping_slot(sender, BALANCES_SLOT)
        balance = ctx.sload(sender_slot)
        ctx.require(balance >= amount, "ERC20: transfer amount exceeds balance")
        ctx.sstore(sender_slot, balance - amount)
        receiver_slot = mapping_slot(to, BALANCES_SLOT)
        ctx.sstore(receiver_slot, ctx.sload(receiver_slot) + amount)
        ctx.emit("Transfer", sender=sender, receiver=to, value=amount)

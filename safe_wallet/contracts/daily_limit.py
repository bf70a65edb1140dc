import logging

from safe_wallet.abi import ContractCode, Event, encode_call, external
from safe_wallet.contracts.storage import nested_mapping_slot
from safe_wallet.transaction import Operation
from safe_wallet.utils import ZERO_ADDRESS

logger = logging.getLogger(__name__)

DAILY_LIMITS_SLOT = 0
DAY = 24 * 60 * 60


class DailyLimitModule(ContractCode):
    """
    Lets any owner of a wallet move up to a fixed amount of a token per day
    without collecting signatures. One module serves many wallets; limits
    are keyed by wallet and token (the zero address for ether).
    """

    EVENTS = (
        Event("ChangedDailyLimit", "address indexed safe", "address indexed token", "uint256 dailyLimit"),
        Event("DailyLimitTransfer", "address indexed safe", "address indexed token", "address to", "uint256 amount"),
    )

    def _slot(self, safe, token):
        return nested_mapping_slot(safe, token, DAILY_LIMITS_SLOT, inner_type="address")

    @external("changeDailyLimit(address,uint256)")
    def changeDailyLimit(self, ctx, token, daily_limit):
        # the calling wallet configures its own limit
        ctx.sstore(self._slot(ctx.sender, token), daily_limit)
        ctx.emit("ChangedDailyLimit", safe=ctx.sender, token=token, dailyLimit=daily_limit)

    @external("executeDailyLimit(address,address,address,uint256)")
    def executeDailyLimit(self, ctx, safe, token, to, amount):
        is_owner = ctx.call_function(safe, "isOwner(address)", ctx.sender, returns=("bool",), static=True)
        ctx.require(is_owner, "Method can only be called by an owner")
        ctx.require(to != ZERO_ADDRESS, "Invalid to address provided")
        ctx.require(amount > 0, "Invalid amount provided")
        self._spend(ctx, safe, token, amount)
        if token == ZERO_ADDRESS:
            call = (to, amount, b"")
        else:
            call = (token, 0, encode_call("transfer(address,uint256)", to, amount))
        success = ctx.call_function(
            safe,
            "execTransactionFromModule(address,uint256,bytes,uint8)",
            *call,
            Operation.CALL,
            returns=("bool",),
        )
        ctx.require(success, "Could not execute transfer")
        logger.debug("daily limit transfer of %d from %s to %s", amount, safe, to)
        ctx.emit("DailyLimitTransfer", safe=safe, token=token, to=to, amount=amount)

    def _spend(self, ctx, safe, token, amount):
        base = self._slot(safe, token)
        limit = ctx.sload(base)
        today = ctx.timestamp - ctx.timestamp % DAY
        spent = ctx.sload(base + 1)
        if today > ctx.sload(base + 2):
            ctx.sstore(base + 2, today)
            spent = 0
        ctx.require(spent + amount <= limit, "Daily limit exceeded")
        ctx.sstore(base + 1, spent + amount)

    @external("dailyLimits(address,address)", returns=("uint256", "uint256", "uint256"), view=True)
    def dailyLimits(self, ctx, safe, token):
        """Limit, amount spent on ``lastDay`` and ``lastDay`` itself."""
        base = self._slot(safe, token)
        return ctx.sload(base), ctx.sload(base + 1), ctx.sload(base + 2)

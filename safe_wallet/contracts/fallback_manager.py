from safe_wallet.abi import Event, external
from safe_wallet.contracts.executor import require_self_call
from safe_wallet.contracts.storage import FALLBACK_HANDLER_SLOT
from safe_wallet.utils import ZERO_ADDRESS, address_to_int, int_to_address


class FallbackManager:
    """Forwards calls with unknown selectors to a handler contract."""

    EVENTS = (Event("ChangedFallbackHandler", "address handler"),)

    def _internal_set_fallback_handler(self, ctx, handler):
        ctx.require(handler != ctx.this, "GS400")
        ctx.sstore(FALLBACK_HANDLER_SLOT, address_to_int(handler))

    @external("setFallbackHandler(address)")
    def setFallbackHandler(self, ctx, handler):
        require_self_call(ctx)
        self._internal_set_fallback_handler(ctx, handler)
        ctx.emit("ChangedFallbackHandler", handler=handler)

    def fallback(self, ctx):
        handler = int_to_address(ctx.sload(FALLBACK_HANDLER_SLOT))
        if handler == ZERO_ADDRESS:
            return b""
        # the handler reads the original caller from the last 20 bytes
        success, output = ctx.call(handler, ctx.data + bytes.fromhex(ctx.sender[2:]))
        if not success:
            ctx.revert_with(output)
        return output

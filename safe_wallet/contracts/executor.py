from safe_wallet.transaction import Operation


def require_self_call(ctx):
    """
    Management functions only run when the wallet calls itself, which only
    happens from inside an authorized dispatch (owner signatures or an
    enabled module).
    """
    ctx.require(ctx.sender == ctx.this, "GS031")


class Executor:
    def _execute(self, ctx, to, value, data, operation, gas) -> bool:
        return self._execute_return_data(ctx, to, value, data, operation, gas)[0]

    def _execute_return_data(self, ctx, to, value, data, operation, gas):
        if operation == Operation.DELEGATE_CALL:
            return ctx.delegatecall(to, data, gas=gas)
        return ctx.call(to, data, value, gas=gas)

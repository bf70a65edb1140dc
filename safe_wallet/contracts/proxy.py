from safe_wallet.abi import ContractCode, external, function_selector
from safe_wallet.contracts.storage import SINGLETON_SLOT
from safe_wallet.utils import ZERO_ADDRESS, address_to_int, int_to_address

MASTER_COPY_SELECTOR = function_selector("masterCopy()")


class SafeProxy(ContractCode):
    """
    Minimal proxy: the singleton address sits in slot 0 and every call other
    than ``masterCopy()`` is delegatecalled to it.
    """

    CONSTRUCTOR = ("address",)

    def constructor(self, ctx, singleton):
        ctx.require(singleton != ZERO_ADDRESS, "Invalid singleton address provided")
        ctx.sstore(SINGLETON_SLOT, address_to_int(singleton))

    @external("masterCopy()", returns=("address",), view=True)
    def masterCopy(self, ctx):
        return int_to_address(ctx.sload(SINGLETON_SLOT))

    def dispatch(self, ctx, data=None):
        data = ctx.data if data is None else data
        if data[:4] == MASTER_COPY_SELECTOR:
            return super().dispatch(ctx, data)
        success, output = ctx.delegatecall(int_to_address(ctx.sload(SINGLETON_SLOT)), data)
        if not success:
            ctx.revert_with(output)
        return output

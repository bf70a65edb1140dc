from safe_wallet.abi import Event, external
from safe_wallet.contracts.executor import Executor, require_self_call
from safe_wallet.contracts.storage import MODULES_SLOT, SENTINEL, AddressSet
from safe_wallet.transaction import Operation
from safe_wallet.utils import ZERO_ADDRESS


class ModuleManager(Executor):
    """
    Modules are trusted callers that execute through the wallet without
    owner signatures, nonce or refund.
    """

    EVENTS = (
        Event("EnabledModule", "address module"),
        Event("DisabledModule", "address module"),
        Event("ExecutionFromModuleSuccess", "address indexed module"),
        Event("ExecutionFromModuleFailure", "address indexed module"),
    )

    def _modules(self, ctx) -> AddressSet:
        return AddressSet(ctx, MODULES_SLOT)

    def _setup_modules(self, ctx, to, data):
        if to == ZERO_ADDRESS:
            return
        # setup code runs with the wallet's storage
        ctx.require(ctx.is_contract(to), "GS002")
        success, _ = ctx.delegatecall(to, data, gas=ctx.gas_left())
        ctx.require(success, "GS000")

    @external("enableModule(address)")
    def enableModule(self, ctx, module):
        require_self_call(ctx)
        ctx.require(module not in (ZERO_ADDRESS, SENTINEL), "GS101")
        ctx.require(self._modules(ctx).add(module), "GS102")
        ctx.emit("EnabledModule", module=module)

    @external("disableModule(address)")
    def disableModule(self, ctx, module):
        require_self_call(ctx)
        ctx.require(module not in (ZERO_ADDRESS, SENTINEL), "GS101")
        ctx.require(self._modules(ctx).remove(module), "GS103")
        ctx.emit("DisabledModule", module=module)

    def _exec_from_module(self, ctx, to, value, data, operation):
        ctx.require(ctx.sender != SENTINEL and ctx.sender in self._modules(ctx), "GS104")
        ctx.require(operation in (Operation.CALL, Operation.DELEGATE_CALL), "GS015")
        success, return_data = self._execute_return_data(ctx, to, value, data, operation, ctx.gas_left())
        if success:
            ctx.emit("ExecutionFromModuleSuccess", module=ctx.sender)
        else:
            ctx.emit("ExecutionFromModuleFailure", module=ctx.sender)
        return success, return_data

    @external("execTransactionFromModule(address,uint256,bytes,uint8)", returns=("bool",))
    def execTransactionFromModule(self, ctx, to, value, data, operation):
        return self._exec_from_module(ctx, to, value, data, operation)[0]

    @external(
        "execTransactionFromModuleReturnData(address,uint256,bytes,uint8)",
        returns=("bool", "bytes"),
    )
    def execTransactionFromModuleReturnData(self, ctx, to, value, data, operation):
        return self._exec_from_module(ctx, to, value, data, operation)

    @external("isModuleEnabled(address)", returns=("bool",), view=True)
    def isModuleEnabled(self, ctx, module):
        return module != SENTINEL and module in self._modules(ctx)

    @external("getModules()", returns=("address[]",), view=True)
    def getModules(self, ctx):
        return self._modules(ctx).values()

    @external("getModulesPaginated(uint256,uint256)", returns=("address[]", "uint256"), view=True)
    def getModulesPaginated(self, ctx, start, page_size):
        """A page of modules and the start index of the next page (0 when done)."""
        modules = self._modules(ctx)
        total = len(modules)
        end = min(start + page_size, total)
        page = [modules.at(i) for i in range(start, end)]
        return page, (end if end < total else 0)

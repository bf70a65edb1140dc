from safe_wallet.abi import Event, external
from safe_wallet.contracts.executor import require_self_call
from safe_wallet.contracts.storage import OWNERS_SLOT, SENTINEL, THRESHOLD_SLOT, AddressSet
from safe_wallet.utils import ZERO_ADDRESS


class OwnerManager:
    """Owners and the signature threshold of a wallet."""

    EVENTS = (
        Event("AddedOwner", "address owner"),
        Event("RemovedOwner", "address owner"),
        Event("ChangedThreshold", "uint256 threshold"),
    )

    def _owners(self, ctx) -> AddressSet:
        return AddressSet(ctx, OWNERS_SLOT)

    def _valid_owner_address(self, ctx, owner) -> bool:
        return owner not in (ZERO_ADDRESS, SENTINEL, ctx.this)

    def _setup_owners(self, ctx, owners, threshold):
        ctx.require(ctx.sload(THRESHOLD_SLOT) == 0, "GS200")
        ctx.require(threshold <= len(owners), "GS201")
        ctx.require(threshold >= 1, "GS202")
        registry = self._owners(ctx)
        for owner in owners:
            ctx.require(self._valid_owner_address(ctx, owner), "GS203")
            ctx.require(registry.add(owner), "GS204")
        ctx.sstore(THRESHOLD_SLOT, threshold)

    @external("addOwnerWithThreshold(address,uint256)")
    def addOwnerWithThreshold(self, ctx, owner, threshold):
        require_self_call(ctx)
        ctx.require(self._valid_owner_address(ctx, owner), "GS203")
        ctx.require(self._owners(ctx).add(owner), "GS204")
        ctx.emit("AddedOwner", owner=owner)
        if ctx.sload(THRESHOLD_SLOT) != threshold:
            self.changeThreshold(ctx, threshold)

    @external("removeOwner(address,uint256)")
    def removeOwner(self, ctx, owner, threshold):
        require_self_call(ctx)
        registry = self._owners(ctx)
        ctx.require(len(registry) - 1 >= threshold, "GS201")
        ctx.require(owner not in (ZERO_ADDRESS, SENTINEL), "GS203")
        ctx.require(registry.remove(owner), "GS205")
        ctx.emit("RemovedOwner", owner=owner)
        if ctx.sload(THRESHOLD_SLOT) != threshold:
            self.changeThreshold(ctx, threshold)

    @external("swapOwner(address,address)")
    def swapOwner(self, ctx, old_owner, new_owner):
        require_self_call(ctx)
        registry = self._owners(ctx)
        ctx.require(self._valid_owner_address(ctx, new_owner), "GS203")
        ctx.require(new_owner not in registry, "GS204")
        ctx.require(old_owner not in (ZERO_ADDRESS, SENTINEL), "GS203")
        ctx.require(registry.replace(old_owner, new_owner), "GS205")
        ctx.emit("RemovedOwner", owner=old_owner)
        ctx.emit("AddedOwner", owner=new_owner)

    @external("changeThreshold(uint256)")
    def changeThreshold(self, ctx, threshold):
        require_self_call(ctx)
        ctx.require(threshold <= len(self._owners(ctx)), "GS201")
        ctx.require(threshold >= 1, "GS202")
        ctx.sstore(THRESHOLD_SLOT, threshold)
        ctx.emit("ChangedThreshold", threshold=threshold)

    @external("getThreshold()", returns=("uint256",), view=True)
    def getThreshold(self, ctx):
        return ctx.sload(THRESHOLD_SLOT)

    @external("isOwner(address)", returns=("bool",), view=True)
    def isOwner(self, ctx, owner):
        return owner != SENTINEL and owner in self._owners(ctx)

    @external("getOwners()", returns=("address[]",), view=True)
    def getOwners(self, ctx):
        return self._owners(ctx).values()

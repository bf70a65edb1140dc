from safe_wallet.abi import ContractCode, Event, external
from safe_wallet.contracts.storage import SIGNED_MESSAGES_SLOT, mapping_slot
from safe_wallet.transaction import encode_message_data


class SignMessageLib(ContractCode):
    """Delegatecalled by a wallet to mark a message as signed by its owners."""

    EVENTS = (Event("SignMsg", "bytes32 indexed msgHash"),)

    @external("signMessage(bytes)")
    def signMessage(self, ctx, data):
        message_hash = self.getMessageHash(ctx, data)
        ctx.sstore(mapping_slot(message_hash, SIGNED_MESSAGES_SLOT, "bytes32"), 1)
        ctx.emit("SignMsg", msgHash=message_hash)

    @external("getMessageHash(bytes)", returns=("bytes32",), view=True)
    def getMessageHash(self, ctx, message):
        separator = ctx.call_function(ctx.this, "domainSeparator()", returns=("bytes32",), static=True)
        return ctx.keccak(encode_message_data(separator, message))

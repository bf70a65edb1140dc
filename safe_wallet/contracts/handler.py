from eth_abi import encode

from safe_wallet.abi import ContractCode, external
from safe_wallet.transaction import encode_message_data

# bytes4(keccak("isValidSignature(bytes,bytes)"))
LEGACY_EIP1271_MAGIC_VALUE = bytes.fromhex("20c13b0b")
# bytes4(keccak("isValidSignature(bytes32,bytes)"))
EIP1271_MAGIC_VALUE = bytes.fromhex("1626ba7e")


class CompatibilityFallbackHandler(ContractCode):
    """
    Fallback handler giving a wallet EIP-1271 signature validation and a few
    read helpers. ``msg.sender`` is the wallet that forwarded the call.
    """

    def dispatch(self, ctx, data=None):
        data = ctx.data if data is None else data
        # drop the caller address the wallet appends to forwarded calldata
        if len(data) >= 24 and (len(data) - 4) % 32 == 20:
            data = data[:-20]
        return super().dispatch(ctx, data)

    def _message_hash_for_safe(self, ctx, safe, message):
        separator = ctx.call_function(safe, "domainSeparator()", returns=("bytes32",), static=True)
        return ctx.keccak(encode_message_data(separator, message))

    @external("getMessageHash(bytes)", returns=("bytes32",), view=True)
    def getMessageHash(self, ctx, message):
        return self._message_hash_for_safe(ctx, ctx.sender, message)

    @external("getMessageHashForSafe(address,bytes)", returns=("bytes32",), view=True)
    def getMessageHashForSafe(self, ctx, safe, message):
        return self._message_hash_for_safe(ctx, safe, message)

    @external("isValidSignature(bytes,bytes)", returns=("bytes4",), view=True)
    def isValidSignature(self, ctx, data, signature):
        """
        An empty signature means the message must have been signed on-chain
        through ``SignMessageLib``; otherwise the owners' signatures are
        checked over the wallet's message hash.
        """
        safe = ctx.sender
        message_hash = self._message_hash_for_safe(ctx, safe, data)
        if len(signature) == 0:
            signed = ctx.call_function(safe, "signedMessages(bytes32)", message_hash, returns=("uint256",), static=True)
            ctx.require(signed != 0, "Hash not approved")
        else:
            ctx.call_function(
                safe, "checkSignatures(bytes32,bytes)", message_hash, signature, returns=("address[]",), static=True
            )
        return LEGACY_EIP1271_MAGIC_VALUE

    @external("isValidSignature(bytes32,bytes)", returns=("bytes4",), view=True)
    def isValidHashSignature(self, ctx, data_hash, signature):
        value = self.isValidSignature(ctx, encode(["bytes32"], [data_hash]), signature)
        return EIP1271_MAGIC_VALUE if value == LEGACY_EIP1271_MAGIC_VALUE else b"\x00" * 4

    @external("getModules()", returns=("address[]",), view=True)
    def getModules(self, ctx):
        return ctx.call_function(ctx.sender, "getModules()", returns=("address[]",), static=True)

from safe_wallet.abi import encode_call, external
from safe_wallet.contracts.storage import APPROVED_HASHES_SLOT, SENTINEL, THRESHOLD_SLOT, nested_mapping_slot
from safe_wallet.signatures import (
    ApprovedHashSignature,
    ContractSignature,
    EthSignSignature,
    SignatureFormatError,
    decode_signatures,
    eth_signed_message_hash,
)

# bytes4(keccak("isValidSignature(bytes32,bytes)"))
EIP1271_MAGIC_VALUE = bytes.fromhex("1626ba7e")


class SignatureVerifier:
    """
    Checks a signature blob against the owner set. Signers must be owners and
    appear in strictly ascending order, which rules out duplicates in a
    single pass.
    """

    def _check_signatures(self, ctx, data_hash, signatures):
        threshold = ctx.sload(THRESHOLD_SLOT)
        ctx.require(threshold > 0, "GS001")
        return self._check_n_signatures(ctx, data_hash, signatures, threshold)

    def _check_n_signatures(self, ctx, data_hash, signatures, required):
        try:
            decoded = decode_signatures(signatures, required)
        except SignatureFormatError as e:
            ctx.revert(e.code)
        owners = self._owners(ctx)
        last_owner = 0
        signers = []
        for signature in decoded:
            owner = self._signer_of(ctx, signature, data_hash)
            ctx.require(
                int(owner, 16) > last_owner and owner != SENTINEL and owner in owners,
                "GS026",
            )
            last_owner = int(owner, 16)
            signers.append(owner)
        return signers

    def _signer_of(self, ctx, signature, data_hash):
        if isinstance(signature, ContractSignature):
            ctx.require(self._is_valid_contract_signature(ctx, signature, data_hash), "GS024")
            return signature.owner
        if isinstance(signature, ApprovedHashSignature):
            owner = signature.owner
            approved = ctx.sload(nested_mapping_slot(owner, data_hash, APPROVED_HASHES_SLOT))
            ctx.require(ctx.sender == owner or approved != 0, "GS025")
            return owner
        if isinstance(signature, EthSignSignature):
            return ctx.ecrecover(eth_signed_message_hash(data_hash), signature.v, signature.r, signature.s)
        return ctx.ecrecover(data_hash, signature.v, signature.r, signature.s)

    def _is_valid_contract_signature(self, ctx, signature, data_hash):
        if not ctx.is_contract(signature.owner):
            return False
        # validators run static
        success, output = ctx.staticcall(
            signature.owner,
            encode_call("isValidSignature(bytes32,bytes)", data_hash, signature.payload),
        )
        return success and len(output) >= 32 and output[:4] == EIP1271_MAGIC_VALUE

    @external("checkSignatures(bytes32,bytes)", returns=("address[]",), view=True)
    def checkSignatures(self, ctx, data_hash, signatures):
        return self._check_signatures(ctx, data_hash, signatures)

    @external("checkNSignatures(bytes32,bytes,uint256)", returns=("address[]",), view=True)
    def checkNSignatures(self, ctx, data_hash, signatures, required_signatures):
        return self._check_n_signatures(ctx, data_hash, signatures, required_signatures)

"""
Client side helpers: build wallet transactions, collect owner signatures
and submit them.

    tx = build_contract_call(safe, safe.addOwnerWithThreshold, newOwner, 2)
    signatures = [safe_sign_hash(owner, safe, tx) for owner in owners]
    execute_tx(safe, tx, signatures, {"from": relayer})
"""

import logging

from safe_wallet.abi import encode_call
from safe_wallet.contracts.proxy_factory import callback_salt_nonce, calculate_proxy_address
from safe_wallet.contracts.safe import Safe
from safe_wallet.signatures import (
    approved_hash_signature,
    build_signature_bytes,
    eth_sign,
    sign_hash,
    sign_typed_data,
)
from safe_wallet.transaction import Operation, SafeTx, calculate_safe_transaction_hash
from safe_wallet.utils import ZERO_ADDRESS, to_address

logger = logging.getLogger(__name__)

SETUP_SIGNATURE = "setup(address[],uint256,address,bytes,address,address,uint256,address)"


def build_safe_transaction(
    safe,
    to,
    value=0,
    data=b"",
    operation=Operation.CALL,
    safe_tx_gas=0,
    base_gas=0,
    gas_price=0,
    gas_token=ZERO_ADDRESS,
    refund_receiver=ZERO_ADDRESS,
    nonce=None,
):
    """A ``SafeTx`` for ``safe``, at its current nonce unless one is given."""
    if nonce is None:
        nonce = safe.nonce()
    return SafeTx(
        to=to,
        value=value,
        data=data,
        operation=operation,
        safe_tx_gas=safe_tx_gas,
        base_gas=base_gas,
        gas_price=gas_price,
        gas_token=gas_token,
        refund_receiver=refund_receiver,
        nonce=nonce,
    )


def build_contract_call(safe, method, *args, **overrides):
    """A ``SafeTx`` calling ``method`` (a bound contract method) with ``args``."""
    target = method.address
    return build_safe_transaction(safe, target, data=method.encode_input(*args), **overrides)


def transaction_hash(safe, tx):
    return calculate_safe_transaction_hash(safe, tx, safe.getChainId())


def safe_sign_hash(signer, safe, tx):
    return sign_hash(signer, transaction_hash(safe, tx))


def safe_eth_sign(signer, safe, tx):
    return eth_sign(signer, transaction_hash(safe, tx))


def safe_sign_typed_data(signer, safe, tx):
    return sign_typed_data(signer, tx.eip712_data(safe, safe.getChainId()))


def safe_approve_hash(signer, safe, tx, tx_params=None):
    """
    Approve the transaction on-chain from ``signer`` and return the matching
    approved-hash signature.
    """
    safe.approveHash(transaction_hash(safe, tx), dict(tx_params or {"from": signer}))
    return approved_hash_signature(signer)


def execute_tx(safe, tx, signatures, tx_params):
    """Submit ``tx`` with ``signatures`` (a list of ``SafeSignature``)."""
    blob = build_signature_bytes(signatures)
    logger.debug("executing safe tx %s on %s", tx.to_dict(), safe.address)
    return safe.execTransaction(*tx.as_args(), blob, tx_params)


def execute_contract_call_with_signers(safe, method, args, signers, tx_params=None, **overrides):
    """Call ``method`` through ``safe``, signed by every account in ``signers``."""
    tx = build_contract_call(safe, method, *args, **overrides)
    signatures = [safe_sign_hash(signer, safe, tx) for signer in signers]
    return execute_tx(safe, tx, signatures, tx_params or {"from": signers[0]})


def encode_setup(
    owners,
    threshold,
    to=ZERO_ADDRESS,
    data=b"",
    fallback_handler=ZERO_ADDRESS,
    payment_token=ZERO_ADDRESS,
    payment=0,
    payment_receiver=ZERO_ADDRESS,
):
    """Initializer calldata for a new wallet proxy."""
    return encode_call(
        SETUP_SIGNATURE,
        [to_address(owner) for owner in owners],
        threshold,
        to,
        data,
        fallback_handler,
        payment_token,
        payment,
        payment_receiver,
    )


def calculate_proxy_address_with_callback(factory, singleton, initializer, salt_nonce, callback):
    return calculate_proxy_address(factory, singleton, initializer, callback_salt_nonce(salt_nonce, callback))


def deploy_safe(factory, singleton, owners, threshold, tx_params, fallback_handler=ZERO_ADDRESS, salt_nonce=None):
    """
    Deploy and set up a wallet proxy through ``factory``. Returns the proxy
    seen through the wallet's ABI.
    """
    initializer = encode_setup(owners, threshold, fallback_handler=fallback_handler)
    if salt_nonce is None:
        receipt = factory.createProxy(singleton, initializer, tx_params)
    else:
        receipt = factory.createProxyWithNonce(singleton, initializer, salt_nonce, tx_params)
    proxy = receipt.events["ProxyCreation"]["proxy"]
    logger.info("safe %s deployed with %d owners and threshold %d", proxy, len(owners), threshold)
    return factory.chain.at(proxy, Safe)


__all__ = [
    "build_contract_call",
    "build_safe_transaction",
    "calculate_proxy_address",
    "calculate_proxy_address_with_callback",
    "deploy_safe",
    "encode_setup",
    "execute_contract_call_with_signers",
    "execute_tx",
    "safe_approve_hash",
    "safe_eth_sign",
    "safe_sign_hash",
    "safe_sign_typed_data",
    "transaction_hash",
]

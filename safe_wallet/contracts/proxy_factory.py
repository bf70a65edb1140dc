import logging

from eth_abi import encode
from eth_abi.packed import encode_packed

from safe_wallet.abi import ContractCode, Event, external
from safe_wallet.contracts.proxy import SafeProxy
from safe_wallet.utils import ZERO_ADDRESS, compute_create2_address, keccak, to_address, to_bytes, to_word

logger = logging.getLogger(__name__)


def proxy_deployment_data(singleton) -> bytes:
    return encode(["address"], [to_address(singleton)])


def proxy_salt(initializer: bytes, salt_nonce: int) -> bytes:
    return keccak(keccak(to_bytes(initializer)) + to_word(salt_nonce))


def callback_salt_nonce(salt_nonce: int, callback) -> int:
    return int.from_bytes(
        keccak(encode_packed(["uint256", "address"], [salt_nonce, to_address(callback)])), "big"
    )


def calculate_proxy_address(factory, singleton, initializer: bytes, salt_nonce: int) -> str:
    """Address ``createProxyWithNonce`` deploys to; a pure function of its inputs."""
    return compute_create2_address(
        factory,
        proxy_salt(initializer, salt_nonce),
        SafeProxy.creation_code() + proxy_deployment_data(singleton),
    )


class ProxyFactory(ContractCode):
    EVENTS = (Event("ProxyCreation", "address proxy", "address singleton"),)

    @external("proxyCreationCode()", returns=("bytes",), view=True)
    def proxyCreationCode(self, ctx):
        return SafeProxy.creation_code()

    @external("proxyRuntimeCode()", returns=("bytes",), view=True)
    def proxyRuntimeCode(self, ctx):
        return SafeProxy.runtime_code()

    @external("createProxy(address,bytes)", returns=("address",))
    def createProxy(self, ctx, singleton, data):
        proxy = ctx.create(SafeProxy, proxy_deployment_data(singleton))
        if data:
            self._initialize(ctx, proxy, data)
        self._created(ctx, proxy, singleton)
        return proxy

    @external("createProxyWithNonce(address,bytes,uint256)", returns=("address",))
    def createProxyWithNonce(self, ctx, singleton, initializer, salt_nonce):
        salt = ctx.keccak(ctx.keccak(initializer) + to_word(salt_nonce))
        proxy = ctx.create2(SafeProxy, salt, proxy_deployment_data(singleton))
        ctx.require(proxy != ZERO_ADDRESS, "Create2 call failed")
        if initializer:
            self._initialize(ctx, proxy, initializer)
        self._created(ctx, proxy, singleton)
        return proxy

    @external("createProxyWithCallback(address,bytes,uint256,address)", returns=("address",))
    def createProxyWithCallback(self, ctx, singleton, initializer, salt_nonce, callback):
        proxy = self.createProxyWithNonce(ctx, singleton, initializer, callback_salt_nonce(salt_nonce, callback))
        if callback != ZERO_ADDRESS:
            ctx.call_function(
                callback,
                "proxyCreated(address,address,bytes,uint256)",
                proxy,
                singleton,
                initializer,
                salt_nonce,
            )
        return proxy

    @external("calculateCreateProxyWithNonceAddress(address,bytes,uint256)", returns=("address",), view=True)
    def calculateCreateProxyWithNonceAddress(self, ctx, singleton, initializer, salt_nonce):
        return calculate_proxy_address(ctx.this, singleton, initializer, salt_nonce)

    def _initialize(self, ctx, proxy, initializer):
        success, _ = ctx.call(proxy, initializer)
        if not success:
            ctx.revert()

    def _created(self, ctx, proxy, singleton):
        logger.debug("proxy %s created for singleton %s", proxy, singleton)
        ctx.emit("ProxyCreation", proxy=proxy, singleton=singleton)

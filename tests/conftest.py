#!/usr/bin/python3

import pytest

from safe_wallet import Chain, load_config
from safe_wallet.client import deploy_safe
from safe_wallet.contracts import (
    ERC20,
    CompatibilityFallbackHandler,
    DailyLimitModule,
    ProxyFactory,
    Safe,
    SignMessageLib,
    SocialRecoveryModule,
)
from mocks import (
    ERC1271WalletMock,
    GasUser,
    ProxyCreationCallbackMock,
    Reverter,
    StorageSetter,
    TestSingleton,
)


@pytest.fixture(scope="module")
def chain():
    """
    A fresh development chain for each test module
    """
    return Chain(load_config(env={}))


@pytest.fixture(scope="function", autouse=True)
def isolate(chain):
    chain.snapshot()
    yield
    chain.revert()


@pytest.fixture(scope="module")
def accounts(chain):
    return chain.accounts


@pytest.fixture(scope="module")
def owner(accounts):
    """
    The owner account
    """
    return accounts.add()


@pytest.fixture(scope="module")
def notOwner(accounts):
    """
    Not the owner account
    """
    return accounts.add()


@pytest.fixture(scope="module")
def multisigOwners(accounts):
    """
    Three owners of the multisig wallet
    """
    return [accounts.add() for _ in range(3)]


@pytest.fixture(scope="module")
def erc1271Owner(accounts):
    """
    The ERC1271 Mock wallet owner account
    """
    return accounts.add()


@pytest.fixture(scope="module")
def relayer(accounts):
    """
    The account relaying transactions and collecting refunds
    """
    return accounts[6]


@pytest.fixture(scope="module")
def receiver(accounts):
    """
    The receiver account
    """
    return accounts[5]


@pytest.fixture(scope="module")
def safeSingleton(chain, accounts):
    """
    Deploy the Safe singleton
    """
    return chain.deploy(Safe, tx={"from": accounts[0]})


@pytest.fixture(scope="module")
def proxyFactory(chain, accounts):
    """
    Deploy the proxy factory
    """
    return chain.deploy(ProxyFactory, tx={"from": accounts[0]})


@pytest.fixture(scope="module")
def compatibilityFallbackHandler(chain, accounts):
    """
    Deploy the compatibility fallback handler
    """
    return chain.deploy(CompatibilityFallbackHandler, tx={"from": accounts[0]})


@pytest.fixture(scope="module")
def signMessageLib(chain, accounts):
    return chain.deploy(SignMessageLib, tx={"from": accounts[0]})


@pytest.fixture(scope="module")
def safeProxy(proxyFactory, safeSingleton, compatibilityFallbackHandler, owner, accounts):
    """
    Deploy a wallet proxy with a single owner, seen through the Safe ABI
    """
    return deploy_safe(
        proxyFactory,
        safeSingleton,
        [owner],
        1,
        {"from": accounts[0]},
        fallback_handler=compatibilityFallbackHandler,
    )


@pytest.fixture(scope="module")
def multisigProxy(proxyFactory, safeSingleton, compatibilityFallbackHandler, multisigOwners, accounts):
    """
    Deploy a 2 out of 3 wallet proxy
    """
    return deploy_safe(
        proxyFactory,
        safeSingleton,
        multisigOwners,
        2,
        {"from": accounts[0]},
        fallback_handler=compatibilityFallbackHandler,
    )


@pytest.fixture(scope="module")
def tokenErc20(chain, accounts, relayer):
    """
    Test Token
    """
    tokenErc20 = chain.deploy(ERC20, "Test", "tst", 18, tx={"from": accounts[0]})
    amount = 100_000 * 10**18
    tokenErc20.mint(relayer, amount, {"from": accounts[0]})
    return tokenErc20


@pytest.fixture(scope="module")
def socialRecoveryModule(chain, accounts):
    """
    Deploy the social recovery module with a 1000 seconds recovery period
    """
    return chain.deploy(SocialRecoveryModule, 1000, tx={"from": accounts[0]})


@pytest.fixture(scope="module")
def dailyLimitModule(chain, accounts):
    return chain.deploy(DailyLimitModule, tx={"from": accounts[0]})


@pytest.fixture(scope="module")
def erc1271Wallet(chain, erc1271Owner, accounts):
    return chain.deploy(ERC1271WalletMock, erc1271Owner.address, tx={"from": accounts[0]})


@pytest.fixture(scope="module")
def storageSetter(chain, accounts):
    return chain.deploy(StorageSetter, tx={"from": accounts[0]})


@pytest.fixture(scope="module")
def reverter(chain, accounts):
    return chain.deploy(Reverter, tx={"from": accounts[0]})


@pytest.fixture(scope="module")
def gasUser(chain, accounts):
    return chain.deploy(GasUser, tx={"from": accounts[0]})


@pytest.fixture(scope="module")
def testSingleton(chain, accounts):
    return chain.deploy(TestSingleton, tx={"from": accounts[0]})


@pytest.fixture(scope="module")
def proxyCreationCallback(chain, accounts):
    return chain.deploy(ProxyCreationCallbackMock, False, tx={"from": accounts[0]})

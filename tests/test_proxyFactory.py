#!/usr/bin/python3

from hexbytes import HexBytes

from safe_wallet.client import calculate_proxy_address_with_callback, deploy_safe, encode_setup
from safe_wallet.contracts import Safe, SafeProxy, calculate_proxy_address
from safe_wallet.errors import FatalTransferError, ValidationError
from mocks import STORAGE_SETTER_SLOT, ProxyCreationCallbackMock, TestSingleton
from testUtils import ZERO_ADDRESS, reverts


def deployUninitialized(chain, proxyFactory, safeSingleton, account):
    tx = proxyFactory.createProxy(safeSingleton, "0x", {"from": account})
    return chain.at(tx.events["ProxyCreation"]["proxy"], Safe)


def test_create_proxy(chain, proxyFactory, testSingleton, accounts):
    """
    Create a proxy without initializing it
    """
    tx = proxyFactory.createProxy(testSingleton, "0x", {"from": accounts[0]})
    proxyAddress = tx.events["ProxyCreation"]["proxy"]

    assert tx.return_value == proxyAddress
    assert tx.events["ProxyCreation"]["singleton"] == testSingleton
    assert chain.at(proxyAddress, SafeProxy).masterCopy() == testSingleton
    assert not chain.at(proxyAddress, TestSingleton).isInitialized()


def test_create_proxy_with_initializer(chain, proxyFactory, testSingleton, accounts):
    initCode = testSingleton.init.encode_input()
    tx = proxyFactory.createProxy(testSingleton, initCode, {"from": accounts[0]})
    proxy = chain.at(tx.events["ProxyCreation"]["proxy"], TestSingleton)

    assert proxy.isInitialized()
    # the factory runs the initializer
    assert proxy.creator() == proxyFactory.address
    # state lives in the proxy, not the singleton
    assert not testSingleton.isInitialized()


def test_create_proxy_invalid_singleton(proxyFactory, accounts):
    with reverts("Invalid singleton address provided"):
        proxyFactory.createProxy(ZERO_ADDRESS, "0x", {"from": accounts[0]})


def test_create_proxy_failing_initializer(proxyFactory, testSingleton, accounts):
    """
    A failing initializer reverts the whole deployment
    """
    with reverts() as excinfo:
        proxyFactory.createProxy(testSingleton, "0xdeadbeef", {"from": accounts[0]})
    assert excinfo.value.revert_msg is None


def test_create_proxy_with_nonce(chain, proxyFactory, testSingleton, accounts):
    initCode = testSingleton.init.encode_input()
    saltNonce = 123
    expected = calculate_proxy_address(proxyFactory, testSingleton, initCode, saltNonce)
    assert proxyFactory.calculateCreateProxyWithNonceAddress(testSingleton, initCode, saltNonce) == expected

    tx = proxyFactory.createProxyWithNonce(testSingleton, initCode, saltNonce, {"from": accounts[0]})

    assert tx.events["ProxyCreation"]["proxy"] == expected
    assert chain.at(expected, TestSingleton).isInitialized()

    # same inputs, same address
    with reverts("Create2 call failed"):
        proxyFactory.createProxyWithNonce(testSingleton, initCode, saltNonce, {"from": accounts[0]})

    # the salt depends on both the nonce and the initializer
    other = calculate_proxy_address(proxyFactory, testSingleton, initCode, saltNonce + 1)
    assert other != expected
    assert calculate_proxy_address(proxyFactory, testSingleton, "0x", saltNonce) != expected
    tx = proxyFactory.createProxyWithNonce(testSingleton, initCode, saltNonce + 1, {"from": accounts[0]})
    assert tx.events["ProxyCreation"]["proxy"] == other


def test_create_proxy_with_callback(proxyFactory, testSingleton, proxyCreationCallback, accounts):
    initCode = testSingleton.init.encode_input()
    saltNonce = 7
    expected = calculate_proxy_address_with_callback(
        proxyFactory, testSingleton, initCode, saltNonce, proxyCreationCallback
    )

    tx = proxyFactory.createProxyWithCallback(
        testSingleton, initCode, saltNonce, proxyCreationCallback, {"from": accounts[0]}
    )

    assert tx.events["ProxyCreation"]["proxy"] == expected
    assert tx.events["ProxyCreated"]["proxy"] == expected
    assert tx.events["ProxyCreated"]["singleton"] == testSingleton
    assert tx.events["ProxyCreated"]["initializer"] == HexBytes(initCode)
    assert tx.events["ProxyCreated"]["saltNonce"] == saltNonce


def test_create_proxy_without_callback(proxyFactory, testSingleton, accounts):
    initCode = testSingleton.init.encode_input()
    expected = calculate_proxy_address_with_callback(proxyFactory, testSingleton, initCode, 7, ZERO_ADDRESS)

    tx = proxyFactory.createProxyWithCallback(testSingleton, initCode, 7, ZERO_ADDRESS, {"from": accounts[0]})

    assert tx.events["ProxyCreation"]["proxy"] == expected
    assert "ProxyCreated" not in tx.events


def test_create_proxy_rejected_by_callback(chain, proxyFactory, testSingleton, accounts):
    callback = chain.deploy(ProxyCreationCallbackMock, True, tx={"from": accounts[0]})
    initCode = testSingleton.init.encode_input()
    expected = calculate_proxy_address_with_callback(proxyFactory, testSingleton, initCode, 7, callback)

    with reverts("Callback rejected"):
        proxyFactory.createProxyWithCallback(testSingleton, initCode, 7, callback, {"from": accounts[0]})
    assert chain.get_code(expected) is None


def test_proxy_code(proxyFactory):
    assert proxyFactory.proxyCreationCode() == SafeProxy.creation_code()
    assert proxyFactory.proxyRuntimeCode() == SafeProxy.runtime_code()
    assert proxyFactory.proxyCreationCode().endswith(proxyFactory.proxyRuntimeCode())


def test_deploy_safe_with_nonce(proxyFactory, safeSingleton, compatibilityFallbackHandler, owner, accounts):
    initializer = encode_setup([owner], 1, fallback_handler=compatibilityFallbackHandler)
    expected = calculate_proxy_address(proxyFactory, safeSingleton, initializer, 42)

    safe = deploy_safe(
        proxyFactory,
        safeSingleton,
        [owner],
        1,
        {"from": accounts[0]},
        fallback_handler=compatibilityFallbackHandler,
        salt_nonce=42,
    )

    assert safe.address == expected
    assert safe.getOwners() == [owner.address]
    assert safe.nonce() == 0


def test_setup(chain, proxyFactory, safeSingleton, multisigOwners, compatibilityFallbackHandler, accounts):
    safe = deployUninitialized(chain, proxyFactory, safeSingleton, accounts[0])
    owners = [o.address for o in multisigOwners]

    tx = safe.setup(
        owners, 2, ZERO_ADDRESS, "0x", compatibilityFallbackHandler, ZERO_ADDRESS, 0, ZERO_ADDRESS,
        {"from": accounts[0]},
    )

    assert tx.events["SafeSetup"]["initiator"] == accounts[0]
    assert tx.events["SafeSetup"]["owners"] == owners
    assert tx.events["SafeSetup"]["threshold"] == 2
    assert tx.events["SafeSetup"]["fallbackHandler"] == compatibilityFallbackHandler
    assert safe.getOwners() == owners
    assert safe.getThreshold() == 2

    with reverts("GS200") as excinfo:
        safe.setup(owners, 2, ZERO_ADDRESS, "0x", ZERO_ADDRESS, ZERO_ADDRESS, 0, ZERO_ADDRESS, {"from": accounts[0]})
    assert isinstance(excinfo.value, ValidationError)


def test_setup_invalid_owners(chain, proxyFactory, safeSingleton, owner, accounts):
    safe = deployUninitialized(chain, proxyFactory, safeSingleton, accounts[0])
    tail = (ZERO_ADDRESS, "0x", ZERO_ADDRESS, ZERO_ADDRESS, 0, ZERO_ADDRESS, {"from": accounts[0]})

    with reverts("GS202"):
        safe.setup([owner.address], 0, *tail)
    with reverts("GS201"):
        safe.setup([owner.address], 2, *tail)
    with reverts("GS203"):
        safe.setup([ZERO_ADDRESS], 1, *tail)
    with reverts("GS203"):
        safe.setup(["0x0000000000000000000000000000000000000001"], 1, *tail)
    with reverts("GS203"):
        safe.setup([safe.address], 1, *tail)
    with reverts("GS204"):
        safe.setup([owner.address, owner.address], 1, *tail)

    # nothing stuck, the proxy can still be set up
    safe.setup([owner.address], 1, *tail)
    assert safe.getOwners() == [owner.address]


def test_setup_fallback_handler_cannot_be_self(chain, proxyFactory, safeSingleton, owner, accounts):
    safe = deployUninitialized(chain, proxyFactory, safeSingleton, accounts[0])
    with reverts("GS400"):
        safe.setup(
            [owner.address], 1, ZERO_ADDRESS, "0x", safe.address, ZERO_ADDRESS, 0, ZERO_ADDRESS,
            {"from": accounts[0]},
        )


def test_setup_delegate_call(chain, proxyFactory, safeSingleton, storageSetter, reverter, owner, notOwner, accounts):
    """
    The setup call runs against the wallet's storage
    """
    safe = deployUninitialized(chain, proxyFactory, safeSingleton, accounts[0])

    with reverts("GS002"):
        safe.setup(
            [owner.address], 1, notOwner, "0xbaddad", ZERO_ADDRESS, ZERO_ADDRESS, 0, ZERO_ADDRESS,
            {"from": accounts[0]},
        )
    with reverts("GS000"):
        safe.setup(
            [owner.address], 1, reverter, reverter.revert.encode_input(), ZERO_ADDRESS, ZERO_ADDRESS, 0,
            ZERO_ADDRESS, {"from": accounts[0]},
        )

    callData = storageSetter.setStorage.encode_input("0xbaddad")
    tx = safe.setup(
        [owner.address], 1, storageSetter, callData, ZERO_ADDRESS, ZERO_ADDRESS, 0, ZERO_ADDRESS,
        {"from": accounts[0]},
    )
    assert tx.events["SafeSetup"]["initializer"] == storageSetter
    assert chain.get_storage_at(safe.address, STORAGE_SETTER_SLOT) == HexBytes("0xbaddad" + "00" * 29)


def test_setup_payment(chain, proxyFactory, safeSingleton, owner, receiver, accounts):
    safe = deployUninitialized(chain, proxyFactory, safeSingleton, accounts[0])
    accounts[0].transfer(safe, 1000)
    beforeBalance = receiver.balance()

    with reverts("GS011") as excinfo:
        safe.setup(
            [owner.address], 1, ZERO_ADDRESS, "0x", ZERO_ADDRESS, ZERO_ADDRESS, 1001, receiver,
            {"from": accounts[0]},
        )
    assert isinstance(excinfo.value, FatalTransferError)

    safe.setup(
        [owner.address], 1, ZERO_ADDRESS, "0x", ZERO_ADDRESS, ZERO_ADDRESS, 1000, receiver,
        {"from": accounts[0]},
    )
    assert receiver.balance() == beforeBalance + 1000
    assert safe.balance() == 0


def test_setup_token_payment(chain, proxyFactory, safeSingleton, tokenErc20, owner, receiver, accounts):
    safe = deployUninitialized(chain, proxyFactory, safeSingleton, accounts[0])
    tokenErc20.mint(safe, 500, {"from": accounts[0]})

    with reverts("GS012"):
        safe.setup(
            [owner.address], 1, ZERO_ADDRESS, "0x", ZERO_ADDRESS, tokenErc20, 501, receiver,
            {"from": accounts[0]},
        )

    safe.setup(
        [owner.address], 1, ZERO_ADDRESS, "0x", ZERO_ADDRESS, tokenErc20, 500, receiver,
        {"from": accounts[0]},
    )
    assert tokenErc20.balanceOf(receiver) == 500
    assert tokenErc20.balanceOf(safe) == 0

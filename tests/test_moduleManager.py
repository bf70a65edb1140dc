#!/usr/bin/python3

from hexbytes import HexBytes

from safe_wallet.errors import AuthorizationError, ValidationError, decode_revert_reason
from mocks import STORAGE_SETTER_SLOT
from testUtils import ZERO_ADDRESS, ExecuteSelfCall, reverts

SENTINEL = "0x0000000000000000000000000000000000000001"


def enableModule(proxyContract, module, owner):
    callData = proxyContract.enableModule.encode_input(module)
    return ExecuteSelfCall(callData, proxyContract, owner)


def test_enable_module(safeProxy, owner, notOwner):
    tx = enableModule(safeProxy, notOwner, owner)

    assert tx.events["EnabledModule"]["module"] == notOwner
    assert safeProxy.isModuleEnabled(notOwner)
    assert safeProxy.getModules() == [notOwner.address]
    assert not safeProxy.isModuleEnabled(SENTINEL)
    assert safeProxy.nonce() == 1


def test_module_management_is_self_call_only(safeProxy, owner, notOwner):
    with reverts("GS031"):
        safeProxy.enableModule(notOwner, {"from": owner})
    enableModule(safeProxy, notOwner, owner)
    with reverts("GS031"):
        safeProxy.disableModule(notOwner, {"from": notOwner})


def test_enable_module_invalid(safeProxy, owner, notOwner):
    with reverts("GS101") as excinfo:
        safeProxy.enableModule(ZERO_ADDRESS, {"from": safeProxy})
    assert isinstance(excinfo.value, ValidationError)
    with reverts("GS101"):
        safeProxy.enableModule(SENTINEL, {"from": safeProxy})

    enableModule(safeProxy, notOwner, owner)
    with reverts("GS102"):
        safeProxy.enableModule(notOwner, {"from": safeProxy})


def test_disable_module(safeProxy, owner, notOwner, receiver):
    enableModule(safeProxy, notOwner, owner)
    callData = safeProxy.disableModule.encode_input(notOwner.address)
    tx = ExecuteSelfCall(callData, safeProxy, owner)

    assert tx.events["DisabledModule"]["module"] == notOwner
    assert not safeProxy.isModuleEnabled(notOwner)
    assert safeProxy.getModules() == []

    with reverts("GS104"):
        safeProxy.execTransactionFromModule(receiver, 0, "0x", 0, {"from": notOwner})
    with reverts("GS103"):
        safeProxy.disableModule(notOwner, {"from": safeProxy})
    with reverts("GS101"):
        safeProxy.disableModule(SENTINEL, {"from": safeProxy})


def test_exec_from_module_requires_module(safeProxy, owner, receiver):
    """
    Owners are not modules
    """
    with reverts("GS104") as excinfo:
        safeProxy.execTransactionFromModule(receiver, 0, "0x", 0, {"from": owner})
    assert isinstance(excinfo.value, AuthorizationError)
    with reverts("GS104"):
        safeProxy.execTransactionFromModuleReturnData(receiver, 0, "0x", 0, {"from": owner})


def test_exec_from_module(safeProxy, owner, notOwner, receiver, accounts):
    """
    A module moves ether without signatures, nonce or refund
    """
    accounts[0].transfer(safeProxy, "1 ether")
    enableModule(safeProxy, notOwner, owner)
    beforeBalance = receiver.balance()
    nonce = safeProxy.nonce()

    tx = safeProxy.execTransactionFromModule(receiver, 1000, "0x", 0, {"from": notOwner})

    assert tx.return_value is True
    assert tx.events["ExecutionFromModuleSuccess"]["module"] == notOwner
    assert receiver.balance() == beforeBalance + 1000
    assert safeProxy.nonce() == nonce
    assert "ExecutionSuccess" not in tx.events


def test_exec_from_module_failure(safeProxy, owner, notOwner, reverter):
    """
    A failing module call is reported, not reverted
    """
    enableModule(safeProxy, notOwner, owner)
    callData = reverter.revert.encode_input()

    tx = safeProxy.execTransactionFromModule(reverter, 0, callData, 0, {"from": notOwner})
    assert tx.return_value is False
    assert tx.events["ExecutionFromModuleFailure"]["module"] == notOwner

    tx = safeProxy.execTransactionFromModuleReturnData(reverter, 0, callData, 0, {"from": notOwner})
    success, returnData = tx.return_value
    assert success is False
    assert decode_revert_reason(returnData) == "Reverter: always reverts"


def test_exec_from_module_return_data(safeProxy, owner, notOwner, tokenErc20, accounts):
    enableModule(safeProxy, notOwner, owner)
    tokenErc20.mint(safeProxy, 1234, {"from": accounts[0]})
    callData = tokenErc20.balanceOf.encode_input(safeProxy.address)

    tx = safeProxy.execTransactionFromModuleReturnData(tokenErc20, 0, callData, 0, {"from": notOwner})
    success, returnData = tx.return_value
    assert success is True
    assert tokenErc20.balanceOf.decode_output(returnData) == 1234


def test_exec_from_module_delegate_call(safeProxy, owner, notOwner, storageSetter, chain):
    enableModule(safeProxy, notOwner, owner)
    callData = storageSetter.setStorage.encode_input("0xbaddad")

    safeProxy.execTransactionFromModule(storageSetter, 0, callData, 1, {"from": notOwner})

    assert chain.get_storage_at(safeProxy.address, STORAGE_SETTER_SLOT) == HexBytes(
        "0xbaddad" + "00" * 29
    )
    assert chain.get_storage_at(storageSetter.address, STORAGE_SETTER_SLOT) == HexBytes(b"\x00" * 32)

    with reverts("GS015"):
        safeProxy.execTransactionFromModule(storageSetter, 0, callData, 2, {"from": notOwner})


def test_module_manages_wallet(safeProxy, owner, notOwner, receiver):
    """
    Modules can call the wallet's management functions through the module path
    """
    enableModule(safeProxy, notOwner, owner)
    callData = safeProxy.addOwnerWithThreshold.encode_input(receiver.address, 2)

    tx = safeProxy.execTransactionFromModule(safeProxy, 0, callData, 0, {"from": notOwner})

    assert tx.events["AddedOwner"]["owner"] == receiver
    assert safeProxy.getOwners() == [owner.address, receiver.address]
    assert safeProxy.getThreshold() == 2


def test_modules_paginated(safeProxy, owner, accounts):
    modules = [accounts.add() for _ in range(3)]
    for module in modules:
        enableModule(safeProxy, module, owner)

    assert safeProxy.getModules() == [m.address for m in modules]

    page, nextStart = safeProxy.getModulesPaginated(0, 2)
    assert page == [modules[0].address, modules[1].address]
    assert nextStart == 2

    page, nextStart = safeProxy.getModulesPaginated(nextStart, 2)
    assert page == [modules[2].address]
    assert nextStart == 0

    page, nextStart = safeProxy.getModulesPaginated(0, 10)
    assert len(page) == 3
    assert nextStart == 0

#!/usr/bin/python3

import pytest

from mocks import EtherSink
from testUtils import ZERO_ADDRESS, ExecuteExecTransaction, reverts

GWEI = 10**9


@pytest.fixture(scope="function")
def fundedSafe(safeProxy, accounts):
    accounts[0].transfer(safeProxy, "1 ether")
    return safeProxy


def payFor(proxyContract, receiver, baseGas, gasPrice, gasToken, refundReceiver, owner, sender, txParams=None):
    """
    Send 1 wei to the receiver, refunding the relayer
    """
    return ExecuteExecTransaction(
        receiver.address,
        1,
        "0x",
        0,
        100000,
        baseGas,
        gasPrice,
        gasToken,
        refundReceiver,
        owner,
        sender,
        proxyContract,
        txParams,
    )


def test_refund_to_tx_origin(fundedSafe, owner, relayer, receiver):
    """
    Without a refund receiver the relayer sending the transaction gets paid
    """
    beforeRelayerBalance = relayer.balance()
    beforeWalletBalance = fundedSafe.balance()

    tx = payFor(fundedSafe, receiver, 0, 1, ZERO_ADDRESS, ZERO_ADDRESS, owner, relayer)

    payment = tx.events["ExecutionSuccess"]["payment"]
    assert payment > 0
    assert relayer.balance() == beforeRelayerBalance + payment
    assert fundedSafe.balance() == beforeWalletBalance - payment - 1


def test_refund_is_capped_by_tx_gas_price(fundedSafe, owner, relayer, receiver):
    # gas price below the transaction's, paid as signed
    tx = payFor(fundedSafe, receiver, 0, 1, ZERO_ADDRESS, ZERO_ADDRESS, owner, relayer)
    gasUsed = tx.events["ExecutionSuccess"]["payment"]

    # gas price above the transaction's 1 gwei default, capped
    tx = payFor(fundedSafe, receiver, 0, 100 * GWEI, ZERO_ADDRESS, ZERO_ADDRESS, owner, relayer)
    assert tx.events["ExecutionSuccess"]["payment"] == gasUsed * GWEI

    tx = payFor(fundedSafe, receiver, 0, 5, ZERO_ADDRESS, ZERO_ADDRESS, owner, relayer, {"gas_price": 3})
    assert tx.events["ExecutionSuccess"]["payment"] == gasUsed * 3


def test_base_gas_is_paid(fundedSafe, owner, relayer, receiver):
    tx = payFor(fundedSafe, receiver, 0, 1, ZERO_ADDRESS, ZERO_ADDRESS, owner, relayer)
    gasUsed = tx.events["ExecutionSuccess"]["payment"]

    tx = payFor(fundedSafe, receiver, 30000, 1, ZERO_ADDRESS, ZERO_ADDRESS, owner, relayer)
    assert tx.events["ExecutionSuccess"]["payment"] == gasUsed + 30000


def test_refund_receiver(fundedSafe, owner, relayer, receiver, accounts):
    refundReceiver = accounts.add()

    tx = payFor(fundedSafe, receiver, 0, 1, ZERO_ADDRESS, refundReceiver, owner, relayer)

    assert refundReceiver.balance() == tx.events["ExecutionSuccess"]["payment"]


def test_failed_ether_refund(fundedSafe, owner, relayer, receiver, chain, accounts):
    """
    A refund receiver that needs more than the stipend cannot be paid
    """
    etherSink = chain.deploy(EtherSink, tx={"from": accounts[0]})
    with reverts("GS011"):
        payFor(fundedSafe, receiver, 0, 1, ZERO_ADDRESS, etherSink, owner, relayer)
    assert fundedSafe.nonce() == 0

    # and neither can anyone once the wallet runs dry
    chain.set_balance(fundedSafe.address, 1)
    with reverts("GS011"):
        payFor(fundedSafe, receiver, 0, 1, ZERO_ADDRESS, ZERO_ADDRESS, owner, relayer)


def test_token_refund(fundedSafe, owner, relayer, receiver, tokenErc20, accounts):
    tokenErc20.mint(fundedSafe, 10**18, {"from": accounts[0]})
    beforeRelayerErc20Balance = tokenErc20.balanceOf(relayer)
    beforeRelayerBalance = relayer.balance()

    # token refunds are not capped by the transaction gas price
    tx = payFor(fundedSafe, receiver, 1000, 100 * GWEI, tokenErc20, ZERO_ADDRESS, owner, relayer)

    payment = tx.events["ExecutionSuccess"]["payment"]
    assert payment > 1000 * 100 * GWEI
    assert payment % (100 * GWEI) == 0
    assert tokenErc20.balanceOf(relayer) == beforeRelayerErc20Balance + payment
    assert tokenErc20.balanceOf(fundedSafe) == 10**18 - payment
    assert relayer.balance() == beforeRelayerBalance


def test_failed_token_refund(fundedSafe, owner, relayer, receiver, tokenErc20):
    # the gas token must be a contract
    with reverts("GS012"):
        payFor(fundedSafe, receiver, 0, 1, receiver, ZERO_ADDRESS, owner, relayer)
    # and the wallet must hold enough of it
    with reverts("GS012"):
        payFor(fundedSafe, receiver, 0, 1, tokenErc20, ZERO_ADDRESS, owner, relayer)
    assert fundedSafe.nonce() == 0


def test_payment_in_failure_event(fundedSafe, owner, relayer, reverter):
    """
    A failed call with a gas price still refunds the relayer
    """
    beforeRelayerBalance = relayer.balance()
    beforeWalletBalance = fundedSafe.balance()

    tx = ExecuteExecTransaction(
        reverter.address,
        0,
        reverter.revert.encode_input(),
        0,
        100000,
        0,
        1,
        ZERO_ADDRESS,
        ZERO_ADDRESS,
        owner,
        relayer,
        fundedSafe,
    )

    assert tx.return_value is False
    assert "ExecutionSuccess" not in tx.events
    payment = tx.events["ExecutionFailure"]["payment"]
    assert payment > 0
    assert relayer.balance() == beforeRelayerBalance + payment
    assert fundedSafe.balance() == beforeWalletBalance - payment
    assert fundedSafe.nonce() == 1

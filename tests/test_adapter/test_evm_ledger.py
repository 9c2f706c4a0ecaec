"""
EVMLedger Test Suite

Runs the web3-backed ledger against a mocked ``AsyncWeb3``: contract reads,
pre-flight rejections that never broadcast, fee accounting from the
receipt, reverts and receipt timeouts.
"""

from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from web3.exceptions import TransactionNotFound

from gasless_permit.adapters.evm.adapter import EVMLedger
from gasless_permit.adapters.evm.schemas import AuthorizeOperation, MoveFromOperation
from gasless_permit.engine.exceptions import UnknownAccountError
from gasless_permit.schemas.bases import FailureKind, TransactionStatus

from test_mocks import (
    CHAIN_ID,
    DOMAIN,
    NOW,
    OTHER,
    OWNER,
    RECIPIENT,
    RELAYER,
    RELAYER_FUNDS,
    RELAYER_KEY,
    TOKEN_ADDRESS,
    TOKEN_NAME,
    TTL,
    create_signed_permit,
)

GAS_PRICE = 1_000_000_000
RECEIPT = {"status": 1, "gasUsed": 48_000, "effectiveGasPrice": 2_000_000_000, "blockNumber": 7}


async def _resolved(value):
    return value


class MockEth:
    """Stand-in for ``AsyncWeb3.eth`` with awaitable properties."""

    def __init__(self, contract):
        self.contract = MagicMock(return_value=contract)
        self.get_balance = AsyncMock(return_value=RELAYER_FUNDS)
        self.get_block = AsyncMock(return_value={"timestamp": NOW})
        self.get_transaction_count = AsyncMock(return_value=0)
        self.send_raw_transaction = AsyncMock(return_value=bytes.fromhex("ab" * 32))
        self.get_transaction_receipt = AsyncMock(return_value=dict(RECEIPT))

    @property
    def chain_id(self):
        return _resolved(CHAIN_ID)

    @property
    def gas_price(self):
        return _resolved(GAS_PRICE)


def _reads(contract, name, value=None, side_effect=None):
    getattr(contract.functions, name).return_value.call = AsyncMock(return_value=value, side_effect=side_effect)


def _tx(contract, name, gas=50_000):
    tx_fn = MagicMock()
    tx_fn.estimate_gas = AsyncMock(return_value=gas)
    tx_fn.build_transaction = AsyncMock(return_value={"to": TOKEN_ADDRESS, "data": "0x"})
    getattr(contract.functions, name).return_value = tx_fn
    return tx_fn


@pytest.fixture
def contract():
    contract = MagicMock()
    _reads(contract, "name", TOKEN_NAME)
    _reads(contract, "version", "1")
    _reads(contract, "nonces", side_effect=[0, 1])
    _reads(contract, "balanceOf", 100)
    _reads(contract, "allowance", 100)
    return contract


@pytest.fixture
def ledger(contract):
    w3 = MagicMock()
    w3.eth = MockEth(contract)
    ledger = EVMLedger(
        token_address=TOKEN_ADDRESS,
        private_keys=[RELAYER_KEY],
        w3=w3,
        domain_version="1",
        max_attempts=2,
        poll_interval=0,
    )
    signer = Mock()
    signer.address = RELAYER
    signer.sign_transaction.return_value = Mock(raw_transaction=b"\x02raw")
    ledger._accounts[RELAYER] = signer
    return ledger


class TestReads:

    @pytest.mark.asyncio
    async def test_domain_from_chain(self, ledger):
        assert await ledger.get_domain() == DOMAIN

    @pytest.mark.asyncio
    async def test_version_falls_back_to_configured(self, ledger, contract):
        _reads(contract, "version", side_effect=Exception("execution reverted"))
        assert await ledger.token.get_version() == "1"

    @pytest.mark.asyncio
    async def test_time_is_latest_block(self, ledger):
        assert await ledger.get_current_time() == NOW

    @pytest.mark.asyncio
    async def test_native_balance(self, ledger):
        assert await ledger.get_balance(RELAYER) == RELAYER_FUNDS


class TestSubmitAuthorize:

    @pytest.mark.asyncio
    async def test_unknown_fee_payer(self, ledger):
        with pytest.raises(UnknownAccountError):
            await ledger.submit(AuthorizeOperation(permit=create_signed_permit()), OTHER)

    @pytest.mark.asyncio
    async def test_success_reports_receipt_fee(self, ledger, contract):
        tx_fn = _tx(contract, "permit")

        outcome = await ledger.submit(AuthorizeOperation(permit=create_signed_permit()), RELAYER)

        assert outcome.status == TransactionStatus.SUCCESS
        assert outcome.fee_paid == 48_000 * 2_000_000_000
        assert outcome.block_number == 7
        assert outcome.tx_hash == "ab" * 32
        assert outcome.effects == {"nonce": 1, "allowance": 100}
        build_args = tx_fn.build_transaction.await_args.args[0]
        assert build_args["from"] == RELAYER
        assert build_args["gas"] == 55_000

    @pytest.mark.asyncio
    async def test_expired_permit_is_not_broadcast(self, ledger, contract):
        tx_fn = _tx(contract, "permit")
        ledger.w3.eth.get_block.return_value = {"timestamp": NOW + TTL + 1}

        outcome = await ledger.submit(AuthorizeOperation(permit=create_signed_permit()), RELAYER)

        assert outcome.status == TransactionStatus.REJECTED
        assert outcome.failure_kind == FailureKind.EXPIRED_DEADLINE
        assert outcome.fee_paid == 0
        tx_fn.estimate_gas.assert_not_awaited()
        ledger.w3.eth.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_nonce_is_not_broadcast(self, ledger, contract):
        _tx(contract, "permit")
        _reads(contract, "nonces", 1)

        outcome = await ledger.submit(AuthorizeOperation(permit=create_signed_permit(nonce=0)), RELAYER)

        assert outcome.failure_kind == FailureKind.NONCE_MISMATCH
        ledger.w3.eth.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_uncovered_fee_is_rejected(self, ledger, contract):
        _tx(contract, "permit")
        ledger.w3.eth.get_balance.return_value = 1

        outcome = await ledger.submit(AuthorizeOperation(permit=create_signed_permit()), RELAYER)

        assert outcome.status == TransactionStatus.REJECTED
        assert outcome.failure_kind == FailureKind.INSUFFICIENT_FEE
        ledger.w3.eth.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reverted_receipt(self, ledger, contract):
        _tx(contract, "permit")
        ledger.w3.eth.get_transaction_receipt.return_value = dict(RECEIPT, status=0)

        outcome = await ledger.submit(AuthorizeOperation(permit=create_signed_permit()), RELAYER)

        assert outcome.status == TransactionStatus.FAILED
        assert outcome.failure_kind == FailureKind.LEDGER_ERROR
        assert outcome.fee_paid == 48_000 * 2_000_000_000
        assert outcome.effects is None

    @pytest.mark.asyncio
    async def test_receipt_timeout(self, ledger, contract):
        _tx(contract, "permit")
        ledger.w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("pending")

        outcome = await ledger.submit(AuthorizeOperation(permit=create_signed_permit()), RELAYER)

        assert outcome.status == TransactionStatus.TIMEOUT
        assert outcome.failure_kind == FailureKind.LEDGER_ERROR
        assert ledger.w3.eth.get_transaction_receipt.await_count == 2

    @pytest.mark.asyncio
    async def test_rpc_error_becomes_network_error(self, ledger, contract):
        tx_fn = _tx(contract, "permit")
        tx_fn.estimate_gas.side_effect = ConnectionError("node unreachable")

        outcome = await ledger.submit(AuthorizeOperation(permit=create_signed_permit()), RELAYER)

        assert outcome.status == TransactionStatus.NETWORK_ERROR
        assert outcome.failure_kind == FailureKind.LEDGER_ERROR
        assert "node unreachable" in outcome.error_message
        assert outcome.execution_time is not None


class TestSubmitMoveFrom:

    @pytest.mark.asyncio
    async def test_success(self, ledger, contract):
        tx_fn = _tx(contract, "transferFrom", gas=40_000)

        outcome = await ledger.submit(MoveFromOperation(owner=OWNER, recipient=RECIPIENT, amount=30), RELAYER)

        assert outcome.is_success()
        assert outcome.operation_type == "move_from"
        assert contract.functions.transferFrom.call_args.args == (OWNER, RECIPIENT, 30)
        assert tx_fn.build_transaction.await_args.args[0]["gas"] == 44_000
        assert set(outcome.effects) == {"allowance", "owner_balance", "recipient_balance"}

    @pytest.mark.asyncio
    async def test_insufficient_allowance_is_not_broadcast(self, ledger, contract):
        _tx(contract, "transferFrom")
        _reads(contract, "allowance", 10)

        outcome = await ledger.submit(MoveFromOperation(owner=OWNER, recipient=RECIPIENT, amount=30), RELAYER)

        assert outcome.status == TransactionStatus.REJECTED
        assert outcome.failure_kind == FailureKind.INSUFFICIENT_ALLOWANCE
        ledger.w3.eth.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_insufficient_balance_is_not_broadcast(self, ledger, contract):
        _tx(contract, "transferFrom")
        _reads(contract, "balanceOf", 5)

        outcome = await ledger.submit(MoveFromOperation(owner=OWNER, recipient=RECIPIENT, amount=30), RELAYER)

        assert outcome.failure_kind == FailureKind.INSUFFICIENT_BALANCE
        ledger.w3.eth.send_raw_transaction.assert_not_awaited()

"""
PermitToken Test Suite

State-machine behaviour of the in-memory consumer: authorize, move_from,
replay protection, all-or-nothing transitions and per-owner ordering.
"""

import asyncio

import pytest

from gasless_permit.schemas.bases import FailureKind

from test_mocks import (
    NON_HEX_ADDRESS,
    NOW,
    OTHER,
    OWNER,
    RECIPIENT,
    RELAYER,
    create_signed_permit,
    create_token,
)


async def _state(token):
    return (
        await token.get_nonce(OWNER),
        await token.get_allowance(OWNER, RELAYER),
        await token.get_balance(OWNER),
        await token.get_balance(RECIPIENT),
    )


class TestAuthorize:

    @pytest.mark.asyncio
    async def test_sets_allowance_and_increments_nonce(self):
        token = create_token()

        result = await token.authorize(create_signed_permit(value=100), current_time=NOW)

        assert result.is_success()
        assert await token.get_nonce(OWNER) == 1
        assert await token.get_allowance(OWNER, RELAYER) == 100

    @pytest.mark.asyncio
    async def test_later_permit_replaces_allowance(self):
        token = create_token()
        await token.authorize(create_signed_permit(value=100, nonce=0), current_time=NOW)

        result = await token.authorize(create_signed_permit(value=7, nonce=1), current_time=NOW)

        assert result.is_success()
        assert await token.get_allowance(OWNER, RELAYER) == 7
        assert await token.get_nonce(OWNER) == 2

    @pytest.mark.asyncio
    async def test_replay_is_rejected_without_change(self):
        token = create_token()
        permit = create_signed_permit()
        await token.authorize(permit, current_time=NOW)
        before = await _state(token)

        result = await token.authorize(permit, current_time=NOW)

        assert result.failure_kind == FailureKind.NONCE_MISMATCH
        assert await _state(token) == before

    @pytest.mark.asyncio
    async def test_expired_permit_leaves_state(self):
        token = create_token()
        before = await _state(token)

        result = await token.authorize(create_signed_permit(deadline=NOW - 1), current_time=NOW)

        assert result.failure_kind == FailureKind.EXPIRED_DEADLINE
        assert await _state(token) == before

    @pytest.mark.asyncio
    async def test_zero_value_permit(self):
        token = create_token()
        result = await token.authorize(create_signed_permit(value=0), current_time=NOW)

        assert result.is_success()
        assert await token.get_allowance(OWNER, RELAYER) == 0
        assert await token.get_nonce(OWNER) == 1

    @pytest.mark.asyncio
    async def test_non_hex_spender_is_bad_signature(self):
        token = create_token()
        permit = create_signed_permit().model_copy(update={"spender": NON_HEX_ADDRESS})

        result = await token.authorize(permit, current_time=NOW)

        assert result.failure_kind == FailureKind.BAD_SIGNATURE
        assert await token.get_nonce(OWNER) == 0

    @pytest.mark.asyncio
    async def test_concurrent_permits_for_same_nonce(self):
        token = create_token()
        first = create_signed_permit(value=10)
        second = create_signed_permit(value=20)

        results = await asyncio.gather(
            token.authorize(first, current_time=NOW),
            token.authorize(second, current_time=NOW),
        )

        assert [r.is_success() for r in results] == [True, False]
        assert results[1].failure_kind == FailureKind.NONCE_MISMATCH
        assert await token.get_nonce(OWNER) == 1
        assert await token.get_allowance(OWNER, RELAYER) == 10


class TestMoveFrom:

    @pytest.mark.asyncio
    async def test_moves_and_reduces_allowance(self):
        token = create_token()
        await token.authorize(create_signed_permit(value=100), current_time=NOW)

        result = await token.move_from(RELAYER, OWNER, RECIPIENT, 30)

        assert result.is_success()
        assert result.effects == {"allowance": 70, "owner_balance": 70, "recipient_balance": 30}
        assert await token.get_balance(OWNER) == 70
        assert await token.get_balance(RECIPIENT) == 30

    @pytest.mark.asyncio
    async def test_total_supply_is_conserved(self):
        token = create_token(balances={OWNER: 100, RECIPIENT: 5})
        await token.authorize(create_signed_permit(value=100), current_time=NOW)

        await token.move_from(RELAYER, OWNER, RECIPIENT, 40)

        assert await token.get_balance(OWNER) + await token.get_balance(RECIPIENT) == 105

    @pytest.mark.asyncio
    async def test_insufficient_allowance(self):
        token = create_token()
        await token.authorize(create_signed_permit(value=10), current_time=NOW)
        before = await _state(token)

        result = await token.move_from(RELAYER, OWNER, RECIPIENT, 11)

        assert result.failure_kind == FailureKind.INSUFFICIENT_ALLOWANCE
        assert await _state(token) == before

    @pytest.mark.asyncio
    async def test_insufficient_balance(self):
        token = create_token(balances={OWNER: 50})
        await token.authorize(create_signed_permit(value=100), current_time=NOW)
        before = await _state(token)

        result = await token.move_from(RELAYER, OWNER, RECIPIENT, 60)

        assert result.failure_kind == FailureKind.INSUFFICIENT_BALANCE
        assert await _state(token) == before

    @pytest.mark.asyncio
    async def test_only_spender_can_use_allowance(self):
        token = create_token()
        await token.authorize(create_signed_permit(value=100), current_time=NOW)

        result = await token.move_from(OTHER, OWNER, RECIPIENT, 1)

        assert result.failure_kind == FailureKind.INSUFFICIENT_ALLOWANCE
        assert await token.get_allowance(OWNER, RELAYER) == 100

    @pytest.mark.asyncio
    async def test_zero_amount_without_allowance(self):
        token = create_token()
        result = await token.move_from(RELAYER, OWNER, RECIPIENT, 0)
        assert result.is_success()
        assert await token.get_balance(OWNER) == 100

    @pytest.mark.asyncio
    async def test_move_to_self(self):
        token = create_token()
        await token.authorize(create_signed_permit(value=100), current_time=NOW)

        result = await token.move_from(RELAYER, OWNER, OWNER, 30)

        assert result.is_success()
        assert await token.get_balance(OWNER) == 100
        assert await token.get_allowance(OWNER, RELAYER) == 70

    @pytest.mark.asyncio
    async def test_negative_amount_raises(self):
        token = create_token()
        with pytest.raises(ValueError):
            await token.move_from(RELAYER, OWNER, RECIPIENT, -1)

    @pytest.mark.asyncio
    async def test_concurrent_moves_never_overdraw(self):
        token = create_token()
        await token.authorize(create_signed_permit(value=100), current_time=NOW)

        results = await asyncio.gather(*(token.move_from(RELAYER, OWNER, RECIPIENT, 30) for _ in range(4)))

        assert sum(r.is_success() for r in results) == 3
        assert await token.get_balance(OWNER) == 10
        assert await token.get_allowance(OWNER, RELAYER) == 10


class TestConstruction:

    def test_negative_initial_balance(self):
        with pytest.raises(ValueError):
            create_token(balances={OWNER: -1})

    @pytest.mark.asyncio
    async def test_addresses_are_case_insensitive(self):
        token = create_token()
        assert await token.get_balance(OWNER.lower()) == 100

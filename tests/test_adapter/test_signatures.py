"""
Signing and Verification Test Suite

Covers ``sign_permit``, ``LocalAccountSigner`` and ``verify_permit``:
recovery of the owner, malformed and malleable signatures, deadline
boundaries, nonce checks and domain binding.
"""

from dataclasses import replace

import pytest

from gasless_permit.adapters.evm.constants import SECP256K1_N
from gasless_permit.adapters.evm.schemas import EVMECDSASignature
from gasless_permit.adapters.evm.signatures import LocalAccountSigner, sign_permit
from gasless_permit.adapters.evm.verifies import recover_permit_signer, verify_permit
from gasless_permit.engine.exceptions import SigningError
from gasless_permit.schemas.bases import FailureKind

from test_mocks import (
    DOMAIN,
    NON_HEX_ADDRESS,
    NOW,
    OTHER,
    OTHER_KEY,
    OWNER,
    OWNER_KEY,
    create_request,
    create_signed_permit,
)


class TestSignPermit:

    def test_signature_recovers_owner(self):
        request = create_request()
        signature = sign_permit(private_key=OWNER_KEY, domain=DOMAIN, request=request)

        assert signature.validate_format()
        assert recover_permit_signer(DOMAIN, request, signature) == OWNER

    def test_components_are_padded(self):
        signature = sign_permit(private_key=OWNER_KEY, domain=DOMAIN, request=create_request())
        assert len(signature.r) == 66
        assert len(signature.s) == 66
        assert signature.v in (27, 28)

    def test_packed_hex_round_trip(self):
        signature = sign_permit(private_key=OWNER_KEY, domain=DOMAIN, request=create_request())
        unpacked = EVMECDSASignature.from_packed_hex(signature.to_packed_hex())
        assert unpacked.to_vrs() == signature.to_vrs()

    def test_packed_hex_accepts_zero_based_v(self):
        signature = EVMECDSASignature.from_packed_hex("0x" + "11" * 32 + "22" * 32 + "01")
        assert signature.v == 28

    def test_packed_hex_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            EVMECDSASignature.from_packed_hex("0x1234")


class TestLocalAccountSigner:

    @pytest.mark.asyncio
    async def test_signs_for_own_address(self):
        signer = LocalAccountSigner(OWNER_KEY)
        request = create_request()

        signature = await signer.sign(DOMAIN, request)

        assert signer.address == OWNER
        assert recover_permit_signer(DOMAIN, request, signature) == OWNER

    @pytest.mark.asyncio
    async def test_refuses_other_owner(self):
        signer = LocalAccountSigner(OTHER_KEY)
        with pytest.raises(SigningError):
            await signer.sign(DOMAIN, create_request(owner=OWNER))


class TestVerifyPermit:

    def test_valid_permit(self):
        result = verify_permit(create_signed_permit(), domain=DOMAIN, current_nonce=0, current_time=NOW)

        assert result.is_success()
        assert result.recovered_signer == OWNER
        assert result.authorized_amount == 100
        assert result.get_error_message() is None

    def test_deadline_equal_to_now_is_valid(self):
        permit = create_signed_permit(deadline=NOW)
        assert verify_permit(permit, domain=DOMAIN, current_nonce=0, current_time=NOW).is_success()

    def test_past_deadline_is_expired(self):
        permit = create_signed_permit(deadline=NOW - 1)
        result = verify_permit(permit, domain=DOMAIN, current_nonce=0, current_time=NOW)
        assert result.failure_kind == FailureKind.EXPIRED_DEADLINE

    def test_zero_deadline_is_always_expired(self):
        permit = create_signed_permit(deadline=0)
        result = verify_permit(permit, domain=DOMAIN, current_nonce=0, current_time=0)
        assert result.failure_kind == FailureKind.EXPIRED_DEADLINE

    @pytest.mark.parametrize("current_nonce", [1, 5])
    def test_nonce_must_match_exactly(self, current_nonce):
        permit = create_signed_permit(nonce=0)
        result = verify_permit(permit, domain=DOMAIN, current_nonce=current_nonce, current_time=NOW)
        assert result.failure_kind == FailureKind.NONCE_MISMATCH
        assert result.error_details == {"presented_nonce": 0, "current_nonce": current_nonce}

    def test_future_nonce_is_rejected(self):
        permit = create_signed_permit(nonce=2)
        result = verify_permit(permit, domain=DOMAIN, current_nonce=1, current_time=NOW)
        assert result.failure_kind == FailureKind.NONCE_MISMATCH

    def test_signer_other_than_owner(self):
        permit = create_signed_permit(private_key=OTHER_KEY, owner=OWNER)
        result = verify_permit(permit, domain=DOMAIN, current_nonce=0, current_time=NOW)

        assert result.failure_kind == FailureKind.BAD_SIGNATURE
        assert result.recovered_signer == OTHER

    @pytest.mark.parametrize("field,value", [
        ("chain_id", 1),
        ("verifying_contract", "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"),
        ("name", "OtherToken"),
        ("version", "2"),
    ])
    def test_signature_from_other_domain(self, field, value):
        permit = create_signed_permit(domain=replace(DOMAIN, **{field: value}))
        result = verify_permit(permit, domain=DOMAIN, current_nonce=0, current_time=NOW)
        assert result.failure_kind == FailureKind.BAD_SIGNATURE

    def test_tampered_value(self):
        permit = create_signed_permit(value=100).model_copy(update={"value": 1000})
        result = verify_permit(permit, domain=DOMAIN, current_nonce=0, current_time=NOW)
        assert result.failure_kind == FailureKind.BAD_SIGNATURE

    def test_malformed_components(self):
        permit = create_signed_permit()
        bad = permit.model_copy(update={"signature": EVMECDSASignature(v=29, r=permit.signature.r, s="0x12")})
        result = verify_permit(bad, domain=DOMAIN, current_nonce=0, current_time=NOW)
        assert result.failure_kind == FailureKind.BAD_SIGNATURE

    @pytest.mark.parametrize("field", ["owner", "spender"])
    def test_non_hex_address(self, field):
        permit = create_signed_permit().model_copy(update={field: NON_HEX_ADDRESS})
        result = verify_permit(permit, domain=DOMAIN, current_nonce=0, current_time=NOW)
        assert result.failure_kind == FailureKind.BAD_SIGNATURE

    def test_unencodable_request_does_not_recover(self):
        permit = create_signed_permit()
        request = create_request().model_copy(update={"spender": NON_HEX_ADDRESS})
        assert recover_permit_signer(DOMAIN, request, permit.signature) is None

    def test_high_s_is_rejected(self):
        permit = create_signed_permit()
        v, r, s = permit.signature.to_vrs()
        malleable = EVMECDSASignature.from_components(55 - v, r, SECP256K1_N - s)
        result = verify_permit(
            permit.model_copy(update={"signature": malleable}),
            domain=DOMAIN,
            current_nonce=0,
            current_time=NOW,
        )
        assert result.failure_kind == FailureKind.BAD_SIGNATURE

    def test_checks_run_in_order(self):
        # expired, stale and forged at once: the deadline is reported
        permit = create_signed_permit(private_key=OTHER_KEY, owner=OWNER, nonce=0, deadline=NOW - 1)
        result = verify_permit(permit, domain=DOMAIN, current_nonce=3, current_time=NOW)
        assert result.failure_kind == FailureKind.EXPIRED_DEADLINE

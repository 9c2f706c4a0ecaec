"""
RelayServer Test Suite

Drives the HTTP surface with FastAPI's TestClient over an in-memory ledger:
wallet-style signing of the served typed data, pre-payment rejection of
stale or misdirected permits, and the retry endpoint.
"""

import pytest
from eth_account import Account
from fastapi.testclient import TestClient

from gasless_permit.adapters.evm.schemas import EVMECDSASignature
from gasless_permit.schemas.bases import FailureKind
from gasless_permit.servers import RelayServer

from test_mocks import (
    CHAIN_ID,
    NON_HEX_ADDRESS,
    NOW,
    OTHER,
    OWNER,
    OWNER_KEY,
    RECIPIENT,
    RELAYER,
    RELAYER_FUNDS,
    TOKEN_ADDRESS,
    TTL,
    create_ledger,
    create_orchestrator,
    create_signed_permit,
    create_token,
)


@pytest.fixture
def ledger():
    return create_ledger(create_token())


@pytest.fixture
def client(ledger):
    app = RelayServer(orchestrator=create_orchestrator(ledger), title="test relay")
    with TestClient(app) as client:
        yield client


def sign_context(context: dict) -> dict:
    """Sign served typed data the way a wallet would and build the permit payload."""
    signed = Account.sign_typed_data(OWNER_KEY, full_message=context["typed_data"])
    signature = EVMECDSASignature.from_components(signed.v, signed.r, signed.s)
    return {
        **context["request"],
        "token": context["domain"]["verifyingContract"],
        "chain_id": context["domain"]["chainId"],
        "signature": signature.model_dump(mode="json"),
    }


class TestPermitContext:

    def test_context_for_owner(self, client):
        response = client.get(f"/permit/context/{OWNER}", params={"amount": 30})

        assert response.status_code == 200
        body = response.json()
        assert body["relayer"] == RELAYER
        assert body["request"] == {
            "owner": OWNER,
            "spender": RELAYER,
            "value": 30,
            "nonce": 0,
            "deadline": NOW + TTL,
        }
        assert body["domain"]["chainId"] == CHAIN_ID
        assert body["domain"]["verifyingContract"] == TOKEN_ADDRESS
        assert body["typed_data"]["primaryType"] == "Permit"

    def test_context_defaults_to_full_balance(self, client):
        body = client.get(f"/permit/context/{OWNER}").json()
        assert body["request"]["value"] == 100

    def test_negative_amount(self, client):
        response = client.get(f"/permit/context/{OWNER}", params={"amount": -1})
        assert response.status_code == 400


class TestRelay:

    def test_wallet_signed_permit_is_relayed(self, client, ledger):
        context = client.get(f"/permit/context/{OWNER}", params={"amount": 30}).json()

        response = client.post("/relay", json={"permit": sign_context(context), "recipient": RECIPIENT})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["stage"] == "moved"
        assert body["authorize_tx"] and body["move_tx"]
        assert body["fees_paid"] > 0

    def test_owner_native_balance_untouched(self, client, ledger):
        context = client.get(f"/permit/context/{OWNER}", params={"amount": 30}).json()
        client.post("/relay", json={"permit": sign_context(context), "recipient": RECIPIENT})

        assert ledger._fee_balances[OWNER.lower()] == RELAYER_FUNDS

    def test_stale_nonce_is_rejected_before_payment(self, client, ledger):
        context = client.get(f"/permit/context/{OWNER}", params={"amount": 30}).json()
        permit = sign_context(context)
        assert client.post("/relay", json={"permit": permit, "recipient": RECIPIENT}).status_code == 200
        paid = ledger._fee_balances[RELAYER.lower()]

        response = client.post("/relay", json={"permit": permit, "recipient": RECIPIENT})

        assert response.status_code == 400
        assert response.json()["failure_kind"] == FailureKind.NONCE_MISMATCH.value
        assert ledger._fee_balances[RELAYER.lower()] == paid

    def test_permit_for_other_spender(self, client):
        permit = create_signed_permit(spender=OTHER)

        response = client.post(
            "/relay", json={"permit": permit.model_dump(mode="json"), "recipient": RECIPIENT}
        )

        assert response.status_code == 400
        assert RELAYER in response.json()["error"]

    def test_non_hex_spender_is_rejected_before_payment(self, client, ledger):
        payload = create_signed_permit().model_dump(mode="json")
        payload["spender"] = NON_HEX_ADDRESS

        response = client.post("/relay", json={"permit": payload, "recipient": RECIPIENT})

        assert response.status_code == 400
        assert response.json()["failure_kind"] == FailureKind.BAD_SIGNATURE.value
        assert ledger._fee_balances[RELAYER.lower()] == RELAYER_FUNDS

    def test_malformed_body(self, client):
        response = client.post("/relay", json={"recipient": RECIPIENT})
        assert response.status_code == 422

    def test_amount_above_permit_value(self, client):
        permit = create_signed_permit(value=10)

        response = client.post(
            "/relay",
            json={"permit": permit.model_dump(mode="json"), "recipient": RECIPIENT, "amount": 20},
        )

        assert response.status_code == 409
        assert response.json()["failure_kind"] == FailureKind.INSUFFICIENT_ALLOWANCE.value


class TestRetryMove:

    def test_without_allowance(self, client):
        response = client.post("/relay/retry-move", json={"owner": OWNER, "recipient": RECIPIENT, "amount": 30})

        assert response.status_code == 409
        body = response.json()
        assert body["failure_kind"] == FailureKind.INSUFFICIENT_ALLOWANCE.value
        assert body["recovery"] == "abort"

    def test_negative_amount(self, client):
        response = client.post("/relay/retry-move", json={"owner": OWNER, "recipient": RECIPIENT, "amount": -1})
        assert response.status_code == 422

"""
EVM Permit Verification Helpers

Off-chain verification of EIP-2612 permits. The same checks run in three
places: the in-memory consumer (as its authoritative validation), the
web3-backed ledger (as a pre-flight before paying for a ``permit`` call that
would revert), and the relay server (before accepting a signed permit from a
client).

All cryptographic operations are performed in-process using ``eth_account``.

Current coverage
----------------
recover_permit_signer
    Re-encode ``(domain, request)`` and recover the signing address from
    (v, r, s). Returns ``None`` for signatures that cannot be recovered.

verify_permit
    Check deadline, nonce and signature of an ``EIP2612Permit`` against a
    domain, the owner's current nonce and the ledger time, returning an
    ``EVMVerificationResult`` that carries a ``FailureKind`` on rejection.
"""

from typing import Any, Dict, Optional

from eth_account import Account
from eth_utils import is_hex_address

from ...schemas.bases import FailureKind
from ...schemas.versions import EncodingVersion, LATEST_ENCODING_VERSION
from .constants import SECP256K1_N
from .schemas import EIP2612Permit, EVMECDSASignature, EVMVerificationResult
from .standards import EIP712Domain, encode_permit


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _is_valid_evm_address(addr: Optional[str]) -> bool:
    """
    0x-prefixed 20-byte hex. Checksum and on-chain existence are not
    validated.
    """
    return isinstance(addr, str) and is_hex_address(addr) and addr.startswith("0x")


def recover_permit_signer(
    domain: EIP712Domain,
    request,
    signature: EVMECDSASignature,
    *,
    encoding_version: EncodingVersion = LATEST_ENCODING_VERSION,
) -> Optional[str]:
    """
    Recover the address that signed ``(domain, request)``.

    Args:
        domain: Domain descriptor the verifier believes in.
        request: Object exposing ``owner``, ``spender``, ``value``, ``nonce``
            and ``deadline``.
        signature: Presented signature.

    Returns:
        Checksummed signer address, or ``None`` when the components are
        malformed, non-canonical (high s) or do not recover to any key.
    """
    try:
        v, r, s = signature.to_vrs()
    except ValueError:
        return None
    if not (0 < r < SECP256K1_N) or not (0 < s <= SECP256K1_N // 2):
        return None

    try:
        signable = encode_permit(domain, request, encoding_version=encoding_version)
        return Account.recover_message(signable, vrs=(v, r, s))
    except Exception:
        return None


# ---------------------------------------------------------------------------
# EIP-2612 verification
# ---------------------------------------------------------------------------

def verify_permit(
    permit: EIP2612Permit,
    *,
    domain: EIP712Domain,
    current_nonce: int,
    current_time: int,
    encoding_version: EncodingVersion = LATEST_ENCODING_VERSION,
) -> EVMVerificationResult:
    """
    Verify an EIP-2612 permit against authoritative state.

    Performs the following checks in order, returning on the first failure:

    1. **Deadline** -- ``deadline`` must be non-zero and ``>= current_time``.
       A deadline equal to ``current_time`` is still valid. A zero deadline
       is always expired, never "no expiry".
    2. **Nonce** -- ``permit.nonce`` must equal ``current_nonce`` exactly.
       Anything else is a replay or a race with another authorization.
    3. **Signature** -- ``(domain, request-with-current-nonce)`` is
       re-encoded and the signer recovered from (v, r, s). Malformed or
       high-s components, and any signer other than ``permit.owner``
       (case-insensitive), fail with ``BAD_SIGNATURE``. A signature made
       under another chain, contract, name or version lands here too.

    Args:
        permit: Signed permit presented by the relayer.
        domain: The verifier's own domain descriptor, never the caller's.
        current_nonce: Owner's current nonce as held by the consumer.
        current_time: Ledger time deadlines are checked against.

    Returns:
        ``EVMVerificationResult``; ``is_valid=True`` only when every check
        passes, otherwise ``failure_kind`` names the first failed check.

    Example::

        result = verify_permit(
            permit,
            domain=EIP712Domain("MyGaslessToken", "1", 1337, token_address),
            current_nonce=0,
            current_time=1_700_000_000,
        )
        if not result.is_success():
            print(result.failure_kind)
    """
    blockchain_state: Dict[str, Any] = {
        "current_nonce": current_nonce,
        "current_time": current_time,
        "chain_id": domain.chain_id,
        "verifying_contract": domain.verifying_contract,
    }

    def _fail(
        failure_kind: FailureKind,
        message: str,
        error_details: Optional[Dict[str, Any]] = None,
        recovered_signer: Optional[str] = None,
    ) -> EVMVerificationResult:
        return EVMVerificationResult(
            is_valid=False,
            failure_kind=failure_kind,
            message=message,
            error_details=error_details,
            owner=permit.owner,
            spender=permit.spender,
            authorized_amount=permit.value,
            recovered_signer=recovered_signer,
            blockchain_state=blockchain_state,
        )

    # ------------------------------------------------------------------
    # 1. Deadline
    # ------------------------------------------------------------------
    if permit.deadline == 0 or permit.deadline < current_time:
        return _fail(
            FailureKind.EXPIRED_DEADLINE,
            f"Permit expired: deadline={permit.deadline} < current_time={current_time}.",
            {"deadline": permit.deadline, "current_time": current_time},
        )

    # ------------------------------------------------------------------
    # 2. Nonce
    # ------------------------------------------------------------------
    if permit.nonce != current_nonce:
        return _fail(
            FailureKind.NONCE_MISMATCH,
            f"Nonce mismatch: presented={permit.nonce}, current={current_nonce}.",
            {"presented_nonce": permit.nonce, "current_nonce": current_nonce},
        )

    # ------------------------------------------------------------------
    # 3. Signature
    # ------------------------------------------------------------------
    if not _is_valid_evm_address(permit.owner) or not _is_valid_evm_address(permit.spender):
        return _fail(
            FailureKind.BAD_SIGNATURE,
            "Invalid owner or spender address format.",
            {"owner": permit.owner, "spender": permit.spender},
        )

    try:
        permit.signature.validate_format()
    except ValueError as e:
        return _fail(FailureKind.BAD_SIGNATURE, f"Malformed signature: {e}")

    request = permit.to_request().model_copy(update={"nonce": current_nonce})
    recovered = recover_permit_signer(domain, request, permit.signature, encoding_version=encoding_version)
    if recovered is None:
        return _fail(
            FailureKind.BAD_SIGNATURE,
            "Signature could not be recovered (non-canonical or invalid components).",
        )

    if recovered.lower() != permit.owner.lower():
        return _fail(
            FailureKind.BAD_SIGNATURE,
            "Recovered signer does not match owner.",
            {"recovered": recovered, "owner": permit.owner},
            recovered_signer=recovered,
        )

    return EVMVerificationResult(
        is_valid=True,
        message="Permit verified.",
        owner=permit.owner,
        spender=permit.spender,
        authorized_amount=permit.value,
        recovered_signer=recovered,
        blockchain_state=blockchain_state,
    )

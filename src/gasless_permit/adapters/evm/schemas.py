"""
EVM Permit Schema Models

Pydantic models for the EIP-2612 gasless flow. All classes inherit from the
base schema hierarchy in ``schemas.bases``.

Signature classes:
    - EVMECDSASignature: v/r/s signature produced over the permit digest.

Permit classes:
    - PermitRequest: Unsigned authorization request (owner, spender, value,
      nonce, deadline).
    - EIP2612Permit: Signed request bound to a token and chain; the payload
      of an ``authorize`` submission.

Operation classes (what a relayer submits to a ledger):
    - AuthorizeOperation: Consume a signed permit.
    - MoveFromOperation: Move tokens out of an owner's balance using the
      submitter's allowance.

Result classes:
    - EVMVerificationResult: Off-chain permit check outcome.
    - EVMMoveResult: Consumer-side move outcome.
    - EVMSubmissionOutcome: Ledger submission outcome, fee included.
"""

from typing import Optional, Dict, Any, Literal

from eth_utils import is_hex_address
from pydantic import Field

from ...schemas.bases import (
    BaseSignature,
    BasePermit,
    BaseVerificationResult,
    BaseSubmissionOutcome,
    CanonicalModel,
)
from .constants import MAX_UINT256


def _is_address(value: str) -> bool:
    return isinstance(value, str) and value.startswith("0x") and is_hex_address(value)


class EVMECDSASignature(BaseSignature):
    """
    EVM ECDSA signature (v, r, s) over an EIP-2612 permit digest.

    Components are not range-checked on construction so that a malformed
    signature can still reach the consumer and be rejected there with
    ``BAD_SIGNATURE``. Call ``validate_format()`` to check them.

    Attributes:
        signature_type: Always ``"EIP2612"``.
        v: ECDSA recovery ID (27 or 28).
        r: r component, 0x-prefixed 64-char hex string.
        s: s component, 0x-prefixed 64-char hex string.

    Example::

        sig = EVMECDSASignature(v=27, r="0x" + "a" * 64, s="0x" + "b" * 64)
        sig.validate_format()
    """

    signature_type: Literal["EIP2612"] = Field(default="EIP2612", description="Signing standard")
    v: int = Field(..., description="ECDSA recovery ID (27 or 28)")
    r: str = Field(..., description="Signature r component (32 bytes, 64-char hex)")
    s: str = Field(..., description="Signature s component (32 bytes, 64-char hex)")

    @classmethod
    def from_components(cls, v: int, r: int, s: int) -> "EVMECDSASignature":
        """Build from integer components, zero-padding r and s to 32 bytes."""
        return cls(v=v, r="0x" + format(r, "064x"), s="0x" + format(s, "064x"))

    @classmethod
    def from_packed_hex(cls, signature: str) -> "EVMECDSASignature":
        """
        Split a packed 65-byte ``r || s || v`` signature, as returned by
        ``eth_signTypedData_v4``.

        Raises:
            ValueError: If the input is not 65 bytes of hex.
        """
        raw = signature[2:] if signature.startswith(("0x", "0X")) else signature
        if len(raw) != 130:
            raise ValueError(f"Packed signature must be 65 bytes, got {len(raw) // 2}")
        v = int(raw[128:130], 16)
        if v in (0, 1):
            v += 27
        return cls(v=v, r="0x" + raw[0:64], s="0x" + raw[64:128])

    def validate_format(self) -> bool:
        """
        Validate v/r/s components.

        Returns:
            True when all components pass.

        Raises:
            ValueError: Descriptive message on the first failed check.
        """
        if self.v not in (27, 28):
            raise ValueError(f"Invalid recovery ID: {self.v}. Must be 27 or 28")

        for name, val in [("r", self.r), ("s", self.s)]:
            hex_str = val[2:] if val.startswith(("0x", "0X")) else val
            if len(hex_str) != 64:
                raise ValueError(f"Invalid {name}: expected 64 hex chars, got {len(hex_str)}")
            try:
                int(hex_str, 16)
            except ValueError:
                raise ValueError(f"Invalid {name}: not valid hexadecimal")

        return True

    def to_vrs(self) -> tuple:
        """Return ``(v, r, s)`` as integers."""
        self.validate_format()
        return self.v, int(self.r, 16), int(self.s, 16)

    def to_packed_hex(self) -> str:
        """
        Encode v/r/s into a packed 65-byte hex string (``r || s || v``).

        Raises:
            ValueError: If components do not pass ``validate_format()``.
        """
        self.validate_format()
        r = self.r[2:] if self.r.startswith(("0x", "0X")) else self.r
        s = self.s[2:] if self.s.startswith(("0x", "0X")) else self.s
        return "0x" + r + s + format(self.v, "02x")


class PermitRequest(CanonicalModel):
    """
    Unsigned EIP-2612 authorization request.

    Built by the relay orchestrator from the owner's current nonce and handed
    to the owner's signer.

    Attributes:
        owner: Token owner address.
        spender: Address being authorized (the relayer).
        value: Allowance to grant, in the token's smallest unit.
        nonce: Owner's current permit nonce.
        deadline: Unix timestamp; the permit is valid while ``now <= deadline``.
    """

    owner: str = Field(..., description="Token owner address (0x-prefixed)")
    spender: str = Field(..., description="Authorized spender address")
    value: int = Field(..., ge=0, le=MAX_UINT256, description="Allowance in the token's smallest unit")
    nonce: int = Field(..., ge=0, le=MAX_UINT256, description="Owner's current permit nonce")
    deadline: int = Field(..., ge=0, le=MAX_UINT256, description="Unix timestamp of expiry")

    def with_signature(self, signature: EVMECDSASignature, *, token: str, chain_id: int) -> "EIP2612Permit":
        """Attach a signature and bind the request to a token deployment."""
        return EIP2612Permit(
            owner=self.owner,
            spender=self.spender,
            value=self.value,
            nonce=self.nonce,
            deadline=self.deadline,
            token=token,
            chain_id=chain_id,
            signature=signature,
        )


class EIP2612Permit(BasePermit):
    """
    Signed EIP-2612 ``permit()`` authorization.

    Attributes:
        permit_type: Always ``"EIP2612"``.
        owner: Token owner's wallet address (0x-prefixed, 42 chars).
        spender: Address authorized to spend.
        token: Token contract address (the EIP-712 verifying contract).
        value: Approved amount in the token's smallest unit.
        nonce: Owner nonce the signature was produced for.
        deadline: Unix timestamp after which the permit is invalid.
        chain_id: EVM network ID.
        signature: ECDSA signature.
    """

    permit_type: Literal["EIP2612"] = Field(default="EIP2612", description="Permit standard identifier")
    owner: str = Field(..., description="Token owner's wallet address (0x-prefixed)")
    spender: str = Field(..., description="Authorized spender address")
    token: str = Field(..., description="Token contract address")
    value: int = Field(..., ge=0, le=MAX_UINT256, description="Approved amount in the token's smallest unit")
    nonce: int = Field(..., ge=0, le=MAX_UINT256, description="Owner nonce for replay protection")
    deadline: int = Field(..., ge=0, le=MAX_UINT256, description="Unix timestamp after which the permit expires")
    chain_id: int = Field(..., ge=1, description="EVM network ID")
    signature: EVMECDSASignature = Field(..., description="EIP-2612 ECDSA signature")

    def to_request(self) -> PermitRequest:
        return PermitRequest(
            owner=self.owner,
            spender=self.spender,
            value=self.value,
            nonce=self.nonce,
            deadline=self.deadline,
        )

    def validate_structure(self) -> bool:
        """
        Validate addresses and the embedded signature.

        Returns:
            True when all checks pass.

        Raises:
            ValueError: With a descriptive message on the first failed check.
        """
        for field_name, value in [("owner", self.owner), ("spender", self.spender), ("token", self.token)]:
            if not _is_address(value):
                raise ValueError(f"{field_name} must be a 0x-prefixed 20-byte hex address, got {value!r}")

        try:
            self.signature.validate_format()
        except ValueError as e:
            raise ValueError(f"Signature validation failed: {e}")

        return True


class AuthorizeOperation(CanonicalModel):
    """Submission that consumes a signed permit."""

    operation_type: Literal["authorize"] = Field(default="authorize", description="Operation discriminator")
    permit: EIP2612Permit = Field(..., description="Signed permit to consume")


class MoveFromOperation(CanonicalModel):
    """
    Submission that moves tokens out of ``owner`` using the allowance granted
    to the submitting account. The fee payer of the submission is the spender.
    """

    operation_type: Literal["move_from"] = Field(default="move_from", description="Operation discriminator")
    owner: str = Field(..., description="Account the tokens are taken from")
    recipient: str = Field(..., description="Account the tokens are sent to")
    amount: int = Field(..., ge=0, le=MAX_UINT256, description="Amount in the token's smallest unit")


class EVMVerificationResult(BaseVerificationResult):
    """
    Off-chain EIP-2612 permit verification result.

    Attributes:
        verification_type: Always ``"evm"``.
        owner: Claimed signer.
        spender: Authorized spender.
        authorized_amount: Permit value.
        recovered_signer: Address recovered from the signature, if recovery ran.
        blockchain_state: State snapshot used for the check (nonce, time).
    """

    verification_type: Literal["evm"] = Field(default="evm", description="Verification type identifier")
    owner: Optional[str] = Field(None, description="Claimed signer")
    spender: Optional[str] = Field(None, description="Authorized spender")
    authorized_amount: Optional[int] = Field(None, ge=0, description="Permit value")
    recovered_signer: Optional[str] = Field(None, description="Address recovered from the signature")
    blockchain_state: Optional[Dict[str, Any]] = Field(None, description="State snapshot used for the check")


class EVMMoveResult(BaseVerificationResult):
    """
    Result of a ``move_from`` applied by the consumer.

    Attributes:
        verification_type: Always ``"evm"``.
        owner: Account debited.
        spender: Caller whose allowance was used.
        recipient: Account credited.
        amount: Requested amount.
        effects: Allowance and balances after a successful move.
    """

    verification_type: Literal["evm"] = Field(default="evm", description="Verification type identifier")
    owner: str = Field(..., description="Account debited")
    spender: str = Field(..., description="Caller whose allowance was used")
    recipient: str = Field(..., description="Account credited")
    amount: int = Field(..., ge=0, description="Requested amount")
    effects: Optional[Dict[str, Any]] = Field(None, description="State after a successful move")


class EVMSubmissionOutcome(BaseSubmissionOutcome):
    """
    Outcome of an ``authorize`` or ``move_from`` submission.

    Attributes:
        confirmation_type: Always ``"evm"``.
        operation_type: ``"authorize"`` or ``"move_from"``.
        fee_payer: Account charged for the submission.
        fee_paid: Native fee charged, in wei; 0 when nothing was charged.
        tx_hash: Transaction hash, when the ledger assigns one.
        block_number: Block the submission landed in.
        gas_used: Gas consumed.
        effects: State after a successful submission (nonce, allowance, balances).
    """

    confirmation_type: Literal["evm"] = Field(default="evm", description="Confirmation type identifier")
    operation_type: Literal["authorize", "move_from"] = Field(..., description="Submitted operation")
    fee_payer: Optional[str] = Field(None, description="Account charged for the submission")
    fee_paid: int = Field(default=0, ge=0, description="Native fee charged (wei)")
    tx_hash: Optional[str] = Field(None, description="Transaction hash")
    block_number: Optional[int] = Field(None, ge=0, description="Block containing the submission")
    gas_used: Optional[int] = Field(None, ge=0, description="Gas consumed")
    effects: Optional[Dict[str, Any]] = Field(None, description="State after a successful submission")

"""
Base Schema Models for the Gasless Permit Relay

This module defines the base classes every other schema model inherits from.
It provides canonical serialization, the failure taxonomy shared by the
consumer, the ledgers and the relay orchestrator, and the two result shapes
(verification result, submission outcome) that carry those failures back to
callers as values instead of exceptions.

Core Classes:
    - CanonicalModel: RFC8785-style Pydantic base model
    - BaseSignature: Abstract signature component model
    - BasePermit: Abstract signed-authorization model
    - FailureKind: Precise reason an authorization or move was rejected
    - BaseVerificationResult: Outcome of an off-chain permit check
    - BaseSubmissionOutcome: Outcome of a ledger submission

Dependencies:
    - pydantic: For data validation and serialization
"""

import json
from typing import Optional, Dict, Any
from abc import ABC
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ..engine.exceptions import (
    PermitExpiredError,
    PermitNonceError,
    SignatureVerificationError,
    InsufficientAllowanceError,
    InsufficientFundsError,
    InsufficientFeeError,
    BlockchainInteractionError,
)


class CanonicalModel(BaseModel):
    """
    Pydantic base model with canonical JSON serialization.

    Keys are sorted and separators compact, so two equal models always
    serialize to the same string.

    Example:
        class MyModel(CanonicalModel):
            name: str
            value: int

        MyModel(name="test", value=123).to_canonical_json()
        # '{"name":"test","value":123}'
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_canonical_json(self) -> str:
        """
        Convert model to a canonical JSON string.

        Returns:
            str: JSON string with sorted keys and no extra whitespace.
        """
        data = self.model_dump(mode="json")
        return json.dumps(
            data,
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary representation."""
        return self.model_dump()


class BaseSignature(CanonicalModel, ABC):
    """
    Abstract base class for signature components.

    Attributes:
        signature_type: The signing standard (e.g. "EIP2612")
        created_at: Timestamp when the signature object was created
    """

    signature_type: str = Field(..., description="Signing standard (e.g., EIP2612)")
    created_at: datetime = Field(default_factory=datetime.now, description="Signature creation timestamp")

    def validate_format(self) -> bool:
        """
        Validate the signature components.

        Returns:
            bool: True if the format is valid.

        Raises:
            ValueError: If a component is malformed.
        """
        pass


class BasePermit(CanonicalModel, ABC):
    """
    Abstract base class for signed authorizations.

    A permit is a signed message that authorizes a spender to move tokens on
    behalf of the token owner.

    Attributes:
        permit_type: Type of permit (e.g., "EIP2612")
        signature: Signature components
        created_at: Timestamp when permit was created
    """

    permit_type: str = Field(..., description="Type of permit (e.g., EIP2612)")
    signature: Optional[BaseSignature] = Field(None, description="Signature components")
    created_at: datetime = Field(default_factory=datetime.now, description="Permit creation timestamp")

    def validate_structure(self) -> bool:
        """
        Validate the permit structure.

        Raises:
            ValueError: If permit structure is invalid.
        """
        pass


class FailureKind(str, Enum):
    """
    Reason an authorization or move was rejected.

    Every rejection carries exactly one of these so callers can pick the right
    recovery: re-sign with a fresh nonce and deadline, abort, or retry the
    move alone.

    Attributes:
        EXPIRED_DEADLINE: Permit deadline is zero or already passed
        NONCE_MISMATCH: Presented nonce is not the owner's current nonce
        BAD_SIGNATURE: Malformed signature, or signer is not the owner under
            the verifier's domain
        INSUFFICIENT_ALLOWANCE: Spender allowance is below the move amount
        INSUFFICIENT_BALANCE: Owner token balance is below the move amount
        INSUFFICIENT_FEE: Fee payer cannot cover the submission fee
        LEDGER_ERROR: Ledger unreachable, reverted without a known cause, or
            timed out
    """
    EXPIRED_DEADLINE = "expired_deadline"
    NONCE_MISMATCH = "nonce_mismatch"
    BAD_SIGNATURE = "bad_signature"
    INSUFFICIENT_ALLOWANCE = "insufficient_allowance"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INSUFFICIENT_FEE = "insufficient_fee"
    LEDGER_ERROR = "ledger_error"


_FAILURE_EXCEPTIONS = {
    FailureKind.EXPIRED_DEADLINE: PermitExpiredError,
    FailureKind.NONCE_MISMATCH: PermitNonceError,
    FailureKind.BAD_SIGNATURE: SignatureVerificationError,
    FailureKind.INSUFFICIENT_ALLOWANCE: InsufficientAllowanceError,
    FailureKind.INSUFFICIENT_BALANCE: InsufficientFundsError,
    FailureKind.INSUFFICIENT_FEE: InsufficientFeeError,
    FailureKind.LEDGER_ERROR: BlockchainInteractionError,
}


class BaseVerificationResult(CanonicalModel, ABC):
    """
    Abstract base class for off-chain permit verification results.

    Attributes:
        verification_type: Type of verification (e.g., "evm")
        is_valid: Whether every check passed
        failure_kind: Reason for rejection, ``None`` on success
        message: Human-readable status message
        error_details: Detailed error information if verification failed
        verified_at: Timestamp when verification was performed
    """

    verification_type: str = Field(..., description="Type of verification (e.g., evm)")
    is_valid: bool = Field(..., description="Whether permit is valid and verified")
    failure_kind: Optional[FailureKind] = Field(None, description="Reason for rejection")
    message: str = Field(..., description="Human-readable status message")
    error_details: Optional[Dict[str, Any]] = Field(None, description="Detailed error information")
    verified_at: datetime = Field(default_factory=datetime.now, description="Verification timestamp")

    def is_success(self) -> bool:
        """Return True when verification passed."""
        return self.is_valid and self.failure_kind is None

    def get_error_message(self) -> Optional[str]:
        """
        Get formatted error message from verification result.

        Returns:
            Optional[str]: Error message if verification failed, None if successful.
        """
        if self.is_success():
            return None

        error_msg = f"Verification failed ({self.failure_kind.value}): {self.message}"
        if self.error_details:
            details_str = json.dumps(self.error_details, indent=2, default=str)
            error_msg += f"\nDetails: {details_str}"
        return error_msg


class TransactionStatus(str, Enum):
    """
    Execution status of a ledger submission.

    Attributes:
        SUCCESS: Operation applied
        FAILED: Operation rejected or reverted; no state change besides the fee
        REJECTED: Submission refused before execution; nothing charged
        TIMEOUT: Acceptance was not observed in time
        NETWORK_ERROR: Submission could not reach the ledger
    """
    SUCCESS = "success"
    FAILED = "failed"
    REJECTED = "rejected"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"


class BaseSubmissionOutcome(CanonicalModel, ABC):
    """
    Abstract base class for the result of submitting an operation to a ledger.

    Attributes:
        confirmation_type: Type of confirmation (e.g., "evm")
        status: Submission execution status
        failure_kind: Reason for rejection, ``None`` on success
        execution_time: Time taken until acceptance or rejection (seconds)
        error_message: Error message if the submission failed
        error_details: Structured failure diagnostics
        created_at: Timestamp when the outcome was recorded
    """

    confirmation_type: str = Field(..., description="Type of confirmation (e.g., evm)")
    status: TransactionStatus = Field(..., description="Submission execution status")
    failure_kind: Optional[FailureKind] = Field(None, description="Reason for rejection")
    execution_time: Optional[float] = Field(None, ge=0, description="Time to acceptance (seconds)")
    error_message: Optional[str] = Field(None, description="Error message if submission failed")
    error_details: Optional[Dict[str, Any]] = Field(None, description="Failure diagnostics")
    created_at: datetime = Field(default_factory=datetime.now, description="Outcome recording timestamp")

    def is_success(self) -> bool:
        """Return True when the operation was applied."""
        return self.status == TransactionStatus.SUCCESS

    def get_confirmation_status(self) -> str:
        """Get a human-readable status message."""
        if self.status == TransactionStatus.SUCCESS:
            return "Operation applied"
        reason = self.failure_kind.value if self.failure_kind else self.status.value
        return f"Operation failed ({reason}): {self.error_message or self.status.value}"

    def raise_for_status(self) -> None:
        """
        Raise the exception matching ``failure_kind`` when the submission failed.

        Opt-in bridge for callers that prefer exceptions over inspecting the
        outcome.

        Raises:
            PermitRejectedError: Subclass matching the failure kind.
            BlockchainInteractionError: For ledger errors and timeouts.
        """
        if self.is_success():
            return
        exc_class = _FAILURE_EXCEPTIONS.get(self.failure_kind, BlockchainInteractionError)
        raise exc_class(self.error_message or self.status.value)

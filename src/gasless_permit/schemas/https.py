"""
HTTP Request/Response Schema Models for the Relay Server

This module defines the Pydantic models exchanged between a wallet front-end
and the relay server.

The flow consists of:
1. Client fetches the permit context for an owner (domain, nonce, deadline,
   relayer, ready-to-sign EIP-712 typed data)
2. Client signs the typed data with the owner's wallet
3. Client posts the signed permit and the transfer target to ``/relay``
4. If the move failed after authorization, client posts to
   ``/relay/retry-move``

All models inherit from BaseModel for automatic validation and serialization.
"""

from typing import Optional, Dict, Any

from pydantic import BaseModel, Field

from ..adapters.evm.schemas import EIP2612Permit, PermitRequest
from .bases import FailureKind
from .relay import RelayResult, RelayStage, RecoveryAction


# ============================================================================
# Step 1: Permit context
# ============================================================================

class PermitContextResponse(BaseModel):
    """Everything a wallet needs to sign a permit for the relayer.

    Attributes:
        relayer: Spender the permit must authorize; pays all fees.
        domain: EIP-712 domain of the token.
        request: Unsigned request with the owner's current nonce.
        typed_data: Full EIP-712 payload for ``eth_signTypedData_v4``.
    """
    relayer: str = Field(..., description="Spender and fee payer")
    domain: Dict[str, Any] = Field(..., description="EIP-712 domain")
    request: PermitRequest = Field(..., description="Unsigned permit request")
    typed_data: Dict[str, Any] = Field(..., description="EIP-712 typed data to sign")


# ============================================================================
# Step 3: Relay a signed permit
# ============================================================================

class RelayRequest(BaseModel):
    """Signed permit plus transfer target.

    Attributes:
        permit: Signed EIP-2612 permit.
        recipient: Account to receive the tokens.
        amount: Amount to move; defaults to the permit value.
    """
    permit: EIP2612Permit = Field(..., description="Signed permit")
    recipient: str = Field(..., description="Transfer recipient")
    amount: Optional[int] = Field(None, ge=0, description="Amount to move (default: permit value)")


class RetryMoveRequest(BaseModel):
    """Retry of Step D on an allowance granted earlier."""
    owner: str = Field(..., description="Token owner")
    recipient: str = Field(..., description="Transfer recipient")
    amount: int = Field(..., ge=0, description="Amount to move")


class RelayResponse(BaseModel):
    """Relay outcome as returned to clients.

    Attributes:
        success: Whether every step completed.
        stage: Last completed step.
        failure_kind: Reason for failure.
        recovery: Suggested next action.
        authorize_tx: Step C transaction hash.
        move_tx: Step D transaction hash.
        fees_paid: Total fee paid by the relayer (wei).
        error_message: Failure description.
    """
    success: bool
    stage: RelayStage
    failure_kind: Optional[FailureKind] = None
    recovery: RecoveryAction = RecoveryAction.NONE
    authorize_tx: Optional[str] = None
    move_tx: Optional[str] = None
    fees_paid: int = 0
    error_message: Optional[str] = None

    @classmethod
    def from_result(cls, result: RelayResult) -> "RelayResponse":
        return cls(
            success=result.success,
            stage=result.stage,
            failure_kind=result.failure_kind,
            recovery=result.recovery,
            authorize_tx=result.authorize_outcome.tx_hash if result.authorize_outcome else None,
            move_tx=result.move_outcome.tx_hash if result.move_outcome else None,
            fees_paid=result.fees_paid,
            error_message=result.error_message,
        )


class ErrorResponse(BaseModel):
    """Rejected request."""
    error: str
    failure_kind: Optional[FailureKind] = None

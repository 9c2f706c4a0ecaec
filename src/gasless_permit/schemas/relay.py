"""
Relay Result Models

Where a relay run stopped and what the caller should do next.
"""

from enum import Enum
from typing import Optional

from pydantic import Field

from .bases import CanonicalModel, FailureKind
from ..adapters.evm.schemas import EIP2612Permit, EVMSubmissionOutcome


class RelayStage(str, Enum):
    """
    Last step of the relay flow that completed.

    Attributes:
        REQUESTED: Nothing done yet
        PREPARED: Step A, request built from the owner's nonce
        SIGNED: Step B, owner signature obtained
        AUTHORIZED: Step C, allowance granted on the ledger
        MOVED: Step D, tokens moved
    """
    REQUESTED = "requested"
    PREPARED = "prepared"
    SIGNED = "signed"
    AUTHORIZED = "authorized"
    MOVED = "moved"


class RecoveryAction(str, Enum):
    """
    What to do after a failed relay.

    Attributes:
        NONE: Nothing, the relay succeeded
        RESIGN: Discard the signature and sign a fresh request (new deadline,
            current nonce)
        RETRY_MOVE: The allowance is granted; retry Step D alone
        ABORT: Give up; retrying as-is cannot succeed
    """
    NONE = "none"
    RESIGN = "resign"
    RETRY_MOVE = "retry_move"
    ABORT = "abort"


_AUTHORIZE_RECOVERY = {
    FailureKind.EXPIRED_DEADLINE: RecoveryAction.RESIGN,
    FailureKind.NONCE_MISMATCH: RecoveryAction.RESIGN,
}


def recovery_for(
    stage: RelayStage,
    failure_kind: Optional[FailureKind],
    allowance_granted: bool = True,
) -> RecoveryAction:
    """
    Map a failure at ``stage`` to its recovery action.

    A failed authorization is recoverable only by re-signing, and only when
    the permit went stale (deadline or nonce). A failed move leaves a granted
    allowance in place, so it is always retried alone; ``failure_kind`` tells
    the caller what to fix first (fee funds, owner balance). A standalone
    retry that finds no allowance at all (``allowance_granted=False``) has
    nothing to retry on.
    """
    if stage == RelayStage.AUTHORIZED:
        if failure_kind == FailureKind.INSUFFICIENT_ALLOWANCE and not allowance_granted:
            return RecoveryAction.ABORT
        return RecoveryAction.RETRY_MOVE
    if stage == RelayStage.SIGNED:
        return _AUTHORIZE_RECOVERY.get(failure_kind, RecoveryAction.ABORT)
    return RecoveryAction.ABORT


class RelayResult(CanonicalModel):
    """
    Outcome of a relay run.

    Attributes:
        success: True when every requested step completed.
        stage: Last completed step.
        owner: Account the tokens come from.
        spender: Account the allowance was granted to.
        recipient: Account the tokens go to.
        amount: Amount moved, or requested to be moved.
        permit: Signed permit, once there is one.
        authorize_outcome: Ledger outcome of Step C.
        move_outcome: Ledger outcome of Step D.
        failure_kind: Reason the run stopped, ``None`` on success.
        recovery: Suggested next action.
        error_message: Human-readable failure description.
    """

    success: bool = Field(..., description="Whether the relay completed")
    stage: RelayStage = Field(..., description="Last completed step")
    owner: Optional[str] = Field(None, description="Token owner")
    spender: Optional[str] = Field(None, description="Authorized spender")
    recipient: Optional[str] = Field(None, description="Transfer recipient")
    amount: Optional[int] = Field(None, ge=0, description="Amount in the token's smallest unit")
    permit: Optional[EIP2612Permit] = Field(None, description="Signed permit")
    authorize_outcome: Optional[EVMSubmissionOutcome] = Field(None, description="Step C outcome")
    move_outcome: Optional[EVMSubmissionOutcome] = Field(None, description="Step D outcome")
    failure_kind: Optional[FailureKind] = Field(None, description="Reason for failure")
    recovery: RecoveryAction = Field(default=RecoveryAction.NONE, description="Suggested next action")
    error_message: Optional[str] = Field(None, description="Failure description")

    @property
    def fees_paid(self) -> int:
        """Total native fee charged to the relayer across both submissions."""
        return sum(o.fee_paid for o in (self.authorize_outcome, self.move_outcome) if o is not None)

"""
Built-in event handlers for the gasless relay workflow.

Implements the four relay steps:
    A. read nonce, domain and (for full-balance relays) the owner's balance
    B. have the owner's signer sign the request
    C. submit ``authorize`` paid by the relayer
    D. submit ``move_from`` paid by the relayer

Each step is a plain coroutine over ``Dependencies`` so the orchestrator can
also run it on its own. The handlers wrap those coroutines and turn their
results into the next event.
"""

import logging
from typing import Optional, Tuple

from ..engine.events import (
    EventBus,
    Dependencies,
    RelayRequestedEvent,
    PermitPreparedEvent,
    PermitSignedEvent,
    AuthorizedEvent,
    MoveRequestedEvent,
    MovedEvent,
    RelayFailedEvent,
)
from ..adapters.bases import PermitSigner
from ..adapters.evm.schemas import (
    AuthorizeOperation,
    MoveFromOperation,
    EIP2612Permit,
    EVMSubmissionOutcome,
    PermitRequest,
)
from ..adapters.evm.standards import EIP712Domain
from ..engine.exceptions import SigningError, UnknownAccountError
from ..schemas.bases import FailureKind
from ..schemas.relay import RelayStage, recovery_for

logger = logging.getLogger(__name__)


# ==================== Steps ====================

async def read_domain(deps: Dependencies) -> EIP712Domain:
    """Assemble the token's EIP-712 domain from the token and the ledger."""
    return EIP712Domain(
        name=await deps.token.get_name(),
        version=await deps.token.get_version(),
        chain_id=await deps.ledger.get_chain_id(),
        verifying_contract=await deps.token.get_address(),
    )


async def prepare_request(
    deps: Dependencies,
    owner: str,
    value: Optional[int] = None,
    spender: Optional[str] = None,
    deadline: Optional[int] = None,
) -> Tuple[EIP712Domain, PermitRequest]:
    """
    Step A: build an unsigned request from the owner's current nonce.

    Args:
        owner: Token owner.
        value: Allowance to grant. ``None`` means the owner's full balance.
        spender: Account to authorize. Defaults to the relayer.
        deadline: Expiry timestamp. Defaults to ledger time plus ``permit_ttl``.
    """
    domain = await read_domain(deps)
    nonce = await deps.token.get_nonce(owner)
    if value is None:
        value = await deps.token.get_balance(owner)
    if deadline is None:
        deadline = await deps.ledger.get_current_time() + deps.permit_ttl

    request = PermitRequest(
        owner=owner,
        spender=spender or deps.relayer,
        value=value,
        nonce=nonce,
        deadline=deadline,
    )
    logger.info("Prepared permit request: owner=%s nonce=%s value=%s deadline=%s",
                owner, nonce, value, deadline)
    return domain, request


async def request_signature(signer: PermitSigner, domain: EIP712Domain, request: PermitRequest) -> EIP2612Permit:
    """
    Step B: obtain the owner's signature.

    Raises:
        SigningError: If the signer fails.
    """
    signature = await signer.sign(domain, request)
    return request.with_signature(
        signature,
        token=domain.verifying_contract,
        chain_id=domain.chain_id,
    )


async def submit_authorization(deps: Dependencies, permit: EIP2612Permit) -> EVMSubmissionOutcome:
    """Step C: submit the permit, relayer pays."""
    outcome = await deps.ledger.submit(AuthorizeOperation(permit=permit), deps.relayer)
    logger.info("authorize for owner %s: %s (fee %s)",
                permit.owner, outcome.get_confirmation_status(), outcome.fee_paid)
    return outcome


async def submit_move(
    deps: Dependencies,
    owner: str,
    recipient: str,
    amount: int,
    spender: Optional[str] = None,
) -> EVMSubmissionOutcome:
    """Step D: move tokens on the spender's allowance; the spender pays."""
    operation = MoveFromOperation(owner=owner, recipient=recipient, amount=amount)
    outcome = await deps.ledger.submit(operation, spender or deps.relayer)
    logger.info("move_from %s -> %s amount=%s: %s (fee %s)",
                owner, recipient, amount, outcome.get_confirmation_status(), outcome.fee_paid)
    return outcome


def _ledger_exception(stage: RelayStage, e: Exception, permit: Optional[EIP2612Permit] = None) -> RelayFailedEvent:
    logger.warning("Ledger error after stage %s: %s", stage.value, e)
    return RelayFailedEvent(
        stage=stage,
        error_message=f"Ledger interaction failed: {e}",
        failure_kind=FailureKind.LEDGER_ERROR,
        recovery=recovery_for(stage, FailureKind.LEDGER_ERROR),
        permit=permit,
    )


# ==================== Event Handlers ====================

async def handle_relay_requested(
    event: RelayRequestedEvent,
    deps: Dependencies
) -> PermitPreparedEvent | RelayFailedEvent:
    """Step A."""
    try:
        domain, request = await prepare_request(
            deps,
            owner=event.signer.address,
            value=event.amount,
        )
    except Exception as e:
        return _ledger_exception(RelayStage.REQUESTED, e)

    return PermitPreparedEvent(
        signer=event.signer,
        domain=domain,
        request=request,
        recipient=event.recipient,
        amount=request.value,
    )


async def handle_permit_prepared(
    event: PermitPreparedEvent,
    deps: Dependencies
) -> PermitSignedEvent | RelayFailedEvent:
    """Step B."""
    try:
        permit = await request_signature(event.signer, event.domain, event.request)
    except SigningError as e:
        return RelayFailedEvent(stage=RelayStage.PREPARED, error_message=str(e))

    return PermitSignedEvent(permit=permit, recipient=event.recipient, amount=event.amount)


async def handle_permit_signed(
    event: PermitSignedEvent,
    deps: Dependencies
) -> AuthorizedEvent | RelayFailedEvent:
    """Step C. Step D only follows an accepted authorization."""
    if event.permit.spender.lower() != deps.relayer.lower():
        return RelayFailedEvent(
            stage=RelayStage.SIGNED,
            error_message=f"Permit authorizes {event.permit.spender}, not the relayer {deps.relayer}.",
            failure_kind=FailureKind.INSUFFICIENT_ALLOWANCE,
            permit=event.permit,
        )

    if event.amount > event.permit.value:
        return RelayFailedEvent(
            stage=RelayStage.SIGNED,
            error_message=f"Amount {event.amount} exceeds permit value {event.permit.value}.",
            failure_kind=FailureKind.INSUFFICIENT_ALLOWANCE,
            permit=event.permit,
        )

    try:
        outcome = await submit_authorization(deps, event.permit)
    except UnknownAccountError:
        raise
    except Exception as e:
        return _ledger_exception(RelayStage.SIGNED, e, event.permit)

    if not outcome.is_success():
        return RelayFailedEvent(
            stage=RelayStage.SIGNED,
            error_message=outcome.error_message or outcome.get_confirmation_status(),
            failure_kind=outcome.failure_kind,
            recovery=recovery_for(RelayStage.SIGNED, outcome.failure_kind),
            outcome=outcome,
            permit=event.permit,
        )

    return AuthorizedEvent(
        permit=event.permit,
        outcome=outcome,
        recipient=event.recipient,
        amount=event.amount,
    )


async def handle_authorized(
    event: AuthorizedEvent,
    deps: Dependencies
) -> MoveRequestedEvent:
    """Queue Step D once Step C is committed."""
    return MoveRequestedEvent(
        owner=event.permit.owner,
        recipient=event.recipient,
        amount=event.amount,
        permit=event.permit,
    )


async def handle_move_requested(
    event: MoveRequestedEvent,
    deps: Dependencies
) -> MovedEvent | RelayFailedEvent:
    """Step D."""
    try:
        outcome = await submit_move(deps, event.owner, event.recipient, event.amount)
    except UnknownAccountError:
        raise
    except Exception as e:
        return _ledger_exception(RelayStage.AUTHORIZED, e, event.permit)

    if not outcome.is_success():
        return RelayFailedEvent(
            stage=RelayStage.AUTHORIZED,
            error_message=outcome.error_message or outcome.get_confirmation_status(),
            failure_kind=outcome.failure_kind,
            recovery=recovery_for(
                RelayStage.AUTHORIZED,
                outcome.failure_kind,
                allowance_granted=event.permit is not None,
            ),
            outcome=outcome,
            permit=event.permit,
        )

    return MovedEvent(
        outcome=outcome,
        owner=event.owner,
        recipient=event.recipient,
        amount=event.amount,
    )


# ==================== Event Bus Setup ====================

def setup_event_bus() -> EventBus:
    """Initialize event bus with the built-in relay handlers."""
    event_bus = EventBus()

    event_bus.subscribe(RelayRequestedEvent, handle_relay_requested)
    event_bus.subscribe(PermitPreparedEvent, handle_permit_prepared)
    event_bus.subscribe(PermitSignedEvent, handle_permit_signed)
    event_bus.subscribe(AuthorizedEvent, handle_authorized)
    event_bus.subscribe(MoveRequestedEvent, handle_move_requested)

    return event_bus

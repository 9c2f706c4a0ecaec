"""
Relay Orchestrator

Off-chain coordinator of the gasless flow. The relayer pays the fee for both
submissions; the owner only signs. Steps run strictly in sequence and each
waits for the ledger to accept or reject the previous one:

    A. read nonce and domain (and the balance, for full-balance relays)
    B. owner signs
    C. ``authorize`` submitted by the relayer
    D. ``move_from`` submitted by the relayer

If C fails, D is never attempted. If D fails after C succeeded, the result
suggests ``RETRY_MOVE`` and ``retry_move()`` runs D alone; re-running C would
fail with ``NONCE_MISMATCH`` because the nonce has already advanced.
"""

import logging
from typing import Optional, Tuple

from ..adapters.bases import LedgerAdapter, TokenMetadata, PermitSigner
from ..adapters.evm.constants import get_permit_ttl_from_env
from ..adapters.evm.schemas import EIP2612Permit, EVMSubmissionOutcome, PermitRequest
from ..adapters.evm.standards import EIP712Domain
from ..engine.events import (
    BaseEvent,
    Dependencies,
    EventBus,
    RelayRequestedEvent,
    PermitPreparedEvent,
    PermitSignedEvent,
    AuthorizedEvent,
    MoveRequestedEvent,
    MovedEvent,
    RelayFailedEvent,
)
from ..engine.executors import EventChain
from ..schemas.relay import RelayResult, RelayStage, RecoveryAction
from . import flows

logger = logging.getLogger(__name__)


class RelayOrchestrator:
    """
    Drives authorize-then-move on behalf of token owners.

    Args:
        ledger: Ledger the submissions go to.
        token: Token metadata reader.
        relayer: Fee-paying account; also the spender the permits authorize.
        permit_ttl: Lifetime of freshly built permits in seconds. Defaults to
            ``PERMIT_TTL_SECONDS``.
        event_bus: Custom bus; defaults to ``flows.setup_event_bus()``.

    Example:
        orchestrator = RelayOrchestrator(ledger, token, relayer=relayer_address)
        result = await orchestrator.relay(LocalAccountSigner(owner_key), recipient, amount=30)
        if result.recovery == RecoveryAction.RETRY_MOVE:
            result = await orchestrator.retry_move(result.owner, recipient, 30)
    """

    def __init__(
        self,
        ledger: LedgerAdapter,
        token: TokenMetadata,
        relayer: str,
        permit_ttl: Optional[int] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.deps = Dependencies(
            ledger=ledger,
            token=token,
            relayer=relayer,
            permit_ttl=permit_ttl if permit_ttl is not None else get_permit_ttl_from_env(),
        )
        self.event_bus = event_bus or flows.setup_event_bus()

    @property
    def relayer(self) -> str:
        return self.deps.relayer

    # ------------------------------------------------------------------
    # Single steps
    # ------------------------------------------------------------------

    async def prepare(
        self,
        owner: str,
        value: Optional[int] = None,
        deadline: Optional[int] = None,
    ) -> Tuple[EIP712Domain, PermitRequest]:
        """Step A. ``value=None`` requests the owner's full balance."""
        return await flows.prepare_request(self.deps, owner, value=value, deadline=deadline)

    async def request_signature(
        self,
        signer: PermitSigner,
        domain: EIP712Domain,
        request: PermitRequest,
    ) -> EIP2612Permit:
        """Step B."""
        return await flows.request_signature(signer, domain, request)

    async def submit_authorization(self, permit: EIP2612Permit) -> EVMSubmissionOutcome:
        """Step C."""
        return await flows.submit_authorization(self.deps, permit)

    async def submit_move(self, owner: str, recipient: str, amount: int) -> EVMSubmissionOutcome:
        """Step D."""
        return await flows.submit_move(self.deps, owner, recipient, amount)

    # ------------------------------------------------------------------
    # Consumer-facing operations
    # ------------------------------------------------------------------

    async def authorize(
        self,
        signer: PermitSigner,
        amount: int,
        deadline: Optional[int] = None,
    ) -> EVMSubmissionOutcome:
        """
        Sign and submit a permit granting the relayer ``amount`` from ``signer.address``.

        Returns:
            The ledger outcome; on rejection ``failure_kind`` is
            ``EXPIRED_DEADLINE``, ``NONCE_MISMATCH`` or ``BAD_SIGNATURE``.
        """
        domain, request = await self.prepare(signer.address, value=amount, deadline=deadline)
        permit = await self.request_signature(signer, domain, request)
        return await self.submit_authorization(permit)

    async def move_from(self, owner: str, recipient: str, amount: int) -> EVMSubmissionOutcome:
        """
        Move ``amount`` from ``owner`` to ``recipient`` on the relayer's allowance.

        Returns:
            The ledger outcome; on rejection ``failure_kind`` is
            ``INSUFFICIENT_ALLOWANCE`` or ``INSUFFICIENT_BALANCE``.
        """
        return await self.submit_move(owner, recipient, amount)

    async def get_allowance(self, owner: str, spender: Optional[str] = None) -> int:
        return await self.deps.token.get_allowance(owner, spender or self.relayer)

    async def get_balance(self, account: str) -> int:
        """Token balance of ``account``."""
        return await self.deps.token.get_balance(account)

    async def get_nonce(self, owner: str) -> int:
        return await self.deps.token.get_nonce(owner)

    # ------------------------------------------------------------------
    # Full flows
    # ------------------------------------------------------------------

    async def relay(
        self,
        signer: PermitSigner,
        recipient: str,
        amount: Optional[int] = None,
    ) -> RelayResult:
        """
        Run steps A to D for ``signer.address``.

        Args:
            signer: Owner's signing capability.
            recipient: Account receiving the tokens.
            amount: Amount to authorize and move. ``None`` authorizes and
                moves the owner's full balance.
        """
        if amount is not None and amount < 0:
            raise ValueError("amount must be non-negative")
        result = await self._run(
            RelayRequestedEvent(signer=signer, recipient=recipient, amount=amount),
            RelayResult(
                success=False,
                stage=RelayStage.REQUESTED,
                owner=signer.address,
                spender=self.relayer,
                recipient=recipient,
                amount=amount,
            ),
        )
        return result

    async def relay_signed(
        self,
        permit: EIP2612Permit,
        recipient: str,
        amount: Optional[int] = None,
    ) -> RelayResult:
        """
        Run steps C and D for a permit signed elsewhere (e.g. a browser wallet).

        ``amount`` defaults to the permit value and may not exceed it.
        """
        move_amount = permit.value if amount is None else amount
        if move_amount < 0:
            raise ValueError("amount must be non-negative")
        return await self._run(
            PermitSignedEvent(permit=permit, recipient=recipient, amount=move_amount),
            RelayResult(
                success=False,
                stage=RelayStage.SIGNED,
                owner=permit.owner,
                spender=permit.spender,
                recipient=recipient,
                amount=move_amount,
                permit=permit,
            ),
        )

    async def retry_move(self, owner: str, recipient: str, amount: int) -> RelayResult:
        """Run step D alone, on an allowance granted earlier."""
        return await self._run(
            MoveRequestedEvent(owner=owner, recipient=recipient, amount=amount),
            RelayResult(
                success=False,
                stage=RelayStage.AUTHORIZED,
                owner=owner,
                spender=self.relayer,
                recipient=recipient,
                amount=amount,
            ),
        )

    async def _run(self, initial_event: BaseEvent, result: RelayResult) -> RelayResult:
        chain = EventChain(self.event_bus, self.deps)
        async for event in chain.execute(initial_event):
            result = self._apply(result, event)
        logger.info("Relay for %s finished at stage %s (success=%s)", result.owner, result.stage.value, result.success)
        return result

    @staticmethod
    def _apply(result: RelayResult, event: BaseEvent) -> RelayResult:
        if isinstance(event, RelayFailedEvent):
            update = {
                "success": False,
                "stage": event.stage,
                "failure_kind": event.failure_kind,
                "recovery": event.recovery,
                "error_message": event.error_message,
            }
            if event.permit is not None:
                update["permit"] = event.permit
            if event.outcome is not None:
                key = "move_outcome" if event.stage == RelayStage.AUTHORIZED else "authorize_outcome"
                update[key] = event.outcome
            return result.model_copy(update=update)
        if isinstance(event, PermitSignedEvent):
            return result.model_copy(update={
                "stage": RelayStage.SIGNED,
                "permit": event.permit,
                "amount": event.amount,
                "spender": event.permit.spender,
            })
        if isinstance(event, AuthorizedEvent):
            return result.model_copy(update={"stage": RelayStage.AUTHORIZED, "authorize_outcome": event.outcome})
        if isinstance(event, MovedEvent):
            return result.model_copy(update={
                "success": True,
                "stage": RelayStage.MOVED,
                "move_outcome": event.outcome,
                "recovery": RecoveryAction.NONE,
            })
        if isinstance(event, PermitPreparedEvent):
            return result.model_copy(update={"stage": RelayStage.PREPARED, "amount": event.amount})
        return result

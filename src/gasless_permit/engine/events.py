"""
Event-driven system with typed events and clear data flow.

Events carry their own data, handlers return next events, and dependencies
are injected separately from business data.

The relay flow is expressed as a chain:

    RelayRequestedEvent -> PermitPreparedEvent -> PermitSignedEvent
        -> AuthorizedEvent -> MoveRequestedEvent -> MovedEvent

Any step may instead return ``RelayFailedEvent``, which ends the chain.
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Callable, Optional, Awaitable, AsyncGenerator

from pydantic import BaseModel, ConfigDict

from ..adapters.bases import LedgerAdapter, TokenMetadata, PermitSigner
from ..adapters.evm.constants import DEFAULT_PERMIT_TTL
from ..adapters.evm.schemas import EIP2612Permit, PermitRequest, EVMSubmissionOutcome
from ..adapters.evm.standards import EIP712Domain
from ..schemas.bases import FailureKind
from ..schemas.relay import RelayStage, RecoveryAction

# ==================== Base Event ====================

class BaseEvent(ABC):
    """Base class for all events in the system."""

    @abstractmethod
    def __repr__(self) -> str:
        """String representation of the event."""
        pass


# ==================== Trigger Events (External) ====================

class RelayRequestedEvent(BaseModel, BaseEvent):
    """External trigger: relay tokens from the signer's account to ``recipient``.

    ``amount=None`` authorizes and moves the owner's full balance.
    """
    signer: PermitSigner
    recipient: str
    amount: Optional[int] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"RelayRequestedEvent(owner={self.signer.address}, recipient={self.recipient}, amount={self.amount})"


class MoveRequestedEvent(BaseModel, BaseEvent):
    """Trigger for Step D alone; also used to retry a failed move."""
    owner: str
    recipient: str
    amount: int
    permit: Optional[EIP2612Permit] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"MoveRequestedEvent(owner={self.owner}, amount={self.amount})"


# ==================== Result Events ====================

class PermitPreparedEvent(BaseModel, BaseEvent):
    """Step A done: request built from the owner's current nonce."""
    signer: PermitSigner
    domain: EIP712Domain
    request: PermitRequest
    recipient: str
    amount: int

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"PermitPreparedEvent(owner={self.request.owner}, nonce={self.request.nonce})"


class PermitSignedEvent(BaseModel, BaseEvent):
    """Step B done, or a caller-supplied signed permit."""
    permit: EIP2612Permit
    recipient: str
    amount: int

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"PermitSignedEvent(owner={self.permit.owner}, nonce={self.permit.nonce})"


class AuthorizedEvent(BaseModel, BaseEvent):
    """Step C accepted by the ledger."""
    permit: EIP2612Permit
    outcome: EVMSubmissionOutcome
    recipient: str
    amount: int

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"AuthorizedEvent(owner={self.permit.owner}, tx={self.outcome.tx_hash})"


class MovedEvent(BaseModel, BaseEvent):
    """Step D accepted by the ledger."""
    outcome: EVMSubmissionOutcome
    owner: str
    recipient: str
    amount: int

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"MovedEvent(owner={self.owner}, amount={self.amount}, tx={self.outcome.tx_hash})"


class RelayFailedEvent(BaseModel, BaseEvent):
    """A step failed; the remaining steps are not attempted."""
    stage: RelayStage
    error_message: str
    failure_kind: Optional[FailureKind] = None
    recovery: RecoveryAction = RecoveryAction.ABORT
    outcome: Optional[EVMSubmissionOutcome] = None
    permit: Optional[EIP2612Permit] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        kind = self.failure_kind.value if self.failure_kind else None
        return f"RelayFailedEvent(stage={self.stage.value}, kind={kind}, recovery={self.recovery.value})"


class BreakEvent(BaseModel, BaseEvent):
    """Internal event to break the event chain."""
    break_reason: str = ""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return "BreakEvent()"


# ==================== Dependencies Container ====================

@dataclass(frozen=True)
class Dependencies:
    """Container for infrastructure dependencies (read-only).

    ``relayer`` is the fee-paying account for every submission.
    """
    ledger: LedgerAdapter
    token: TokenMetadata
    relayer: str
    permit_ttl: int = DEFAULT_PERMIT_TTL


# ==================== Event Bus ====================

EventHandlerFunc = Callable[[BaseEvent, Dependencies], Awaitable[Optional[BaseEvent]]]
EventHookFunc = Callable[[BaseEvent, Dependencies], Awaitable[None]]


class EventBus:
    """Event dispatcher for publishing and subscribing to events."""

    def __init__(self) -> None:
        """Initialize with empty subscribers and hooks."""
        self._subscribers: Dict[type, list[EventHandlerFunc]] = {}
        self._hooks: Dict[type, list[EventHookFunc]] = {}

    def subscribe(self, event_class: type[BaseEvent], handler: EventHandlerFunc) -> None:
        """
        Register an async handler for the given event class.
        Multiple handlers can be subscribed to the same event type and run in parallel.

        Args:
            event_class: The event class to subscribe to.
            handler: The async handler function to call when the event is published.

        Raises:
            TypeError: If handler is not a coroutine function.
        """
        if not inspect.iscoroutinefunction(handler):
            raise TypeError(f"Handler must be a coroutine function, got {type(handler).__name__}")

        if event_class not in self._subscribers:
            self._subscribers[event_class] = []
        self._subscribers[event_class].append(handler)

    def hook(self, event_class: type[BaseEvent], hook_func: EventHookFunc) -> None:
        """
        Register a hook for the given event class.
        Hooks are executed before subscribers when the event is dispatched.

        Args:
            event_class: The event class to hook into.
            hook_func: The hook function to call when the event is published.
        """
        if not inspect.iscoroutinefunction(hook_func):
            raise TypeError(f"Handler must be a coroutine function, got {type(hook_func).__name__}")

        if event_class not in self._hooks:
            self._hooks[event_class] = []
        self._hooks[event_class].append(hook_func)

    async def dispatch(self, event: BaseEvent, deps: Dependencies) -> AsyncGenerator[Optional[BaseEvent], None]:
        """
        Dispatch an event to all registered hooks and subscribers.
        Hooks run first, then all subscribers run in parallel.

        Args:
            event: The event to dispatch.
            deps: Dependencies container with injected services.

        Yields:
            Results from all subscribers as they complete. Yields nothing if no subscribers are registered.
        """
        hooks = self._hooks.get(type(event), [])
        await asyncio.gather(*(hook(event, deps) for hook in hooks))

        handlers = self._subscribers.get(type(event), [])
        if not handlers:
            return

        tasks = [handler(event, deps) for handler in handlers]
        for coro in asyncio.as_completed(tasks):
            result = await coro
            yield result

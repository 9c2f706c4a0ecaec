"""
Gasless Relay Server - Event-driven FastAPI wrapper.

Exposes a ``RelayOrchestrator`` over HTTP so that wallets can hand over a
signed permit and have the relayer pay for ``authorize`` and ``move_from``.

Endpoints:
    GET  /permit/context/{owner}  Typed data to sign for ``owner``
    POST /relay                   Steps C and D for a signed permit
    POST /relay/retry-move        Step D alone
"""

import logging
from typing import Optional, Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..engine.events import BaseEvent
from ..adapters.evm.verifies import verify_permit
from ..adapters.evm.standards import build_permit_typed_data
from ..relay.orchestrator import RelayOrchestrator
from ..relay.flows import read_domain
from ..schemas.bases import FailureKind
from ..schemas.https import (
    PermitContextResponse,
    RelayRequest,
    RetryMoveRequest,
    RelayResponse,
    ErrorResponse,
)

logger = logging.getLogger(__name__)


class RelayServer(FastAPI):
    """FastAPI server relaying EIP-2612 permits on behalf of their owners."""

    def __init__(
        self,
        orchestrator: RelayOrchestrator,
        context_endpoint: str = "/permit/context",
        relay_endpoint: str = "/relay",
        **fastapi_kwargs
    ):
        """Initialize the relay server.

        Args:
            orchestrator: Orchestrator bound to a ledger, token and relayer.
            context_endpoint: Permit context path prefix (default: /permit/context)
            relay_endpoint: Relay path (default: /relay)
            **fastapi_kwargs: FastAPI arguments (title, version, etc.)
        """
        self.orchestrator = orchestrator

        super().__init__(**fastapi_kwargs)

        self._setup_context_endpoint(context_endpoint)
        self._setup_relay_endpoints(relay_endpoint)

    def subscribe(self, event_class: type[BaseEvent], handler: Callable) -> None:
        """Register event handler.

        Args:
            event_class: Event type to handle
            handler: Async function(event, deps) -> Optional[BaseEvent]

        Example:
            ```python
            async def notify(event: MovedEvent, deps: Dependencies):
                await push_receipt(event.outcome.tx_hash)
                return None

            app.subscribe(MovedEvent, notify)
            ```
        """
        self.orchestrator.event_bus.subscribe(event_class, handler)

    def add_hook(self, event_class: type[BaseEvent], hook: Callable) -> None:
        """Register event hook for side effects.

        Args:
            event_class: Event type to hook into
            hook: Async function(event, deps) -> None
        """
        self.orchestrator.event_bus.hook(event_class, hook)

    def hook(self, event_class: type[BaseEvent]) -> Callable:
        """Decorator for registering event hooks.

        Example:
            @app.hook(RelayFailedEvent)
            async def on_failure(event, deps):
                await alert(event.failure_kind)
        """
        def decorator(hook_func: Callable) -> Callable:
            self.orchestrator.event_bus.hook(event_class, hook_func)
            return hook_func
        return decorator

    def _setup_context_endpoint(self, path: str) -> None:
        @self.get(path + "/{owner}")
        async def permit_context(owner: str, amount: Optional[int] = None):
            """Build an unsigned permit for ``owner`` with the current nonce."""
            if amount is not None and amount < 0:
                return JSONResponse(
                    status_code=400,
                    content=ErrorResponse(error="amount must be non-negative").model_dump(mode="json"),
                )
            domain, request = await self.orchestrator.prepare(owner, value=amount)
            response = PermitContextResponse(
                relayer=self.orchestrator.relayer,
                domain=domain.to_dict(),
                request=request,
                typed_data=build_permit_typed_data(domain, request).to_dict(),
            )
            return JSONResponse(status_code=200, content=response.model_dump(mode="json"))

    def _setup_relay_endpoints(self, path: str) -> None:
        @self.post(path)
        async def relay(request: Request):
            """Verify a signed permit, then authorize and move."""
            payload = await request.json()
            try:
                relay_request = RelayRequest.model_validate(payload)
            except ValidationError as e:
                return JSONResponse(
                    status_code=422,
                    content=ErrorResponse(error=str(e)).model_dump(mode="json"),
                )

            permit = relay_request.permit
            try:
                permit.validate_structure()
            except ValueError as e:
                logger.info("Rejected malformed permit from %s: %s", permit.owner, e)
                return JSONResponse(
                    status_code=400,
                    content=ErrorResponse(
                        error=str(e),
                        failure_kind=FailureKind.BAD_SIGNATURE,
                    ).model_dump(mode="json"),
                )

            if permit.spender.lower() != self.orchestrator.relayer.lower():
                return JSONResponse(
                    status_code=400,
                    content=ErrorResponse(
                        error=f"Permit must authorize the relayer {self.orchestrator.relayer}",
                    ).model_dump(mode="json"),
                )

            # Reject stale or forged permits before the relayer pays for them.
            deps = self.orchestrator.deps
            verification = verify_permit(
                permit,
                domain=await read_domain(deps),
                current_nonce=await deps.token.get_nonce(permit.owner),
                current_time=await deps.ledger.get_current_time(),
            )
            if not verification.is_success():
                logger.info("Rejected permit from %s: %s", permit.owner, verification.failure_kind.value)
                return JSONResponse(
                    status_code=400,
                    content=ErrorResponse(
                        error=verification.message,
                        failure_kind=verification.failure_kind,
                    ).model_dump(mode="json"),
                )

            result = await self.orchestrator.relay_signed(
                permit, relay_request.recipient, relay_request.amount
            )
            return JSONResponse(
                status_code=200 if result.success else 409,
                content=RelayResponse.from_result(result).model_dump(mode="json"),
            )

        @self.post(path + "/retry-move")
        async def retry_move(request: Request):
            """Run the move step alone on an existing allowance."""
            payload = await request.json()
            try:
                retry_request = RetryMoveRequest.model_validate(payload)
            except ValidationError as e:
                return JSONResponse(
                    status_code=422,
                    content=ErrorResponse(error=str(e)).model_dump(mode="json"),
                )

            result = await self.orchestrator.retry_move(
                retry_request.owner, retry_request.recipient, retry_request.amount
            )
            return JSONResponse(
                status_code=200 if result.success else 409,
                content=RelayResponse.from_result(result).model_dump(mode="json"),
            )

"""
Event chain execution engine.

Provides workflow orchestration on top of EventBus, processing events
recursively until termination conditions are met.
"""

import asyncio
from typing import AsyncGenerator, Optional

from .events import BaseEvent, BreakEvent, EventBus, Dependencies
from .exceptions import InvalidTransition


class EventChain:
    """Executes event-driven workflows by chaining event handler results.

    Each handler runs to completion before the event it returns is
    dispatched, so a step never starts before the previous one has been
    accepted or rejected.
    """

    def __init__(
        self,
        event_bus: EventBus,
        deps: Dependencies,
    ) -> None:
        """
        Initialize event chain executor.

        Args:
            event_bus: The event bus to dispatch events through.
            deps: Dependencies container to pass to handlers.
        """
        self.event_bus = event_bus
        self.deps = deps

    async def execute(self, initial_event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        """
        Execute event chain starting from initial event.

        Yields:
            Events encountered during chain execution, in order.

        Raises:
            InvalidTransition: If a handler returns something that is not an event.
            Exception: Whatever a handler raised, once the events before it
                have been yielded.
        """
        events_queue: asyncio.Queue = asyncio.Queue()
        error: Optional[BaseException] = None

        async def producer():
            nonlocal error
            try:
                async for event in self._process_event(initial_event):
                    await events_queue.put(event)
            except Exception as e:
                error = e
            finally:
                await events_queue.put(None)  # Sentinel to indicate completion

        task = asyncio.create_task(producer())

        try:
            while True:
                event = await events_queue.get()
                if event is None:  # Chain complete
                    break
                yield event
        finally:
            if not task.done():
                task.cancel()

        if error is not None:
            raise error

    async def _process_event(self, event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        """
        Process single event and recursively handle results.

        Args:
            event: The event to process.

        Yields:
            Events from the chain.
        """
        if isinstance(event, BreakEvent):
            return

        async for result in self.event_bus.dispatch(event, self.deps):
            if result is None:
                continue
            if isinstance(result, BaseEvent):
                yield result
                async for e in self._process_event(result):
                    yield e
            else:
                raise InvalidTransition(f"Handler returned unsupported type: {type(result).__name__}")

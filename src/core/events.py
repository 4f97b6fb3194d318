"""In-process event bus for fire-and-forget domain events."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable

from src.schemas.events import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """Maps event type names to async handlers.

    Publishing never raises: a failing handler is logged and the remaining
    handlers still run.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: type[DomainEvent] | str, handler: EventHandler) -> None:
        """Register a handler for an event class (or its name)."""
        name = event_type if isinstance(event_type, str) else event_type.__name__
        self._handlers[name].append(handler)
        logger.debug("Handler %s subscribed to %s", getattr(handler, "__name__", handler), name)

    def unsubscribe(self, event_type: type[DomainEvent] | str, handler: EventHandler) -> None:
        name = event_type if isinstance(event_type, str) else event_type.__name__
        if handler in self._handlers.get(name, []):
            self._handlers[name].remove(handler)

    def clear(self) -> None:
        self._handlers.clear()

    async def publish(self, event: DomainEvent) -> None:
        """Deliver an event to every subscribed handler."""
        handlers = list(self._handlers.get(event.event_type, []))

        if not handlers:
            logger.debug(
                "No handlers for event %s",
                event.event_type,
                extra={"event_id": str(event.event_id)},
            )
            return

        logger.info(
            "Publishing event %s",
            event.event_type,
            extra={"event_id": str(event.event_id), "handler_count": len(handlers)},
        )

        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "Event handler %s failed for %s: %s",
                    getattr(handler, "__name__", repr(handler)),
                    event.event_type,
                    str(e),
                    extra={"event_id": str(event.event_id)},
                )

    async def publish_all(self, events: list[DomainEvent]) -> None:
        for event in events:
            await self.publish(event)


# Global singleton instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get or create the global event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus

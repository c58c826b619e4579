"""In-process publish/subscribe bus for lifecycle notifications."""

from __future__ import annotations

import asyncio
import inspect
from typing import Awaitable, Callable, Dict, List, Union

from mnemora.domain.events import DomainEvent
from mnemora.utils.logging_config import get_logger

_logger = get_logger("mnemora.event_bus")

# Handlers may be plain functions or coroutines
EventHandler = Callable[[DomainEvent], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]

WILDCARD = "*"


class EventBus:
    """Handler registry with per-handler error isolation.

    ``publish`` runs every matching handler concurrently; a handler that
    raises is logged and never affects the others or the publisher.
    """

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        return self._add_handler(event_type, handler)

    def subscribe_all(self, handler: EventHandler) -> Unsubscribe:
        return self._add_handler(WILDCARD, handler)

    async def publish(self, event: DomainEvent) -> None:
        handlers = [*self._handlers.get(event.event_type, []), *self._handlers.get(WILDCARD, [])]
        if not handlers:
            return

        results = await asyncio.gather(
            *(self._invoke(handler, event) for handler in handlers),
            return_exceptions=True,
        )
        for handler, result in zip(handlers, results):
            if isinstance(result, BaseException):
                _logger.error(
                    "event handler failed",
                    exc_info=(type(result), result, result.__traceback__),
                    extra={
                        "event_type": event.event_type,
                        "metadata": {"handler": getattr(handler, "__qualname__", repr(handler))},
                    },
                )

    async def publish_all(self, events: List[DomainEvent]) -> None:
        for event in events:
            await self.publish(event)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: str | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(h) for h in self._handlers.values())

    def _add_handler(self, key: str, handler: EventHandler) -> Unsubscribe:
        self._handlers.setdefault(key, []).append(handler)

        def unsubscribe() -> None:
            current = self._handlers.get(key)
            if current and handler in current:
                current.remove(handler)
                if not current:
                    del self._handlers[key]

        return unsubscribe

    @staticmethod
    async def _invoke(handler: EventHandler, event: DomainEvent) -> None:
        result = handler(event)
        if inspect.isawaitable(result):
            await result


async def log_domain_event(event: DomainEvent) -> None:
    """Audit handler: one JSON log line per published event."""
    _logger.info(event.event_type, extra={"event_type": event.event_type, "metadata": event.payload()})


event_bus = EventBus()

"""Event bus for broadcasting payloads to waiting sessions.

Usage:
    bus = EventBus()

    def on_order_paid(payload):
        print(f"Order paid: {payload['order_id']}")

    bus.subscribe("order.paid", on_order_paid)

    # Publish events
    await bus.publish("order.paid", {"order_id": 42})
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Hashable
import inspect
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class EventBus:
    """Simple broadcast bus keyed by event identifier.

    Every subscriber registered under an identifier receives every payload
    published to it.  Removing a handler only removes that handler; other
    registrations under the same identifier stay in place.
    """

    def __init__(self) -> None:
        self._subscribers: dict[Hashable, list[Handler]] = {}
        self._pending: set[asyncio.Future[Any]] = set()

    def subscribe(self, event_id: Hashable, handler: Handler) -> None:
        """Subscribe to an event.

        Args:
            event_id: Identifier to listen for (e.g., "order.paid")
            handler: Sync or async callable receiving the payload
        """
        if event_id not in self._subscribers:
            self._subscribers[event_id] = []
        self._subscribers[event_id].append(handler)
        LOGGER.debug(f"Subscribed to event: {event_id!r}")

    def unsubscribe(self, event_id: Hashable, handler: Handler) -> None:
        """Unsubscribe one registration of ``handler`` from an event.

        Args:
            event_id: Event to stop listening to
            handler: Handler function to remove
        """
        handlers = self._subscribers.get(event_id)
        if handlers is None:
            return
        try:
            handlers.remove(handler)
            LOGGER.debug(f"Unsubscribed from event: {event_id!r}")
        except ValueError:
            pass
        if not handlers:
            del self._subscribers[event_id]

    def subscriber_count(self, event_id: Hashable) -> int:
        """Return how many handlers are registered for ``event_id``."""
        return len(self._subscribers.get(event_id, []))

    def has_subscriber(self, event_id: Hashable, handler: Handler) -> bool:
        """Return True when ``handler`` is registered for ``event_id``."""
        return handler in self._subscribers.get(event_id, [])

    async def publish(self, event_id: Hashable, payload: Any = None) -> int:
        """Publish a payload to all subscribers and await async handlers.

        Returns the number of handlers the payload was delivered to.
        """
        handlers = list(self._subscribers.get(event_id, []))
        if not handlers:
            LOGGER.debug(f"No subscribers for event: {event_id!r}")
            return 0

        for handler in handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                LOGGER.error(f"Event handler failed for {event_id!r}: {e}")
        return len(handlers)

    def publish_nowait(self, event_id: Hashable, payload: Any = None) -> int:
        """Publish synchronously; coroutine results are scheduled as tasks."""
        handlers = list(self._subscribers.get(event_id, []))
        for handler in handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    self._track(event_id, asyncio.ensure_future(result))
            except Exception as e:
                LOGGER.error(f"Event handler failed for {event_id!r}: {e}")
        return len(handlers)

    @property
    def pending_deliveries(self) -> int:
        """Async handlers started by ``publish_nowait`` that are still running."""
        return len(self._pending)

    def _track(self, event_id: Hashable, task: asyncio.Future[Any]) -> None:
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(lambda done: self._log_failure(event_id, done))

    @staticmethod
    def _log_failure(event_id: Hashable, task: asyncio.Future[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error(f"Event handler failed for {event_id!r}: {exc}")

    def clear(self, event_id: Hashable | None = None) -> None:
        """Clear subscribers.

        Args:
            event_id: Specific event to clear, or None for all
        """
        if event_id is not None:
            self._subscribers.pop(event_id, None)
        else:
            self._subscribers.clear()

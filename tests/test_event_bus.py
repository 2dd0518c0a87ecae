"""Tests for the in-process broadcast event bus."""

from __future__ import annotations

import asyncio
import unittest

from event_wait.events import EventBus


class EventBusTests(unittest.IsolatedAsyncioTestCase):
    """Validate broadcast delivery and identity-based unsubscription."""

    async def test_publish_broadcasts_to_every_subscriber(self) -> None:
        bus = EventBus()
        received: list[tuple[str, object]] = []
        bus.subscribe("order.paid", lambda p: received.append(("a", p)))
        bus.subscribe("order.paid", lambda p: received.append(("b", p)))
        bus.subscribe("order.refunded", lambda p: received.append(("c", p)))

        delivered = await bus.publish("order.paid", {"id": 1})

        self.assertEqual(delivered, 2)
        self.assertEqual(received, [("a", {"id": 1}), ("b", {"id": 1})])

    async def test_publish_awaits_async_handlers(self) -> None:
        bus = EventBus()
        received: list[object] = []

        async def _handler(payload: object) -> None:
            await asyncio.sleep(0)
            received.append(payload)

        bus.subscribe(7, _handler)
        await bus.publish(7, "ok")
        self.assertEqual(received, ["ok"])

    async def test_publish_without_subscribers_returns_zero(self) -> None:
        bus = EventBus()
        self.assertEqual(await bus.publish("nobody", None), 0)
        self.assertEqual(bus.publish_nowait("nobody", None), 0)

    async def test_unsubscribe_removes_only_that_handler(self) -> None:
        bus = EventBus()
        received: list[str] = []

        def _first(payload: object) -> None:
            received.append("first")

        def _second(payload: object) -> None:
            received.append("second")

        bus.subscribe("evt", _first)
        bus.subscribe("evt", _second)
        bus.unsubscribe("evt", _first)

        bus.publish_nowait("evt", None)
        self.assertEqual(received, ["second"])
        self.assertFalse(bus.has_subscriber("evt", _first))
        self.assertTrue(bus.has_subscriber("evt", _second))
        self.assertEqual(bus.subscriber_count("evt"), 1)

    async def test_unsubscribe_unknown_handler_is_noop(self) -> None:
        bus = EventBus()
        bus.unsubscribe("evt", print)
        bus.subscribe("evt", print)
        bus.unsubscribe("evt", len)
        self.assertEqual(bus.subscriber_count("evt"), 1)

    async def test_handler_may_unsubscribe_during_dispatch(self) -> None:
        bus = EventBus()
        received: list[str] = []

        def _once(payload: object) -> None:
            received.append("once")
            bus.unsubscribe("evt", _once)

        def _always(payload: object) -> None:
            received.append("always")

        bus.subscribe("evt", _once)
        bus.subscribe("evt", _always)
        bus.publish_nowait("evt", None)
        bus.publish_nowait("evt", None)
        self.assertEqual(received, ["once", "always", "always"])

    async def test_failing_handler_does_not_stop_delivery(self) -> None:
        bus = EventBus()
        received: list[str] = []

        def _broken(payload: object) -> None:
            raise RuntimeError("broken")

        bus.subscribe("evt", _broken)
        bus.subscribe("evt", lambda p: received.append("ok"))
        with self.assertLogs("event_wait.events.bus", level="ERROR"):
            await bus.publish("evt", None)
        self.assertEqual(received, ["ok"])

    async def test_publish_nowait_runs_async_handlers_to_completion(self) -> None:
        bus = EventBus()
        received: list[object] = []

        async def _handler(payload: object) -> None:
            await asyncio.sleep(0)
            received.append(payload)

        bus.subscribe("evt", _handler)
        self.assertEqual(bus.publish_nowait("evt", 7), 1)
        self.assertEqual(bus.pending_deliveries, 1)
        for _ in range(5):
            await asyncio.sleep(0)
        self.assertEqual(received, [7])
        self.assertEqual(bus.pending_deliveries, 0)

    async def test_publish_nowait_logs_failing_async_handler(self) -> None:
        bus = EventBus()

        async def _broken(payload: object) -> None:
            raise RuntimeError("broken later")

        bus.subscribe("evt", _broken)
        with self.assertLogs("event_wait.events.bus", level="ERROR") as logs:
            bus.publish_nowait("evt", None)
            for _ in range(5):
                await asyncio.sleep(0)
        self.assertTrue(any("broken later" in line for line in logs.output))
        self.assertEqual(bus.pending_deliveries, 0)

    async def test_clear_specific_and_all(self) -> None:
        bus = EventBus()
        bus.subscribe("a", print)
        bus.subscribe("b", print)
        bus.clear("a")
        self.assertEqual(bus.subscriber_count("a"), 0)
        self.assertEqual(bus.subscriber_count("b"), 1)
        bus.clear()
        self.assertEqual(bus.subscriber_count("b"), 0)


if __name__ == "__main__":
    unittest.main()

"""Handle-addressable registry of delayed callbacks on the event loop."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
import logging
import math
import time
from typing import Any, Protocol
from uuid import uuid4

LOGGER = logging.getLogger(__name__)

TimerHandle = str


class _Cancellable(Protocol):
    def cancel(self) -> None: ...


class TimerLoop(Protocol):
    """The slice of ``asyncio.AbstractEventLoop`` the registry relies on."""

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> _Cancellable: ...


@dataclass
class _PendingTimer:
    handle: TimerHandle
    callback: Callable[[], Any]
    delay_ms: float
    created_at: float = field(default_factory=time.monotonic)
    timer: _Cancellable | None = None


class TimerRegistry:
    """Own every pending delayed callback so callers only deal in handles.

    Handles that fire or are cancelled are forgotten immediately; cancelling
    an unknown handle is a no-op.  ``cancel_all`` is the shutdown hook that
    guarantees no timer outlives its owner.
    """

    def __init__(self, loop: TimerLoop | None = None) -> None:
        self._loop = loop
        self._pending: dict[TimerHandle, _PendingTimer] = {}

    def schedule(self, callback: Callable[[], Any], delay_ms: float) -> TimerHandle:
        """Run ``callback`` once after ``delay_ms`` milliseconds.

        Returns the handle immediately.  Negative or NaN delays are rejected
        with ``ValueError``; callers are expected to validate beforehand.
        """
        if isinstance(delay_ms, bool) or not isinstance(delay_ms, (int, float)):
            raise ValueError(f"delay_ms must be a number, got {delay_ms!r}.")
        try:
            delay_seconds = float(delay_ms) / 1000
        except OverflowError:
            raise ValueError("delay_ms is too large to schedule.") from None
        if math.isnan(delay_seconds) or delay_seconds < 0:
            raise ValueError(f"delay_ms must be a non-negative number, got {delay_ms!r}.")

        loop = self._loop if self._loop is not None else asyncio.get_running_loop()
        handle: TimerHandle = uuid4().hex
        pending = _PendingTimer(handle=handle, callback=callback, delay_ms=delay_ms)
        pending.timer = loop.call_later(delay_seconds, self._fire, handle)
        self._pending[handle] = pending
        LOGGER.debug(
            "timer.scheduled",
            extra={"event": "timer.scheduled", "handle": handle, "delay_ms": delay_ms},
        )
        return handle

    def _fire(self, handle: TimerHandle) -> None:
        # Forget the handle first so nothing observes a fired timer as pending.
        pending = self._pending.pop(handle, None)
        if pending is None:
            return
        LOGGER.debug("timer.fired", extra={"event": "timer.fired", "handle": handle})
        pending.callback()

    def cancel(self, handle: TimerHandle | None) -> None:
        """Cancel a pending timer; unknown or already-fired handles are ignored."""
        if handle is None:
            return
        pending = self._pending.pop(handle, None)
        if pending is None:
            return
        if pending.timer is not None:
            pending.timer.cancel()
        LOGGER.debug("timer.cancelled", extra={"event": "timer.cancelled", "handle": handle})

    def cancel_all(self) -> None:
        """Cancel every pending timer."""
        for handle in list(self._pending):
            self.cancel(handle)

    def pending(self) -> list[TimerHandle]:
        """Return the handles that have neither fired nor been cancelled."""
        return list(self._pending)

    def delay_of(self, handle: TimerHandle) -> float | None:
        """Return the scheduled delay of a pending handle, or ``None``."""
        pending = self._pending.get(handle)
        return pending.delay_ms if pending is not None else None

    def __contains__(self, handle: object) -> bool:
        return handle in self._pending

    def __len__(self) -> int:
        return len(self._pending)

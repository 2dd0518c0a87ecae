"""Deterministic stand-in for the event loop's ``call_later``."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any


class ManualTimer:
    def __init__(self, when: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualLoop:
    """Fire scheduled callbacks only when the test advances the clock."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualTimer:
        timer = ManualTimer(self.now + delay, callback, args)
        self.timers.append(timer)
        return timer

    def advance_ms(self, milliseconds: float) -> None:
        target = self.now + milliseconds / 1000
        while True:
            due = [
                t
                for t in self.timers
                if not t.cancelled and not t.fired and t.when <= target
            ]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            timer.fired = True
            self.now = timer.when
            timer.callback(*timer.args)
        self.now = target

    def live(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

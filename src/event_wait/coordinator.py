"""Race an event subscription against a deadline for one message at a time.

Each message handed to :class:`WaitCoordinator` becomes a :class:`WaitSession`
that owns exactly one timer and one bus subscription.  Whichever fires first
releases both and produces the single result: the merged message on the
completion output, or the original message on the timeout output.

Everything runs on one asyncio loop, so the terminal check-and-set in the
session needs no lock.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Hashable, Mapping
from dataclasses import dataclass
from enum import Enum
import logging
import math
from typing import Any
from uuid import uuid4

from .config import MergeStrategy, PropertyRef, TimeoutHandling, WaitForConfig
from .events import EventBus
from .exceptions import (
    EventWaitError,
    InvalidEventId,
    InvalidTimeout,
    MissingEventBusError,
    NonPositiveTimeout,
    PropertyResolutionError,
    UnsupportedModeError,
)
from .resolver import PropertyResolver, ResolutionScope
from .timeouts import TimeUnit, normalize_timeout
from .timer_registry import TimerHandle, TimerRegistry

LOGGER = logging.getLogger(__name__)

COMPLETION_OUTPUT = 0
TIMEOUT_OUTPUT = 1

Outputs = tuple[Any, Any]


class SessionState(str, Enum):
    """Lifecycle of a single wait; every state but WAITING is terminal."""

    WAITING = "WAITING"
    COMPLETED = "COMPLETED"
    TIMED_OUT = "TIMED_OUT"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class Status:
    """Human-readable progress report with a severity level."""

    text: str
    level: str = "info"


@dataclass(frozen=True)
class WaitOutcome:
    """Result of a finished session."""

    state: SessionState
    message: Any
    payload: Any = None


_REJECTION_STATUS: dict[type[EventWaitError], Status] = {
    InvalidTimeout: Status("timeout is not a number", "error"),
    NonPositiveTimeout: Status("timeout must be positive", "warning"),
    InvalidEventId: Status("invalid event id", "error"),
    PropertyResolutionError: Status("property resolution failed", "error"),
    MissingEventBusError: Status("no collaborator configured", "error"),
    UnsupportedModeError: Status("unsupported timeout handling", "error"),
}


def validate_event_id(event_id: Any) -> Hashable:
    """Reject identifiers that would subscribe under a meaningless key."""
    if event_id is None:
        raise InvalidEventId("Event id resolved to nothing.")
    if isinstance(event_id, str) and not event_id.strip():
        raise InvalidEventId("Event id resolved to an empty string.")
    if isinstance(event_id, float) and math.isnan(event_id):
        raise InvalidEventId("Event id resolved to NaN.")
    try:
        hash(event_id)
    except TypeError:
        raise InvalidEventId(
            f"Event id of type {type(event_id).__name__} cannot be subscribed to."
        ) from None
    return event_id


class WaitSession:
    """One in-flight wait: a timer and a subscription, one of which wins."""

    def __init__(
        self,
        event_id: Hashable,
        deadline_ms: int | float,
        merge_strategy: MergeStrategy,
        message: Any,
        *,
        bus: EventBus,
        timers: TimerRegistry,
        merge: Callable[[Any, Any], Any],
        on_finish: Callable[[WaitSession, WaitOutcome], None],
    ) -> None:
        self.id = uuid4().hex
        self.event_id = event_id
        self.deadline_ms = deadline_ms
        self.merge_strategy = merge_strategy
        self.message = message
        self.state = SessionState.WAITING
        self.timer_handle: TimerHandle | None = None
        self.outcome: WaitOutcome | None = None
        self._bus = bus
        self._timers = timers
        self._merge = merge
        self._on_finish = on_finish
        self._handler = self._on_event
        self._subscribed = False
        self._done = asyncio.Event()

    @property
    def handler(self) -> Callable[[Any], None]:
        """The exact callable registered on the bus."""
        return self._handler

    @property
    def subscribed(self) -> bool:
        return self._subscribed

    @property
    def done(self) -> bool:
        return self.state is not SessionState.WAITING

    def arm(self) -> None:
        """Schedule the deadline, then subscribe to the event."""
        self.timer_handle = self._timers.schedule(self._on_timeout, self.deadline_ms)
        try:
            self._bus.subscribe(self.event_id, self._handler)
        except Exception:
            self._timers.cancel(self.timer_handle)
            self.timer_handle = None
            raise
        self._subscribed = True

    async def wait(self) -> WaitOutcome:
        """Suspend until the session reaches a terminal state."""
        await self._done.wait()
        assert self.outcome is not None
        return self.outcome

    def cancel(self) -> bool:
        """Release resources without producing a result (shutdown path)."""
        if self.done:
            self._release()
            return False
        self._release()
        self.state = SessionState.CANCELLED
        self._finish(WaitOutcome(SessionState.CANCELLED, self.message))
        return True

    def _release(self) -> None:
        self._timers.cancel(self.timer_handle)
        self.timer_handle = None
        if self._subscribed:
            self._bus.unsubscribe(self.event_id, self._handler)
            self._subscribed = False

    def _on_event(self, payload: Any) -> None:
        if self.done:
            self._release()
            return
        self._release()
        self.state = SessionState.COMPLETED
        try:
            message = self._merge(self.message, payload)
        except EventWaitError as exc:
            LOGGER.warning(
                "wait.session.merge_failed",
                extra={
                    "event": "wait.session.merge_failed",
                    "session_id": self.id,
                    "error": str(exc),
                },
            )
            message = self.message
        self._finish(WaitOutcome(SessionState.COMPLETED, message, payload))

    def _on_timeout(self) -> None:
        if self.done:
            self._release()
            return
        self._release()
        self.state = SessionState.TIMED_OUT
        self._finish(WaitOutcome(SessionState.TIMED_OUT, self.message))

    def _finish(self, outcome: WaitOutcome) -> None:
        self.outcome = outcome
        self._done.set()
        self._on_finish(self, outcome)


class WaitCoordinator:
    """Turn incoming messages into wait sessions and route their results.

    ``send`` receives a two-slot tuple: the completed message in slot
    ``COMPLETION_OUTPUT`` or the original message in slot ``TIMEOUT_OUTPUT``,
    the other slot being ``None``.  ``status`` receives :class:`Status`
    reports.  Both are optional; every session is also awaitable.
    """

    def __init__(
        self,
        config: WaitForConfig,
        bus: EventBus | None,
        *,
        resolver: PropertyResolver | None = None,
        timers: TimerRegistry | None = None,
        send: Callable[[Outputs], None] | None = None,
        status: Callable[[Status], None] | None = None,
    ) -> None:
        if config.timeout_handling is not TimeoutHandling.SINGLE:
            raise UnsupportedModeError(
                f"Timeout handling {config.timeout_handling.value!r} is not implemented."
            )
        self.config = config
        self.bus = bus
        self.resolver = resolver if resolver is not None else PropertyResolver()
        self.timers = timers if timers is not None else TimerRegistry()
        self._send = send
        self._status = status
        self._sessions: dict[str, WaitSession] = {}
        self._closed = False
        self.last_status: Status | None = None

        if bus is None:
            LOGGER.warning(
                "wait.bus.missing", extra={"event": "wait.bus.missing"}
            )
            self._report(_REJECTION_STATUS[MissingEventBusError])
        else:
            self._report(Status("ready"))

    @property
    def sessions(self) -> list[WaitSession]:
        """Sessions that are still waiting."""
        return list(self._sessions.values())

    async def on_input(self, message: Any) -> WaitSession | None:
        """Start waiting for ``message``; rejected input returns ``None``.

        Resolution and validation failures are reported through the status
        channel and never create a timer or a subscription.
        """
        try:
            if self.bus is None:
                raise MissingEventBusError("No event bus configured.")
            event_id = await self.resolve_event_id(message)
            deadline_ms = await self.resolve_timeout(message)
            return self.start(message, event_id, deadline_ms)
        except EventWaitError as exc:
            self._reject(exc)
            return None

    async def resolve_event_id(self, message: Any) -> Hashable:
        ref = self.config.event_id
        if ref.scope is ResolutionScope.EXPRESSION:
            value = await self.resolver.aresolve(message, ref.scope, ref.value)
        else:
            value = self.resolver.resolve(message, ref.scope, ref.value)
        return validate_event_id(value)

    async def resolve_timeout(self, message: Any) -> int | float:
        ref = self.config.timeout
        value = await self.resolver.aresolve(message, ref.scope, ref.value)
        return normalize_timeout(value, self.config.timeout_unit)

    def start(
        self, message: Any, event_id: Any, deadline_ms: int | float
    ) -> WaitSession:
        """Arm a session with an already-resolved event id and deadline."""
        if self.bus is None:
            raise MissingEventBusError("No event bus configured.")
        event_id = validate_event_id(event_id)
        deadline_ms = normalize_timeout(deadline_ms, TimeUnit.MILLISECONDS)

        session = WaitSession(
            event_id,
            deadline_ms,
            self.config.event_handling,
            message,
            bus=self.bus,
            timers=self.timers,
            merge=self.apply_strategy,
            on_finish=self._on_session_finished,
        )
        session.arm()
        self._sessions[session.id] = session
        LOGGER.info(
            "wait.session.started",
            extra={
                "event": "wait.session.started",
                "session_id": session.id,
                "event_id": repr(event_id),
                "deadline_ms": deadline_ms,
            },
        )
        self._report(Status(f"waiting for {event_id}"))
        return session

    def apply_strategy(self, message: Any, payload: Any) -> Any:
        """Combine a matched payload with the waiting message."""
        strategy = self.config.event_handling
        if strategy is MergeStrategy.SET_PROPERTY:
            target: PropertyRef = self.config.event_handling_property
            return self.resolver.assign(message, target.scope, target.value, payload)
        if not isinstance(payload, Mapping) or not isinstance(message, Mapping):
            return message
        if strategy is MergeStrategy.MERGE_INTO_MESSAGE:
            return {**message, **payload}
        return {**payload, **message}

    def close(self) -> None:
        """Cancel every live session and timer; safe to call repeatedly."""
        cancelled = 0
        for session in list(self._sessions.values()):
            if session.cancel():
                cancelled += 1
        self.timers.cancel_all()
        if not self._closed:
            LOGGER.info(
                "wait.coordinator.closed",
                extra={"event": "wait.coordinator.closed", "cancelled": cancelled},
            )
        self._closed = True

    def _on_session_finished(self, session: WaitSession, outcome: WaitOutcome) -> None:
        self._sessions.pop(session.id, None)
        if outcome.state is SessionState.COMPLETED:
            LOGGER.info(
                "wait.session.completed",
                extra={"event": "wait.session.completed", "session_id": session.id},
            )
            self._emit((outcome.message, None))
            self._report(Status(f"completed: {session.event_id}"))
        elif outcome.state is SessionState.TIMED_OUT:
            LOGGER.info(
                "wait.session.timeout",
                extra={"event": "wait.session.timeout", "session_id": session.id},
            )
            self._emit((None, outcome.message))
            self._report(Status(f"timeout: {session.event_id}", "error"))
        else:
            LOGGER.debug(
                "wait.session.cancelled",
                extra={"event": "wait.session.cancelled", "session_id": session.id},
            )

    def _emit(self, outputs: Outputs) -> None:
        if self._send is not None:
            self._send(outputs)

    def _reject(self, exc: EventWaitError) -> None:
        LOGGER.warning(
            "wait.input.rejected",
            extra={
                "event": "wait.input.rejected",
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
        self._report(_REJECTION_STATUS.get(type(exc), Status(str(exc), "error")))

    def _report(self, status: Status) -> None:
        self.last_status = status
        if self._status is not None:
            self._status(status)

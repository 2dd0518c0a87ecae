"""Top-level package for event-wait."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config import MergeStrategy, TimeoutHandling, WaitForConfig, load_config
    from .coordinator import SessionState, Status, WaitCoordinator, WaitOutcome, WaitSession
    from .events import EventBus
    from .exceptions import (
        ConfigValidationError,
        EventWaitError,
        InvalidEventId,
        InvalidTimeout,
        NonPositiveTimeout,
        PropertyResolutionError,
    )
    from .resolver import ContextStore, PropertyResolver, ResolutionScope
    from .timeouts import TimeUnit, normalize_timeout
    from .timer_registry import TimerRegistry

_EXPORTS: dict[str, str] = {
    "MergeStrategy": "config",
    "TimeoutHandling": "config",
    "WaitForConfig": "config",
    "load_config": "config",
    "SessionState": "coordinator",
    "Status": "coordinator",
    "WaitCoordinator": "coordinator",
    "WaitOutcome": "coordinator",
    "WaitSession": "coordinator",
    "EventBus": "events",
    "ConfigValidationError": "exceptions",
    "EventWaitError": "exceptions",
    "InvalidEventId": "exceptions",
    "InvalidTimeout": "exceptions",
    "NonPositiveTimeout": "exceptions",
    "PropertyResolutionError": "exceptions",
    "ContextStore": "resolver",
    "PropertyResolver": "resolver",
    "ResolutionScope": "resolver",
    "TimeUnit": "timeouts",
    "normalize_timeout": "timeouts",
    "TimerRegistry": "timer_registry",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import symbols so importing the package stays cheap."""
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module

    module = import_module(f".{module_name}", __name__)
    return getattr(module, name)

"""In-process event bus shared by concurrently waiting sessions."""

from .bus import EventBus, Handler

__all__ = ["EventBus", "Handler"]

from __future__ import annotations

import threading
from typing import Any, Callable

# Every event type the engine and its components emit.
EVENT_TYPES = (
    "cache.hit",
    "cache.miss",
    "index.rebuild",
    "extract.mono_fallback",
    "waveform.placeholder",
    "waveform.ready",
    "playback.start",
    "playback.stop",
    "regions.changed",
)

ANY_EVENT = "*"


class EventBus:
    """Publish/subscribe hub for engine progress.

    Handlers for a named event are called as ``handler(**data)``.
    Handlers subscribed to :data:`ANY_EVENT` are called as
    ``handler(event_type, **data)`` for every emission, which is what
    loggers and test recorders want.

    Subscribing and emitting are safe from any thread; handlers run on
    the emitting thread.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[..., Any]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: str,
                  handler: Callable[..., Any]) -> Callable[[], None]:
        """Register *handler*; returns a callable that unregisters it."""
        if event_type != ANY_EVENT and event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type!r}")
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: str, handler: Callable[..., Any]) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type)
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del self._handlers[event_type]

    def has_subscribers(self, event_type: str) -> bool:
        with self._lock:
            return bool(self._handlers.get(event_type)
                        or self._handlers.get(ANY_EVENT))

    def emit(self, event_type: str, **data: Any) -> None:
        with self._lock:
            named = list(self._handlers.get(event_type, ()))
            wildcard = list(self._handlers.get(ANY_EVENT, ()))
        for handler in named:
            handler(**data)
        for handler in wildcard:
            handler(event_type, **data)

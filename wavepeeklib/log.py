"""Debug tracing and logging setup for wavepeek.

Two layers:

* module loggers (``log = logging.getLogger(__name__)``) for warnings a
  user should see: skipped region records, failed index builds, stream
  teardown errors;
* :func:`dbg`, a stderr tracer for the peak pipeline, silent unless
  ``WAVEPEEK_DEBUG`` is ``1`` or ``true``.  Lines look like
  ``[12:04:33.187 PeakCache] dropping degenerate entry ...``.
"""

from __future__ import annotations

import logging
import os
import sys
import time

from .events import ANY_EVENT, EventBus

_ENV_VAR = "WAVEPEEK_DEBUG"
_ENABLED: bool | None = None


def tracing_enabled() -> bool:
    global _ENABLED
    if _ENABLED is None:
        _ENABLED = os.environ.get(_ENV_VAR, "").strip().lower() in ("1", "true")
    return _ENABLED


def set_enabled(enabled: bool | None) -> None:
    """Force tracing on or off.  ``None`` re-reads the environment."""
    global _ENABLED
    _ENABLED = enabled


def _origin(depth: int) -> str:
    try:
        frame = sys._getframe(depth + 1)
    except ValueError:
        return "?"
    owner = frame.f_locals.get("self")
    if owner is not None:
        return type(owner).__name__
    module = frame.f_globals.get("__name__") or "?"
    return module.rpartition(".")[2]


def dbg(msg: str) -> None:
    """Trace *msg* to stderr, tagged with the calling class or module."""
    if not tracing_enabled():
        return
    now = time.time()
    stamp = time.strftime("%H:%M:%S", time.localtime(now))
    print(f"[{stamp}.{int(now % 1 * 1000):03d} {_origin(1)}] {msg}",
          file=sys.stderr, flush=True)


def trace_events(bus: EventBus):
    """Echo every event on *bus* through :func:`dbg`.

    Returns the unsubscribe callable.
    """
    def _echo(event_type, **data):
        fields = " ".join(f"{k}={v}" for k, v in data.items())
        dbg(f"{event_type} {fields}")
    return bus.subscribe(ANY_EVENT, _echo)


def configure_logging(debug: bool = False) -> None:
    """Set up root logging for the command line tool.

    With *debug*, tracing is switched on as well and the level drops to
    ``DEBUG``.
    """
    if debug:
        set_enabled(True)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

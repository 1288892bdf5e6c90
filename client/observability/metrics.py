"""
Timing metrics for recognition sessions.

- Durations use monotonic time; ts_ms on the emitted event is wall clock
- One metric = one METRIC_TIMER log event, never aggregated
- Prefer timed() so a timer cannot leak across an exception
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


# timer_id -> (metric_name, start_time_ns)
_active_timers: dict[str, tuple[str, int]] = {}


def start_timer(name: str) -> str:
    """
    Start a monotonic timer and return its opaque id.

    Callers must eventually stop_timer() or cancel_timer() the id.
    """
    timer_id = f"timer_{uuid.uuid4().hex[:12]}"
    _active_timers[timer_id] = (name, time.monotonic_ns())
    return timer_id


def cancel_timer(timer_id: str | None) -> None:
    """Forget a timer without emitting anything (e.g. session failed first)."""
    if timer_id is not None:
        _active_timers.pop(timer_id, None)


def stop_timer(
    timer_id: str | None,
    *,
    session_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> int | None:
    """
    Stop a timer and emit its metric.

    Returns:
        duration_ms if the timer existed, else None (already stopped).
    """
    if timer_id is None:
        return None
    entry = _active_timers.pop(timer_id, None)
    if entry is None:
        return None

    name, start_ns = entry
    duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000

    log_event({
        "event_type": "METRIC_TIMER",
        "metric": name,
        "value_ms": duration_ms,
        "session_id": session_id,
        "details": details or {},
    })

    return duration_ms


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Measure the enclosed block; the metric is emitted exactly once, even
    if the block raises.

        with timed("iat_connect", session_id=session.session_id):
            ws = await connect(url)
    """
    timer_id = start_timer(name)
    try:
        yield
    finally:
        stop_timer(timer_id, session_id=session_id, details=details)

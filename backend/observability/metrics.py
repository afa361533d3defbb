"""
Duration metrics for session lifecycle stages.

Each measurement is a single METRIC_TIMER log line; nothing is aggregated
in-process. Durations come from the monotonic clock, ts_ms from wall time.

Metrics emitted by the runtime:
- session_connect_latency: CONNECTING -> ACTIVE
- session_duration: ACTIVE -> FINISHED
- session_record_latency: one history write, with its outcome
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


# Running timers keyed by id: (metric, monotonic start in ns)
_running: dict[str, tuple[str, int]] = {}


def start_timer(name: str) -> str:
    """Begin timing `name`; returns the id for stop_timer()/discard_timer()."""
    timer_id = f"{name}_{uuid.uuid4().hex[:8]}"
    _running[timer_id] = (name, time.monotonic_ns())
    return timer_id


def stop_timer(
    timer_id: str,
    *,
    session_id: str | None = None,
    status: str | None = None,
    details: dict[str, Any] | None = None,
) -> int | None:
    """Emit the elapsed milliseconds for `timer_id`. None if it is not running."""
    entry = _running.pop(timer_id, None)
    if entry is None:
        return None

    metric, started_ns = entry
    elapsed_ms = (time.monotonic_ns() - started_ns) // 1_000_000

    log_event({
        "event_type": "METRIC_TIMER",
        "metric": metric,
        "value_ms": elapsed_ms,
        "session_id": session_id,
        "status": status,
        "details": details or {},
    })
    return elapsed_ms


def discard_timer(timer_id: str) -> None:
    """Forget a timer whose stage never completed (e.g. a call that never connected)."""
    _running.pop(timer_id, None)


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    status: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Time the enclosed block and emit one metric when it exits.

    The metric's details carry outcome="ok" or outcome="error"; exceptions
    from the block propagate unchanged.
    """
    timer_id = start_timer(name)
    outcome = "error"
    try:
        yield
        outcome = "ok"
    finally:
        stop_timer(
            timer_id,
            session_id=session_id,
            status=status,
            details={**(details or {}), "outcome": outcome},
        )

"""Raw trace event records and their validation."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from trace_diagnostics.config import OBJECT_DEFAULT_SCOPE
from trace_diagnostics.errors import TraceFormatError

PHASE_BEGIN = "B"
PHASE_END = "E"
PHASE_COMPLETE = "X"
PHASE_INSTANT = ("I", "i", "R")
PHASE_ASYNC_BEGIN = ("b", "S")
PHASE_ASYNC_END = ("e", "F")
PHASE_ASYNC_STEP = ("n", "T", "p")
PHASE_OBJECT_CREATED = "N"
PHASE_OBJECT_SNAPSHOT = "O"
PHASE_OBJECT_DELETED = "D"
PHASE_METADATA = "M"

OBJECT_PHASES = (PHASE_OBJECT_CREATED, PHASE_OBJECT_SNAPSHOT, PHASE_OBJECT_DELETED)
THREAD_PHASES = (PHASE_BEGIN, PHASE_END, PHASE_COMPLETE) + PHASE_INSTANT


@dataclass(frozen=True)
class RawEvent:
    """One trace event record; times are in microseconds."""

    category: str
    name: str
    phase: str
    timestamp: float
    pid: int
    tid: int | None = None
    duration: float | None = None
    scope: str | None = None
    id: str | None = None
    args: dict = field(default_factory=dict)

    @property
    def ts_ms(self) -> float:
        return self.timestamp / 1000.0

    @property
    def duration_ms(self) -> float | None:
        if self.duration is None:
            return None
        return self.duration / 1000.0

    @property
    def object_scope(self) -> str:
        return self.scope if self.scope is not None else OBJECT_DEFAULT_SCOPE


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def _as_id(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"boolean id: {value}")
    if isinstance(value, (int, str)):
        return str(value)
    if isinstance(value, float) and math.isfinite(value) and value % 1.0 == 0.0:
        return str(int(value))
    raise ValueError(f"unexpected id type {value.__class__.__name__}: {value}")


def parse_event(record: Any) -> RawEvent:
    """
    Validate a trace-event dictionary and convert it to a RawEvent.

    Args:
        record: One element of the trace's event array

    Raises:
        ValueError: The record is missing a required field or has bad types

    Returns:
        The parsed RawEvent
    """
    if not isinstance(record, dict):
        raise ValueError(f"record is not an object: {record!r}")

    phase = record.get("ph")
    if not isinstance(phase, str) or not phase:
        raise ValueError("missing phase")

    pid = record.get("pid")
    if not _is_number(pid):
        raise ValueError(f"missing pid for {phase} event")

    ts = record.get("ts")
    if ts is None and phase == PHASE_METADATA:
        ts = 0
    if not _is_number(ts):
        raise ValueError(f"missing timestamp for {phase} event")

    tid = record.get("tid")
    if tid is not None and not _is_number(tid):
        raise ValueError(f"bad tid {tid!r}")
    if tid is None and phase in THREAD_PHASES:
        raise ValueError(f"missing tid for {phase} event")

    dur = record.get("dur")
    if dur is not None and not _is_number(dur):
        raise ValueError(f"bad duration {dur!r}")
    if phase == PHASE_COMPLETE and dur is None:
        raise ValueError("complete event without duration")

    event_id = record.get("id")
    if event_id is None and isinstance(record.get("id2"), dict):
        id2 = record["id2"]
        event_id = id2.get("local", id2.get("global"))
    event_id = _as_id(event_id)
    if event_id is None and phase in OBJECT_PHASES:
        raise ValueError(f"missing id for object event {record.get('name')!r}")

    args = record.get("args")
    if args is None:
        args = {}
    if not isinstance(args, dict):
        raise ValueError(f"args is not an object: {args!r}")

    scope = record.get("scope")
    return RawEvent(
        category=str(record.get("cat") or ""),
        name=str(record.get("name") or ""),
        phase=phase,
        timestamp=ts,
        pid=int(pid),
        tid=int(tid) if tid is not None else None,
        duration=dur,
        scope=str(scope) if scope is not None else None,
        id=event_id,
        args=args
    )


def extract_trace_events(trace_contents: Any) -> tuple[list, dict]:
    """
    Return the raw event list and trace metadata from a loaded trace.

    Accepts both the bare JSON array format and the object format with a
    ``traceEvents`` key.
    """
    if isinstance(trace_contents, list):
        return trace_contents, {}
    if isinstance(trace_contents, dict):
        events = trace_contents.get("traceEvents")
        if not isinstance(events, list):
            raise TraceFormatError("Trace object has no traceEvents array")
        metadata = trace_contents.get("metadata")
        return events, metadata if isinstance(metadata, dict) else {}
    raise TraceFormatError(
        f"Unknown trace format: expected a list or object, got {type(trace_contents).__name__}"
    )

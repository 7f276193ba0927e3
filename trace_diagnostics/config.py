"""Engine configuration: defaults plus environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass

LONG_TASK_MS = 50
FOLLOW_UP_LATENCY_MS = 16

# The default scope of object events, when not explicitly specified.
OBJECT_DEFAULT_SCOPE = "ptr"


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class EngineConfig:
    long_task_ms: int = LONG_TASK_MS
    parallel_metrics: bool = False
    max_workers: int | None = None

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """
        Build a config from TRACE_DIAGNOSTICS_* environment variables.

        Unset or unparseable variables fall back to the defaults.
        """
        return cls(
            long_task_ms=_env_int("TRACE_DIAGNOSTICS_LONG_TASK_MS", LONG_TASK_MS),
            parallel_metrics=_env_bool("TRACE_DIAGNOSTICS_PARALLEL_METRICS", False),
            max_workers=_env_int("TRACE_DIAGNOSTICS_MAX_WORKERS", None)
        )

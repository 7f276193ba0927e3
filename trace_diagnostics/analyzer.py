"""End-to-end trace analysis: build, classify, run metrics."""

from __future__ import annotations

import gzip
import json
import logging
from pathlib import Path
from typing import Any

from trace_diagnostics.builder import ObjectModelBuilder
from trace_diagnostics.config import EngineConfig
from trace_diagnostics.errors import MetricError, TraceDiagnosticsError
from trace_diagnostics.metrics.registry import MetricRegistry, default_metric_registry
from trace_diagnostics.model import Model
from trace_diagnostics.registry import TypeRegistry
from trace_diagnostics.user_model import ExpectationKind, UserExpectationClassifier

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1"


def _set_assumption(assumptions: dict, key: str, note: str) -> None:
    if key not in assumptions:
        assumptions[key] = note


def load_trace(trace_path: str | Path) -> Any:
    """Load a JSON trace file, transparently handling .gz compression."""
    path = Path(trace_path)
    if path.suffix == ".gz":
        with gzip.open(path, "rt", encoding="utf-8") as f:
            return json.load(f)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def build_classified_model(trace_contents: Any, type_registry: TypeRegistry | None = None) -> Model:
    model = ObjectModelBuilder(type_registry).ingest(trace_contents)
    return UserExpectationClassifier().classify(model)


def _summarize_expectations(model: Model) -> list[dict]:
    return [
        {
            "stable_id": ue.stable_id,
            "kind": ue.kind.value,
            "initiator_title": ue.initiator_title,
            "start_ms": ue.start,
            "end_ms": ue.end,
            "associated_event_count": len(ue.associated_events)
        }
        for ue in model.user_expectations
    ]


def _summarize_processes(model: Model) -> list[dict]:
    return [
        {
            "pid": process.pid,
            "name": process.name,
            "thread_count": len(process.threads),
            "object_instance_count": len(process.instance_ids)
        }
        for _, process in sorted(model.processes.items())
    ]


def analyze_trace(
    trace_contents: Any,
    config: EngineConfig | None = None,
    metric_registry: MetricRegistry | None = None,
    type_registry: TypeRegistry | None = None
) -> dict:
    """
    Analyze a loaded trace and return structured results.

    Never raises for bad trace data: an unusable trace produces a result with
    a non-empty ``debugString`` and no metrics.

    Args:
        trace_contents: Parsed trace JSON (event list or object form)
        config: Engine settings; defaults come from the environment
        metric_registry: Metrics to run; defaults to the built-in metrics

    Returns:
        Dictionary with model summary, metric values and assumptions
    """
    config = config or EngineConfig.from_env()
    registry = metric_registry or default_metric_registry(config.long_task_ms)
    assumptions: dict = {}

    try:
        model = build_classified_model(trace_contents, type_registry)
    except TraceDiagnosticsError as exc:
        logger.warning("Trace could not be analyzed: %s", exc)
        return {
            "schema_version": SCHEMA_VERSION,
            "debugString": f"Trace could not be analyzed: {exc}",
            "metrics": [],
            "assumptions": assumptions
        }

    failures: list[MetricError] = []
    values = registry.run_all(
        model,
        parallel=config.parallel_metrics,
        max_workers=config.max_workers,
        failures=failures
    )
    for failure in failures:
        _set_assumption(assumptions, f"metric:{failure.metric_name}", str(failure))

    warning_counts: dict[str, int] = {}
    for warning in model.import_warnings:
        warning_counts[warning.type] = warning_counts.get(warning.type, 0) + 1
    if warning_counts:
        _set_assumption(
            assumptions,
            "import_warnings",
            ", ".join(f"{key}={count}" for key, count in sorted(warning_counts.items()))
        )
    if not any(ue.kind is ExpectationKind.IDLE for ue in model.user_expectations):
        _set_assumption(assumptions, "idle", "No Idle expectations found; hazard defaults to 0")
    _set_assumption(
        assumptions,
        "long_tasks",
        f"Long tasks are top-level slices with dur > {config.long_task_ms}ms inside Idle expectations"
    )
    _set_assumption(
        assumptions,
        "no_data",
        "Metrics with no qualifying data report 0, same as a measured zero"
    )

    return {
        "schema_version": SCHEMA_VERSION,
        "canonical_url": model.canonical_url,
        "trace_duration_ms": model.duration,
        "processes": _summarize_processes(model),
        "user_expectations": _summarize_expectations(model),
        "metrics": [value.as_dict() for value in values],
        "assumptions": assumptions
    }

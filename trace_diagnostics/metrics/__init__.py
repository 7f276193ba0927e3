"""Metric registry and built-in metrics."""

from trace_diagnostics.metrics.hazard import (
    HazardMetric,
    compute_responsiveness_risk,
    find_long_tasks,
    perceptual_blend
)
from trace_diagnostics.metrics.registry import Metric, MetricRegistry, default_metric_registry
from trace_diagnostics.metrics.responsiveness import (
    FAST_RESPONSE_DISTRIBUTION,
    ReferenceDistribution,
    satisfied_fraction
)

__all__ = [
    "FAST_RESPONSE_DISTRIBUTION",
    "HazardMetric",
    "Metric",
    "MetricRegistry",
    "ReferenceDistribution",
    "compute_responsiveness_risk",
    "default_metric_registry",
    "find_long_tasks",
    "perceptual_blend",
    "satisfied_fraction"
]

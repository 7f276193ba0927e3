"""Trace-based performance diagnostics: trace model, user expectations, metrics."""

from trace_diagnostics.analyzer import analyze_trace, build_classified_model, load_trace
from trace_diagnostics.builder import ObjectModelBuilder, build_model
from trace_diagnostics.config import EngineConfig
from trace_diagnostics.errors import MetricError, TraceDiagnosticsError, TraceFormatError
from trace_diagnostics.metrics import HazardMetric, MetricRegistry, default_metric_registry
from trace_diagnostics.model import Model
from trace_diagnostics.registry import TypeRegistry, default_type_registry
from trace_diagnostics.statistics import NO_DATA, weighted_mean
from trace_diagnostics.user_model import ExpectationKind, UserExpectation, UserExpectationClassifier
from trace_diagnostics.values import NumericValue, Unit

__all__ = [
    "EngineConfig",
    "ExpectationKind",
    "HazardMetric",
    "MetricError",
    "MetricRegistry",
    "Model",
    "NO_DATA",
    "NumericValue",
    "ObjectModelBuilder",
    "TraceDiagnosticsError",
    "TraceFormatError",
    "TypeRegistry",
    "Unit",
    "UserExpectation",
    "UserExpectationClassifier",
    "analyze_trace",
    "build_classified_model",
    "build_model",
    "default_metric_registry",
    "default_type_registry",
    "load_trace",
    "weighted_mean"
]

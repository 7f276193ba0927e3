"""Exception types raised by the trace diagnostics engine."""


class TraceDiagnosticsError(Exception):
    """Base class for engine errors."""


class TraceFormatError(TraceDiagnosticsError):
    """The trace as a whole is unusable (not a list of trace events)."""


class MetricError(TraceDiagnosticsError):
    """A registered metric failed while computing its values."""

    def __init__(self, metric_name: str, cause: Exception):
        super().__init__(f"Metric {metric_name} failed: {cause}")
        self.metric_name = metric_name
        self.cause = cause

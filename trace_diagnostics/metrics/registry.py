"""Metric registration table and the driver that runs every metric."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol, Sequence

from trace_diagnostics.errors import MetricError
from trace_diagnostics.model import Model
from trace_diagnostics.values import NumericValue

logger = logging.getLogger(__name__)


class Metric(Protocol):
    """A named computation from a classified Model to NumericValues.

    ``compute`` must not mutate the model.
    """

    def name(self) -> str:
        ...

    def compute(self, model: Model) -> Sequence[NumericValue]:
        ...


class MetricRegistry:
    """
    Ordered name -> Metric table.

    Names are unique: registering a second metric under an existing name
    raises ValueError.
    """

    def __init__(self):
        self._metrics: dict[str, Metric] = {}

    def register(self, metric: Metric) -> Metric:
        metric_name = metric.name()
        if metric_name in self._metrics:
            raise ValueError(f"Metric already registered: {metric_name}")
        self._metrics[metric_name] = metric
        return metric

    def get(self, metric_name: str) -> Metric | None:
        return self._metrics.get(metric_name)

    def names(self) -> list[str]:
        return list(self._metrics)

    def __len__(self) -> int:
        return len(self._metrics)

    def run_all(
        self,
        model: Model,
        parallel: bool = False,
        max_workers: int | None = None,
        failures: list[MetricError] | None = None
    ) -> list[NumericValue]:
        """
        Run every registered metric and concatenate the outputs.

        Output order is registration order even when metrics run in parallel.
        A failing metric contributes no values; the failure is logged and, if
        ``failures`` is given, appended to it.

        Args:
            model: Built and classified model, shared read-only
            parallel: Run metrics on a thread pool
            max_workers: Pool size when parallel
            failures: Optional list collecting MetricError per failed metric

        Returns:
            All NumericValues in registration order
        """
        metrics = list(self._metrics.values())
        if parallel and len(metrics) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                results = list(executor.map(lambda metric: _run_one(metric, model), metrics))
        else:
            results = [_run_one(metric, model) for metric in metrics]

        values: list[NumericValue] = []
        for produced, error in results:
            if error is not None:
                logger.warning("%s", error)
                if failures is not None:
                    failures.append(error)
                continue
            values.extend(produced)
        return values


def _run_one(metric: Metric, model: Model) -> tuple[list[NumericValue], MetricError | None]:
    try:
        return list(metric.compute(model)), None
    except Exception as exc:
        return [], MetricError(metric.name(), exc)


def default_metric_registry(long_task_ms: int | None = None) -> MetricRegistry:
    """A registry holding the built-in metrics."""
    from trace_diagnostics.metrics.hazard import HazardMetric

    registry = MetricRegistry()
    if long_task_ms is None:
        registry.register(HazardMetric())
    else:
        registry.register(HazardMetric(long_task_ms=long_task_ms))
    return registry

"""Hazard: risk that long idle tasks hurt responsiveness.

Each Idle expectation is scored on its own: the Idle before a Load is usually
empty while the one right after it is still busy, since Loads end at first
paint while much of the page is still loading.
"""

from __future__ import annotations

import math

from trace_diagnostics.config import FOLLOW_UP_LATENCY_MS, LONG_TASK_MS
from trace_diagnostics.metrics.responsiveness import (
    FAST_RESPONSE_DISTRIBUTION,
    ReferenceDistribution,
    satisfied_fraction
)
from trace_diagnostics.model import Model, Slice
from trace_diagnostics.statistics import NO_DATA, weighted_mean
from trace_diagnostics.user_model import ExpectationKind, UserExpectation
from trace_diagnostics.values import NumericValue, Unit, ValueList

HAZARD_DESCRIPTION = "Risk of impacting responsiveness"


def find_long_tasks(ue: UserExpectation, long_task_ms: float = LONG_TASK_MS) -> list[Slice]:
    # Misses tasks associated with another expectation: only unclaimed
    # events end up in Idle expectations.
    return [
        event
        for event in ue.associated_events
        if isinstance(event, Slice) and event.is_top_level and event.duration > long_task_ms
    ]


def compute_responsiveness_risk(
    duration_ms: float,
    distribution: ReferenceDistribution = FAST_RESPONSE_DISTRIBUTION
) -> float:
    """
    0 when a long task of ``duration_ms`` barely risks responsiveness, 1 when
    it is certain to.

    Models a scroll response that starts with the task and needs the standard
    16ms after it; the risk is the fraction of users unsatisfied with it.
    """
    return 1 - satisfied_fraction(distribution, duration_ms + FOLLOW_UP_LATENCY_MS)


def perceptual_blend(score: float) -> float:
    """Weighting for smaller-is-better scores; the worst scores dominate."""
    return math.exp(score)


class HazardMetric:
    """Long idle task hazard per Idle expectation plus an overall blend."""

    NAME = "hazard"

    def __init__(
        self,
        long_task_ms: float = LONG_TASK_MS,
        distribution: ReferenceDistribution = FAST_RESPONSE_DISTRIBUTION
    ):
        self.long_task_ms = long_task_ms
        self.distribution = distribution

    def name(self) -> str:
        return self.NAME

    def compute_long_idle_task_hazard(
        self,
        model: Model,
        ue: UserExpectation,
        hazard_scores: list[float],
        value_list: ValueList
    ) -> None:
        long_task_scores = []
        duration_values = ValueList()
        for long_task in find_long_tasks(ue, self.long_task_ms):
            long_task_scores.append(compute_responsiveness_risk(long_task.duration, self.distribution))
            duration_values.add_value(NumericValue(
                name="long idle task duration",
                unit=Unit.TIME_DURATION_IN_MS_SMALLER_IS_BETTER,
                value=long_task.duration,
                description="Duration of a long idle task",
                canonical_url=model.canonical_url
            ))

        hazard_score = weighted_mean(long_task_scores, perceptual_blend)
        if hazard_score is NO_DATA:
            hazard_score = 0
        hazard_scores.append(hazard_score)

        value_list.add_value(NumericValue(
            name="long idle tasks hazard",
            unit=Unit.NORMALIZED_PERCENTAGE_SMALLER_IS_BETTER,
            value=hazard_score,
            description=HAZARD_DESCRIPTION,
            canonical_url=model.canonical_url,
            grouping_keys={
                "userExpectationStableId": ue.stable_id,
                "userExpectationStageTitle": ue.stage_title,
                "userExpectationInitiatorTitle": ue.initiator_title
            },
            diagnostics={"values": list(duration_values)}
        ))

    def compute(self, model: Model) -> list[NumericValue]:
        hazard_scores: list[float] = []
        hazard_values = ValueList()
        for ue in model.user_expectations:
            if ue.kind is ExpectationKind.IDLE:
                self.compute_long_idle_task_hazard(model, ue, hazard_scores, hazard_values)

        overall_hazard = weighted_mean(hazard_scores, perceptual_blend)
        if overall_hazard is NO_DATA:
            overall_hazard = 0

        overall = NumericValue(
            name=self.NAME,
            unit=Unit.NORMALIZED_PERCENTAGE_SMALLER_IS_BETTER,
            value=overall_hazard,
            description=HAZARD_DESCRIPTION,
            canonical_url=model.canonical_url,
            diagnostics={"values": list(hazard_values)}
        )
        return [overall]

"""Classifies a built Model into User Expectation segments."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator

from trace_diagnostics.model import Model, Slice, TimedEvent

logger = logging.getLogger(__name__)

NAVIGATION_START = "navigationStart"
LOAD_END_MARKERS = ("firstContentfulPaint", "firstMeaningfulPaint", "firstPaint", "loadEventEnd")
INPUT_LATENCY_PREFIX = "InputLatency::"
FRAME_MARKERS = ("DrawFrame", "BeginFrame", "BeginMainThreadFrame")
ANIMATION_SLICE_NAME = "Animation"
ANIMATION_FRAME_GAP_MS = 50
ANIMATION_MIN_FRAMES = 3

INPUT_INITIATORS = {
    "MouseDown": "Click",
    "MouseUp": "Click",
    "Click": "Click",
    "GestureTap": "Tap",
    "GestureTapDown": "Tap",
    "GestureShowPress": "Tap",
    "GestureScrollBegin": "Scroll",
    "GestureScrollUpdate": "Scroll",
    "GestureScrollEnd": "Scroll",
    "MouseWheel": "Scroll",
    "GesturePinchBegin": "Pinch",
    "GesturePinchUpdate": "Pinch",
    "KeyDown": "KeyDown",
    "RawKeyDown": "KeyDown",
    "KeyUp": "KeyDown",
    "Char": "KeyDown",
    "TouchStart": "Touch",
    "TouchMove": "Touch",
    "TouchEnd": "Touch"
}


class ExpectationKind(str, Enum):
    RESPONSE = "Response"
    LOAD = "Load"
    ANIMATION = "Animation"
    IDLE = "Idle"


# First claim wins, in this order.
KIND_PRIORITY = (
    ExpectationKind.RESPONSE,
    ExpectationKind.LOAD,
    ExpectationKind.ANIMATION,
    ExpectationKind.IDLE
)


@dataclass(eq=False)
class UserExpectation:
    kind: ExpectationKind
    start: float
    end: float
    initiator_title: str = ""
    stable_id: str = ""
    associated_events: list = field(default_factory=list)

    @property
    def stage_title(self) -> str:
        return self.kind.value

    @property
    def duration(self) -> float:
        return self.end - self.start

    def contains(self, ts: float) -> bool:
        return self.start <= ts < self.end


Detector = Callable[[Model, list[UserExpectation]], list[UserExpectation]]


def _iter_marker_events(model: Model) -> Iterator[TimedEvent]:
    for thread in model.iter_threads():
        yield from thread.slices
        yield from thread.instant_events
    yield from model.iter_async_slices()


def detect_responses(model: Model, prior: list[UserExpectation]) -> list[UserExpectation]:
    """One Response per InputLatency span; overlapping spans merge."""
    spans = sorted(
        (
            event
            for event in _iter_marker_events(model)
            if event.name.startswith(INPUT_LATENCY_PREFIX) and event.duration > 0
        ),
        key=lambda event: event.start
    )
    responses: list[UserExpectation] = []
    for span in spans:
        input_type = span.name[len(INPUT_LATENCY_PREFIX):]
        initiator = INPUT_INITIATORS.get(input_type, input_type)
        if responses and span.start < responses[-1].end:
            responses[-1].end = max(responses[-1].end, span.end)
            continue
        responses.append(
            UserExpectation(ExpectationKind.RESPONSE, span.start, span.end, initiator)
        )
    return responses


def detect_loads(model: Model, prior: list[UserExpectation]) -> list[UserExpectation]:
    """From each navigationStart to the first paint/load marker after it."""
    markers = sorted(
        (
            event
            for event in _iter_marker_events(model)
            if event.name == NAVIGATION_START or event.name in LOAD_END_MARKERS
        ),
        key=lambda event: event.start
    )
    trace_end = model.max_ts if model.max_ts is not None else 0.0
    loads: list[UserExpectation] = []
    open_start: float | None = None
    for marker in markers:
        if marker.name == NAVIGATION_START:
            if open_start is not None and marker.start > open_start:
                loads.append(UserExpectation(ExpectationKind.LOAD, open_start, marker.start, "Successful"))
            open_start = marker.start
        elif open_start is not None and marker.start > open_start:
            loads.append(UserExpectation(ExpectationKind.LOAD, open_start, marker.start, "Successful"))
            open_start = None
    if open_start is not None and trace_end > open_start:
        loads.append(UserExpectation(ExpectationKind.LOAD, open_start, trace_end, "Successful"))
    return loads


def detect_animations(model: Model, prior: list[UserExpectation]) -> list[UserExpectation]:
    """Runs of closely spaced frames, plus explicit Animation spans."""
    animations: list[UserExpectation] = []
    frame_times = sorted({
        event.start
        for event in _iter_marker_events(model)
        if event.name in FRAME_MARKERS
    })
    run: list[float] = []
    for ts in frame_times + [None]:
        if ts is not None and (not run or ts - run[-1] <= ANIMATION_FRAME_GAP_MS):
            run.append(ts)
            continue
        if len(run) >= ANIMATION_MIN_FRAMES:
            animations.append(UserExpectation(ExpectationKind.ANIMATION, run[0], run[-1], "Frames"))
        run = [ts] if ts is not None else []

    for event in model.iter_async_slices():
        if event.name == ANIMATION_SLICE_NAME and event.duration > 0:
            animations.append(UserExpectation(ExpectationKind.ANIMATION, event.start, event.end, "CSS"))
    animations.sort(key=lambda ue: ue.start)
    return animations


def detect_idles(model: Model, prior: list[UserExpectation]) -> list[UserExpectation]:
    """Everything within the trace bounds not covered by another expectation."""
    if model.min_ts is None or model.max_ts is None:
        return []
    idles: list[UserExpectation] = []
    cursor = model.min_ts
    for ue in sorted(prior, key=lambda ue: ue.start):
        if ue.start > cursor:
            idles.append(UserExpectation(ExpectationKind.IDLE, cursor, ue.start))
        cursor = max(cursor, ue.end)
    if model.max_ts > cursor:
        idles.append(UserExpectation(ExpectationKind.IDLE, cursor, model.max_ts))
    return idles


DEFAULT_DETECTORS: dict[ExpectationKind, Detector] = {
    ExpectationKind.RESPONSE: detect_responses,
    ExpectationKind.LOAD: detect_loads,
    ExpectationKind.ANIMATION: detect_animations,
    ExpectationKind.IDLE: detect_idles
}


class UserExpectationClassifier:
    """
    Runs one detector per kind, then hands each top-level slice to the first
    expectation (in KIND_PRIORITY order) whose window contains its start.
    """

    def __init__(self, detectors: dict[ExpectationKind, Detector] | None = None):
        self.detectors = dict(DEFAULT_DETECTORS if detectors is None else detectors)

    def register_detector(self, kind: ExpectationKind, detector: Detector) -> None:
        self.detectors[kind] = detector

    def classify(self, model: Model) -> Model:
        by_kind: dict[ExpectationKind, list[UserExpectation]] = {}
        found: list[UserExpectation] = []
        for kind in KIND_PRIORITY:
            detector = self.detectors.get(kind)
            if detector is None:
                continue
            expectations = [ue for ue in detector(model, list(found)) if ue.end > ue.start]
            expectations.sort(key=lambda ue: ue.start)
            for index, ue in enumerate(expectations):
                ue.stable_id = f"{kind.value}.{index}"
            by_kind[kind] = expectations
            found.extend(expectations)

        assign_events(model.top_level_slices(), [
            ue for kind in KIND_PRIORITY for ue in by_kind.get(kind, [])
        ])

        priority = {kind: index for index, kind in enumerate(KIND_PRIORITY)}
        found.sort(key=lambda ue: (ue.start, priority[ue.kind]))
        model.user_expectations = found
        logger.debug("Classified %d user expectations", len(found))
        return model


def assign_events(events: list[Slice], expectations_by_priority: list[UserExpectation]) -> list[Slice]:
    """
    Associate each event with at most one expectation.

    Returns the events no expectation claimed; those stay invisible to
    metrics that only scan ``associated_events``.
    """
    unclaimed = []
    for event in events:
        for ue in expectations_by_priority:
            if ue.contains(event.start):
                ue.associated_events.append(event)
                break
        else:
            unclaimed.append(event)
    return unclaimed

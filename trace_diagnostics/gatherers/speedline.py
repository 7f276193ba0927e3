"""Speed index gatherer built on screenshot frames in the trace."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Any, Callable

from PIL import Image

from trace_diagnostics.builder import ObjectModelBuilder
from trace_diagnostics.errors import TraceDiagnosticsError
from trace_diagnostics.model import Model
from trace_diagnostics.types.screenshot import SCREENSHOT_TYPE, ScreenshotSnapshot

logger = logging.getLogger(__name__)


class SpeedlineError(TraceDiagnosticsError):
    """The trace has no usable screenshot frames."""


@dataclass
class Frame:
    ts: float
    image: bytes
    progress: float | None = None
    _histogram: list[int] | None = None

    def histogram(self) -> list[int]:
        """768 bins: 256 per RGB channel."""
        if self._histogram is None:
            with Image.open(io.BytesIO(self.image)) as img:
                self._histogram = img.convert("RGB").histogram()
        return self._histogram


ProgressFn = Callable[[list[Frame]], list[float]]


def extract_frames(model: Model) -> list[Frame]:
    frames: list[Frame] = []
    for instance in model.instances_of_type(SCREENSHOT_TYPE):
        for snapshot in instance.snapshots:
            if isinstance(snapshot, ScreenshotSnapshot):
                data = snapshot.image_bytes()
                if data:
                    frames.append(Frame(ts=snapshot.ts, image=data))
    for thread in model.iter_threads():
        for event in thread.instant_events:
            if event.name == SCREENSHOT_TYPE and isinstance(event.args.get("snapshot"), str):
                snapshot = ScreenshotSnapshot(instance_id=0, ts=event.start, args=event.args)
                data = snapshot.image_bytes()
                if data:
                    frames.append(Frame(ts=event.start, image=data))
    frames.sort(key=lambda frame: frame.ts)
    return frames


def _frame_progress(current: Frame, initial: Frame, target: Frame) -> float:
    total = 0
    match = 0
    for current_count, initial_count, target_count in zip(
        current.histogram(), initial.histogram(), target.histogram()
    ):
        current_diff = abs(current_count - initial_count)
        target_diff = abs(target_count - initial_count)
        match += min(current_diff, target_diff)
        total += target_diff
    if total == 0:
        return 1.0
    return (match * 100 // total) / 100


def histogram_visual_progress(frames: list[Frame]) -> list[float]:
    """Share of the colour-histogram change from first to last frame reached by each frame."""
    initial = frames[0]
    target = frames[-1]
    return [_frame_progress(frame, initial, target) for frame in frames]


def compute_speed_index(frames: list[Frame], start_ts: float) -> dict:
    """
    Integrate visual incompleteness over time.

    The page counts as blank (progress 0) from ``start_ts`` until the first
    frame.
    """
    speed_index = 0.0
    prev_ts = start_ts
    prev_progress = 0.0
    first = None
    complete = None
    for frame in frames:
        speed_index += max(frame.ts - prev_ts, 0.0) * (1 - prev_progress)
        prev_ts = frame.ts
        prev_progress = frame.progress
        if first is None and frame.progress > 0:
            first = frame.ts - start_ts
        if complete is None and frame.progress >= 1:
            complete = frame.ts - start_ts
    return {"speedIndex": speed_index, "first": first, "complete": complete}


def compute_speedline(trace_contents: Any, progress_fn: ProgressFn | None = None) -> dict:
    model = ObjectModelBuilder().ingest(trace_contents)
    frames = extract_frames(model)
    if not frames:
        raise SpeedlineError("No screenshot frames found in trace")

    progress = (progress_fn or histogram_visual_progress)(frames)
    if len(progress) != len(frames):
        raise SpeedlineError(f"Visual progress has {len(progress)} entries for {len(frames)} frames")
    for frame, value in zip(frames, progress):
        frame.progress = value

    start_ts = model.min_ts if model.min_ts is not None else frames[0].ts
    result = compute_speed_index(frames, start_ts)
    result["frames"] = [{"ts": frame.ts, "progress": frame.progress} for frame in frames]
    return result


class SpeedlineGatherer:
    """
    Stores a speed index artifact after a page-load pass.

    ``after_pass`` never raises: failures leave an artifact whose
    ``debugString`` explains what went wrong.
    """

    def __init__(self, progress_fn: ProgressFn | None = None):
        self.progress_fn = progress_fn
        self.artifact: dict | None = None

    async def after_pass(self, pass_context: Any, load_data: Any) -> None:
        try:
            if not isinstance(load_data, dict) or "traceContents" not in load_data:
                raise SpeedlineError("No trace contents were provided")
            self.artifact = compute_speedline(load_data["traceContents"], self.progress_fn)
        except Exception as exc:
            logger.warning("Speed index unavailable: %s", exc)
            message = str(exc) or exc.__class__.__name__
            self.artifact = {"debugString": f"Speed index unavailable: {message}"}

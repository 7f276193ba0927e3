import asyncio
import base64
import io
import json
import unittest
from pathlib import Path

from PIL import Image

from trace_diagnostics.gatherers.speedline import (
    Frame,
    SpeedlineGatherer,
    compute_speed_index,
    histogram_visual_progress
)

FIXTURE = Path(__file__).parent / "fixtures" / "traces" / "progressive-app.json"


def _png(black_rows, size=10):
    img = Image.new("RGB", (size, size), (255, 255, 255))
    for y in range(black_rows):
        for x in range(size):
            img.putpixel((x, y), (0, 0, 0))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def _screenshot(ts, data):
    return {
        "name": "Screenshot",
        "cat": "disabled-by-default-devtools.screenshot",
        "ph": "O",
        "ts": ts,
        "pid": 1,
        "tid": 1,
        "id": "0x1",
        "args": {"snapshot": base64.b64encode(data).decode("ascii")}
    }


def _run(gatherer, load_data):
    asyncio.run(gatherer.after_pass({}, load_data))
    return gatherer.artifact


class TestSpeedlineGatherer(unittest.TestCase):
    def test_returns_debug_string_on_faulty_trace(self):
        artifact = _run(SpeedlineGatherer(), {"traceContents": {"boo": "ya"}})
        self.assertTrue(artifact["debugString"])
        self.assertNotIn("speedIndex", artifact)

    def test_returns_debug_string_without_trace_contents(self):
        self.assertTrue(_run(SpeedlineGatherer(), None)["debugString"])
        self.assertTrue(_run(SpeedlineGatherer(), {})["debugString"])

    def test_returns_debug_string_without_screenshots(self):
        trace = [{"name": "Task", "ph": "X", "ts": 0, "dur": 10, "pid": 1, "tid": 1}]
        artifact = _run(SpeedlineGatherer(), {"traceContents": trace})
        self.assertIn("screenshot", artifact["debugString"].lower())

    def test_progress_function_errors_are_contained(self):
        def broken(frames):
            raise RuntimeError("decoder exploded")

        trace = [_screenshot(1000, b"frame")]
        artifact = _run(SpeedlineGatherer(progress_fn=broken), {"traceContents": trace})
        self.assertIn("decoder exploded", artifact["debugString"])

    def test_speed_index_from_injected_progress(self):
        trace = [
            {"name": "Task", "cat": "toplevel", "ph": "X", "ts": 0, "dur": 10, "pid": 1, "tid": 1},
            _screenshot(100000, b"a"),
            _screenshot(300000, b"b"),
            _screenshot(500000, b"c")
        ]
        gatherer = SpeedlineGatherer(progress_fn=lambda frames: [0.0, 0.5, 1.0])
        artifact = _run(gatherer, {"traceContents": trace})
        self.assertEqual(artifact["speedIndex"], 400.0)
        self.assertEqual(artifact["first"], 300.0)
        self.assertEqual(artifact["complete"], 500.0)
        self.assertEqual([f["progress"] for f in artifact["frames"]], [0.0, 0.5, 1.0])

    def test_histogram_progress(self):
        frames = [Frame(ts=0, image=_png(0)), Frame(ts=1, image=_png(5)), Frame(ts=2, image=_png(10))]
        self.assertEqual(histogram_visual_progress(frames), [0.0, 0.5, 1.0])

    def test_identical_frames_are_complete(self):
        frames = [Frame(ts=0, image=_png(3)), Frame(ts=1, image=_png(3))]
        self.assertEqual(histogram_visual_progress(frames), [1.0, 1.0])

    def test_speed_index_counts_blank_time_before_first_frame(self):
        frames = [Frame(ts=50, image=b"", progress=1.0)]
        self.assertEqual(compute_speed_index(frames, start_ts=0)["speedIndex"], 50)

    def test_speed_index_from_rendered_frames(self):
        trace = [
            {"name": "Task", "cat": "toplevel", "ph": "X", "ts": 0, "dur": 10, "pid": 1, "tid": 1},
            _screenshot(100000, _png(0)),
            _screenshot(300000, _png(5)),
            _screenshot(500000, _png(10))
        ]
        artifact = _run(SpeedlineGatherer(), {"traceContents": trace})
        self.assertEqual(round(artifact["speedIndex"]), 400)
        self.assertEqual(artifact["first"], 300.0)
        self.assertEqual(artifact["complete"], 500.0)

    @unittest.skipUnless(FIXTURE.exists(), "progressive-app trace fixture not available")
    def test_measures_pwa_rocks_example(self):
        """
        Regression against a real page load of the pwa.rocks progressive app.

        The trace is the ``progressive-app.json`` fixture from Lighthouse's
        ``lighthouse-core/test/fixtures/traces``; it is too large to ship here,
        so copy it to ``tests/fixtures/traces/`` to run this test.
        """
        with open(FIXTURE) as f:
            trace_contents = json.load(f)
        artifact = _run(SpeedlineGatherer(), {"traceContents": trace_contents})
        self.assertEqual(round(artifact["speedIndex"]), 831)


if __name__ == "__main__":
    unittest.main()

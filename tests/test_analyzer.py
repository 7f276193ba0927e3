import gzip
import json
import tempfile
import unittest
from pathlib import Path

from trace_diagnostics.analyzer import analyze_trace, load_trace
from trace_diagnostics.config import EngineConfig
from trace_diagnostics.metrics.registry import MetricRegistry


def _trace():
    return {
        "traceEvents": [
            {"name": "navigationStart", "cat": "blink.user_timing", "ph": "R", "ts": 0, "pid": 1, "tid": 1},
            {"name": "ParseHTML", "cat": "toplevel", "ph": "X", "ts": 1000, "dur": 20000, "pid": 1, "tid": 1},
            {"name": "firstContentfulPaint", "cat": "blink.user_timing", "ph": "R", "ts": 30000, "pid": 1, "tid": 1},
            {"name": "RunTask", "cat": "toplevel", "ph": "X", "ts": 60000, "dur": 150000, "pid": 1, "tid": 1},
            {"name": "RunTask", "cat": "toplevel", "ph": "X", "ts": 400000, "dur": 2000, "pid": 1, "tid": 1},
            {"name": "broken", "ph": "X"}
        ],
        "metadata": {"url": "https://example.com/"}
    }


class _BrokenMetric:
    def name(self):
        return "broken"

    def compute(self, model):
        raise ValueError("no good")


class TestAnalyzeTrace(unittest.TestCase):
    def test_malformed_layout_tree_does_not_abort_analysis(self):
        trace = [
            {"name": "Task", "cat": "toplevel", "ph": "X", "ts": 0, "dur": 1000, "pid": 1, "tid": 1},
            {"name": "LayoutTree", "cat": "devtools", "ph": "O", "ts": 500, "pid": 1, "tid": 1,
             "id": "0x1", "args": {"snapshot": {"layoutTree": "oops"}}}
        ]
        result = analyze_trace(trace, config=EngineConfig())
        self.assertNotIn("debugString", result)
        self.assertEqual([m["name"] for m in result["metrics"]], ["hazard"])
        self.assertIn("bad_snapshot=1", result["assumptions"]["import_warnings"])
    def test_end_to_end(self):
        result = analyze_trace(_trace(), config=EngineConfig())
        self.assertNotIn("debugString", result)
        self.assertEqual(result["canonical_url"], "https://example.com/")
        self.assertEqual([ue["kind"] for ue in result["user_expectations"]], ["Load", "Idle"])
        hazard = result["metrics"][0]
        self.assertEqual(hazard["name"], "hazard")
        self.assertGreater(hazard["value"], 0)
        self.assertIn("parse_error=1", result["assumptions"]["import_warnings"])

    def test_identical_traces_give_identical_output(self):
        first = analyze_trace(_trace(), config=EngineConfig())
        second = analyze_trace(_trace(), config=EngineConfig(parallel_metrics=True))
        self.assertEqual(first, second)

    def test_garbage_trace_reports_debug_string(self):
        result = analyze_trace({"boo": "ya"}, config=EngineConfig())
        self.assertTrue(result["debugString"])
        self.assertEqual(result["metrics"], [])

    def test_metric_failure_is_recorded(self):
        registry = MetricRegistry()
        registry.register(_BrokenMetric())
        result = analyze_trace(_trace(), config=EngineConfig(), metric_registry=registry)
        self.assertEqual(result["metrics"], [])
        self.assertIn("no good", result["assumptions"]["metric:broken"])


class TestConfigAndLoading(unittest.TestCase):
    def test_env_overrides(self):
        from unittest import mock

        env = {
            "TRACE_DIAGNOSTICS_LONG_TASK_MS": "75",
            "TRACE_DIAGNOSTICS_PARALLEL_METRICS": "yes",
            "TRACE_DIAGNOSTICS_MAX_WORKERS": "not-a-number"
        }
        with mock.patch.dict("os.environ", env):
            config = EngineConfig.from_env()
        self.assertEqual(config.long_task_ms, 75)
        self.assertTrue(config.parallel_metrics)
        self.assertIsNone(config.max_workers)

    def test_load_plain_and_gzipped(self):
        with tempfile.TemporaryDirectory() as tmp:
            plain = Path(tmp) / "trace.json"
            plain.write_text(json.dumps(_trace()))
            zipped = Path(tmp) / "trace.json.gz"
            with gzip.open(zipped, "wt", encoding="utf-8") as f:
                json.dump(_trace(), f)
            self.assertEqual(load_trace(plain), load_trace(zipped))


if __name__ == "__main__":
    unittest.main()

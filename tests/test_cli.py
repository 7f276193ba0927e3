import json
import tempfile
import unittest
from pathlib import Path

from typer.testing import CliRunner

from trace_diagnostics.cli import app


class TestCli(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.trace_path = Path(self.tmp.name) / "trace.json"
        self.trace_path.write_text(json.dumps([
            {"name": "RunTask", "cat": "toplevel", "ph": "X", "ts": 0, "dur": 120000, "pid": 1, "tid": 1},
            {"name": "RunTask", "cat": "toplevel", "ph": "X", "ts": 300000, "dur": 1000, "pid": 1, "tid": 1}
        ]))

    def test_analyze_writes_metrics(self):
        out = Path(self.tmp.name) / "metrics.json"
        result = self.runner.invoke(
            app,
            ["analyze", "--trace", str(self.trace_path), "--out", str(out), "--long-task-ms", "60"]
        )
        self.assertEqual(result.exit_code, 0, result.output)
        payload = json.loads(out.read_text())
        self.assertEqual(payload["metrics"][0]["name"], "hazard")
        self.assertGreater(payload["metrics"][0]["value"], 0)

    def test_missing_trace_file(self):
        result = self.runner.invoke(app, ["analyze", "--trace", str(Path(self.tmp.name) / "nope.json")])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("not found", result.output)

    def test_speed_index_without_screenshots_fails(self):
        result = self.runner.invoke(app, ["speed-index", "--trace", str(self.trace_path)])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Speed index unavailable", result.output)


if __name__ == "__main__":
    unittest.main()

import json
import logging
import unittest

from depgraph.core.logging import JSONFormatter, TextFormatter
from depgraph.core.tracing import TracingContext

class TestJSONFormatter(unittest.TestCase):
    def tearDown(self):
        TracingContext.clear()

    def test_includes_tracing_context(self):
        TracingContext.set(run_id="run-1234", org_name="SlimIO", repo_name="core", phase="manifest")
        record = logging.LogRecord(
            "depgraph", logging.WARNING, __file__, 10, "Failed %s", ("core",), None
        )

        payload = json.loads(JSONFormatter().format(record))

        self.assertEqual(payload["message"], "Failed core")
        self.assertEqual(payload["level"], "WARNING")
        self.assertEqual(payload["repo_name"], "core")
        self.assertEqual(payload["org_name"], "SlimIO")
        self.assertEqual(payload["phase"], "manifest")
        self.assertEqual(payload["package_name"], "")

    def test_log_prefix(self):
        TracingContext.clear()
        self.assertEqual(TracingContext.get_log_prefix(), "")
        TracingContext.set(run_id="abcdef123456", repo_name="core")
        self.assertEqual(TracingContext.get_log_prefix(), "[run=abcdef12 repo=core]")


class TestTextFormatter(unittest.TestCase):
    def tearDown(self):
        TracingContext.clear()

    def _record(self):
        return logging.LogRecord("depgraph", logging.INFO, __file__, 10, "Processing %s", ("core",), None)

    def test_prefixes_message_with_tracing_context(self):
        TracingContext.set(run_id="abcdef123456", repo_name="core")

        line = TextFormatter().format(self._record())

        self.assertTrue(line.endswith(" - INFO - [run=abcdef12 repo=core] Processing core"))

    def test_no_prefix_without_context(self):
        TracingContext.clear()

        line = TextFormatter().format(self._record())

        self.assertTrue(line.endswith(" - INFO - Processing core"))


if __name__ == "__main__":
    unittest.main()

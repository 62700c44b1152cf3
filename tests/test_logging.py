"""
Routing Core — Structured Logging Tests

Tests:
  - trace ids are unique per logger and OTel-sized
  - every entry carries trace_id, component, version, action
  - build lifecycle events are emitted at the documented levels
  - stub bindings are logged at WARNING
  - level filtering hides DEBUG detail at INFO
  - every line is valid JSON
"""

import io
import json
import logging
import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from resolver.logging import (
    JSONFormatter, StructuredLogger, configure_logging, generate_trace_id, get_logger,
)


def _capture_logs(level="DEBUG"):
    buf = io.StringIO()
    configure_logging(level=level, stream=buf)
    return buf


def _parse_log_lines(buf):
    buf.seek(0)
    return [json.loads(line) for line in buf.read().splitlines() if line.strip()]


class TestTraceIds(unittest.TestCase):

    def test_unique_trace_ids(self):
        ids = {generate_trace_id() for _ in range(100)}
        self.assertEqual(len(ids), 100)

    def test_otel_compatible_length(self):
        trace_id = generate_trace_id()
        self.assertEqual(len(trace_id), 32)
        int(trace_id, 16)

    def test_explicit_trace_id_kept(self):
        log = StructuredLogger(component="rulebase", trace_id="abc")
        self.assertEqual(log.trace_id, "abc")


class TestLogEntrySchema(unittest.TestCase):

    def setUp(self):
        self.buf = _capture_logs("DEBUG")

    def test_required_fields_present(self):
        log = StructuredLogger(component="rulebase", version="v001")
        log.on_build_start(["TriageService"], root="/srv/common")
        entries = _parse_log_lines(self.buf)
        self.assertEqual(len(entries), 1)
        entry = entries[0]
        for key in ("timestamp", "level", "logger", "message", "service.name",
                    "trace_id", "component", "version", "action"):
            self.assertIn(key, entry)
        self.assertEqual(entry["action"], "build_start")
        self.assertEqual(entry["services"], ["TriageService"])
        self.assertEqual(entry["trace_id"], log.trace_id)

    def test_all_services_reported_as_all(self):
        StructuredLogger(component="rulebase").on_build_start(None)
        self.assertEqual(_parse_log_lines(self.buf)[0]["services"], "ALL")


class TestBuildEvents(unittest.TestCase):

    def setUp(self):
        self.buf = _capture_logs("DEBUG")
        self.log = StructuredLogger(component="rulebase", version="v001")

    def test_stub_binding_is_warning(self):
        self.log.on_stub_binding("RadiologyService")
        entry = _parse_log_lines(self.buf)[0]
        self.assertEqual(entry["level"], "WARNING")
        self.assertEqual(entry["service"], "RadiologyService")

    def test_dispatch_fact_fields(self):
        self.log.on_dispatch_fact("TriageService", "processTriageAssessment", "224.0.1.3", "1025")
        entry = _parse_log_lines(self.buf)[0]
        self.assertEqual(entry["action"], "dispatch_fact")
        self.assertEqual(entry["port"], "1025")

    def test_build_end_rounds_elapsed(self):
        self.log.on_build_end("ok", 1.23456, ["RuleFolder.v001/Service.ruleml"])
        entry = _parse_log_lines(self.buf)[0]
        self.assertEqual(entry["elapsed_s"], 1.235)
        self.assertEqual(entry["outputs"], ["RuleFolder.v001/Service.ruleml"])

    def test_validation_issue_error_is_warning_level(self):
        self.log.on_validation_issue("error", "T_out_A", "x" * 1000)
        entry = _parse_log_lines(self.buf)[0]
        self.assertEqual(entry["level"], "WARNING")
        self.assertEqual(len(entry["message"]), 500)


class TestLogLevelFiltering(unittest.TestCase):

    def test_info_hides_debug_events(self):
        buf = _capture_logs("INFO")
        log = StructuredLogger(component="rulebase")
        log.on_source_loaded("Core.xml", "core", 10)
        log.on_query_empty("TriageService")
        log.on_build_start(None)
        actions = [e["action"] for e in _parse_log_lines(buf)]
        self.assertEqual(actions, ["build_start"])

    def test_warning_shows_only_warnings(self):
        buf = _capture_logs("WARNING")
        log = StructuredLogger(component="rulebase")
        log.on_build_start(None)
        log.on_stub_binding("X")
        actions = [e["action"] for e in _parse_log_lines(buf)]
        self.assertEqual(actions, ["stub_binding"])


class TestJsonFormatter(unittest.TestCase):

    def test_plain_module_logger_is_json(self):
        buf = _capture_logs("DEBUG")
        get_logger("routing").info("Service %s has %d incoming", "P_A", 2)
        entry = _parse_log_lines(buf)[0]
        self.assertEqual(entry["logger"], "routing_core.routing")
        self.assertEqual(entry["message"], "Service P_A has 2 incoming")

    def test_exception_fields(self):
        formatter = JSONFormatter()
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.getLogger("x").makeRecord(
                "x", logging.ERROR, "", 0, "failed", (), sys.exc_info())
        entry = json.loads(formatter.format(record))
        self.assertEqual(entry["exception.type"], "ValueError")
        self.assertEqual(entry["exception.message"], "boom")

    def test_reconfigure_does_not_duplicate(self):
        buf = _capture_logs("DEBUG")
        buf = _capture_logs("DEBUG")
        get_logger("x").info("once")
        self.assertEqual(len(_parse_log_lines(buf)), 1)


if __name__ == "__main__":
    unittest.main()

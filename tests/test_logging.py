"""
Tests for metrics, JSON logging and the event side channel.
"""

import json
import logging

import pytest

from monad_ambient.events import EventEmitter
from monad_ambient.logging_utils import (
    JSONFormatter, MetricsCollector, OperationMetric, add_json_file_handler, timed_operation,
)
from monad_ambient.utils import format_address, format_duration, format_mon, sanitize_error_message


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_summary_counts(self):
        metrics = MetricsCollector()
        with timed_operation(metrics, "mon_to_token") as metric:
            metric.success = True
        with timed_operation(metrics, "mon_to_token") as metric:
            metric.success = True
            metric.used_fallback = True
        with timed_operation(metrics, "token_to_mon") as metric:
            metric.error = "reverted"

        summary = metrics.get_summary()

        assert summary['total_operations'] == 3
        assert summary['operations']['mon_to_token']['fallback'] == 1
        assert summary['operations']['token_to_mon']['failure'] == 1
        assert summary['overall_success_rate'] == pytest.approx(66.67)

    def test_exception_marks_failure_and_propagates(self):
        metrics = MetricsCollector()
        with pytest.raises(RuntimeError):
            with timed_operation(metrics, "swap"):
                raise RuntimeError("boom")

        assert metrics.metrics[0].success is False
        assert metrics.metrics[0].error == "boom"

    def test_save_to_file(self, tmp_path):
        metrics = MetricsCollector()
        metric = OperationMetric("swap", start_time=0.0)
        metric.finalize(success=True)
        metrics.add_metric(metric)

        path = tmp_path / "out" / "metrics.json"
        metrics.save_to_file(str(path))

        data = json.loads(path.read_text())
        assert data['summary']['total_operations'] == 1
        assert data['metrics'][0]['operation'] == "swap"


class TestJSONLogging:

    def test_formatter_outputs_json(self):
        record = logging.LogRecord("monad_ambient", logging.INFO, __file__, 1, "hello", None, None)
        data = json.loads(JSONFormatter().format(record))
        assert data['message'] == "hello"
        assert data['level'] == "INFO"

    def test_file_handler_attached(self, tmp_path):
        handler = add_json_file_handler(str(tmp_path / "logs" / "engine.jsonl"), logger_name="monad_ambient.test")
        try:
            assert handler in logging.getLogger("monad_ambient.test").handlers
        finally:
            logging.getLogger("monad_ambient.test").removeHandler(handler)
            handler.close()


class TestEventEmitter:
    """Tests for the reporter wrapper."""

    def test_forwards_payload(self):
        received = []
        EventEmitter(lambda e, p: received.append((e, p)))("wallet_started", wallet="alice")
        assert received == [("wallet_started", {"wallet": "alice"})]

    def test_broken_reporter_does_not_propagate(self):
        def reporter(event, payload):
            raise ValueError("display closed")

        EventEmitter(reporter)("run_started")

    def test_no_reporter(self):
        EventEmitter()("run_started")


class TestFormatting:

    def test_format_helpers(self):
        assert format_mon(-0.5) == "-0.5000 MON"
        assert format_duration(3725) == "1h 2m"
        assert format_address("0x696381f39F17cAD67032f5f52A4924ce84e51BA3") == "0x696381...e51BA3"

    def test_sanitize_error_message(self):
        text = sanitize_error_message("failed at https://rpc.example/key123 with private_key=abc")
        assert "rpc.example" not in text
        assert "abc" not in text

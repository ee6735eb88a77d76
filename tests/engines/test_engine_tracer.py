"""
Tests for the engine invocation tracer.
"""

import pytest

from stock_engines.tracer import compute_input_fingerprint, traced_engine
from stock_engines.wac import calculate_wac
from stock_kernel.exceptions import ValidationError


def _traces(captured_logs):
    return [r for r in captured_logs() if r["message"] == "STOCK_ENGINE_TRACE"]


class TestFingerprint:

    def test_deterministic(self):
        args = {"a": 1, "b": "x"}

        assert compute_input_fingerprint(("a", "b"), args) == compute_input_fingerprint(
            ("a", "b"), dict(args)
        )
        assert len(compute_input_fingerprint(("a",), args)) == 16

    def test_unbound_field_recorded_as_null(self):
        assert compute_input_fingerprint(("missing",), {}) == compute_input_fingerprint(
            ("missing",), {"missing": None}
        )

    def test_call_style_does_not_change_hash(self, captured_logs):
        calculate_wac(100, "10", 50, "12")
        calculate_wac(
            current_quantity=100, current_wac="10", received_quantity=50, receipt_price="12"
        )

        traces = _traces(captured_logs)
        assert len(traces) == 2
        assert traces[0]["input_fingerprint"] == traces[1]["input_fingerprint"]

    def test_different_inputs_different_hash(self, captured_logs):
        calculate_wac(100, "10", 50, "12")
        calculate_wac(100, "10", 50, "13")

        first, second = _traces(captured_logs)
        assert first["input_fingerprint"] != second["input_fingerprint"]


class TestTraceRecord:

    def test_record_fields(self, captured_logs):
        calculate_wac(1, 1, 1, 1)

        (trace,) = _traces(captured_logs)
        assert trace["engine_name"] == "wac"
        assert trace["engine_version"] == "1.0"
        assert trace["function"] == "calculate_wac"
        assert trace["duration_ms"] >= 0

    def test_no_record_for_failed_invocation(self, captured_logs):
        with pytest.raises(ValidationError):
            calculate_wac(1, 1, 0, 1)

        assert _traces(captured_logs) == []

    def test_result_passed_through(self):
        @traced_engine("double", "0.1", fingerprint_fields=("x",))
        def double(x):
            return x * 2

        assert double(21) == 42
        assert double.__name__ == "double"

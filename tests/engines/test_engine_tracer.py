"""Tests for the @traced_engine decorator."""

from decimal import Decimal

from mizan_engines.matching import auto_match
from mizan_engines.tracer import compute_input_fingerprint, traced_engine


def _traces(captured_logs):
    return [r for r in captured_logs() if r["message"] == "MIZAN_ENGINE_TRACE"]


class TestTracedEngine:

    def test_emits_trace_and_returns_result(self, captured_logs):
        @traced_engine("doubler", "2.1", fingerprint_fields=("value",))
        def double(value):
            return value * 2

        assert double(value=Decimal("2.5")) == Decimal("5.0")

        trace = _traces(captured_logs)[0]
        assert trace["engine_name"] == "doubler"
        assert trace["engine_version"] == "2.1"
        assert len(trace["input_fingerprint"]) == 16
        assert trace["duration_ms"] >= 0

    def test_matcher_is_traced(self, captured_logs):
        auto_match([], [])

        assert [t["engine_name"] for t in _traces(captured_logs)] == ["reconciliation_matcher"]

    def test_fingerprint_deterministic(self):
        a = compute_input_fingerprint(("x", "y"), {"x": {"b": 1, "a": 2}, "y": [1, 2]})
        b = compute_input_fingerprint(("x", "y"), {"y": [1, 2], "x": {"a": 2, "b": 1}})
        c = compute_input_fingerprint(("x", "y"), {"x": {"a": 2}, "y": [1, 2]})

        assert a == b
        assert a != c

    def test_missing_field_recorded_as_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(("x",), {"x": None})

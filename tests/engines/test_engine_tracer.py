"""Tests for the @traced_engine decorator and FRESHSTOCK_ENGINE_TRACE records."""

import pytest

from freshstock_engines.expiry import classify_batches
from freshstock_engines.fifo import allocate
from freshstock_engines.tracer import traced_engine


def traces(captured_logs, engine_name):
    return [r for r in captured_logs() if r.get("engine_name") == engine_name]


class TestTraceRecord:

    def test_engine_call_emits_trace(self, captured_logs):
        allocate(batches=[], requested_quantity=3)

        [trace] = traces(captured_logs, "fifo")
        assert trace["message"] == "FRESHSTOCK_ENGINE_TRACE"
        assert trace["engine_version"] == "1.0"
        assert trace["duration_ms"] >= 0

    def test_selected_inputs_logged(self, captured_logs):
        allocate(batches=[], requested_quantity=3, cap=2)

        [trace] = traces(captured_logs, "fifo")
        assert trace["input_requested_quantity"] == 3
        assert trace["input_cap"] == 2

    def test_collections_logged_by_size(self, captured_logs, receive_batch, milk, jakarta, today):
        batches = [receive_batch(milk, jakarta, 5), receive_batch(milk, jakarta, 7)]

        classify_batches(batches=batches, as_of=today)

        [trace] = traces(captured_logs, "expiry_classification")
        assert trace["input_batches"] == 2
        assert trace["input_as_of"] == today.isoformat()

    def test_missing_kwarg_logged_as_none(self, captured_logs):
        allocate(batches=[], requested_quantity=1)

        [trace] = traces(captured_logs, "fifo")
        assert trace["input_cap"] is None


class TestDecorator:

    def test_preserves_result_and_name(self, captured_logs):

        @traced_engine("sample", "2.0", log_fields=("n",))
        def double(n):
            return n * 2

        assert double(n=4) == 8
        assert double.__name__ == "double"
        [trace] = traces(captured_logs, "sample")
        assert trace["function"].endswith("double")
        assert trace["input_n"] == 4

    def test_no_trace_when_engine_raises(self, captured_logs):

        @traced_engine("failing", "1.0")
        def boom():
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            boom()

        assert traces(captured_logs, "failing") == []

    def test_string_inputs_logged_by_value(self, captured_logs):

        @traced_engine("echo", "1.0", log_fields=("code",))
        def echo(code):
            return code

        echo(code="BATCH-20240101-001")

        [trace] = traces(captured_logs, "echo")
        assert trace["input_code"] == "BATCH-20240101-001"

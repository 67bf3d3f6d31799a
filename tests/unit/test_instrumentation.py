"""Unit tests for the instrumentation module.

Tests use unittest.mock for OTel interactions.  ``opentelemetry-api``
is a test dependency so we can import ``SpanKind`` / ``StatusCode``
directly for assertion accuracy.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.trace import SpanKind, StatusCode

import polychat.instrumentation as inst
from polychat.instrumentation import (
    completion_span,
    record_error,
    record_stream_stats,
    uninstrument,
)


@pytest.fixture(autouse=True)
def _reset_tracer():
    """Ensure _tracer is reset to None before and after each test."""
    inst._tracer = None
    yield
    inst._tracer = None


# -------------------------------------------------------------------
# instrument()
# -------------------------------------------------------------------


class TestInstrument:
    def test_raises_without_otel_installed(self):
        with patch(
            "importlib.util.find_spec", return_value=None
        ):
            with pytest.raises(
                ImportError, match="pip install"
            ):
                inst.instrument()

    def _mock_otel(self, mock_trace):
        """Patch find_spec + sys.modules for a mock OTel env."""
        return (
            patch(
                "importlib.util.find_spec",
                return_value=MagicMock(),
            ),
            patch.dict(
                "sys.modules",
                {
                    "opentelemetry": MagicMock(
                        trace=mock_trace
                    ),
                    "opentelemetry.trace": mock_trace,
                },
            ),
        )

    def test_sets_global_tracer(self):
        mock_tracer = MagicMock()
        mock_trace = MagicMock()
        mock_trace.get_tracer.return_value = mock_tracer
        mock_trace.NoOpTracer = type("NoOpTracer", (), {})

        p1, p2 = self._mock_otel(mock_trace)
        with p1, p2:
            inst.instrument()

        assert inst._tracer is mock_tracer
        mock_trace.get_tracer.assert_called_once_with(
            "polychat"
        )

    def test_logs_warning_for_noop_tracer(self, caplog):
        """When no TracerProvider is configured the returned tracer
        is a NoOpTracer, so instrument() should log a helpful message."""
        NoOpTracer = type("NoOpTracer", (), {})
        mock_trace = MagicMock()
        mock_trace.get_tracer.return_value = NoOpTracer()
        mock_trace.NoOpTracer = NoOpTracer

        p1, p2 = self._mock_otel(mock_trace)
        with p1, p2:
            with caplog.at_level(
                logging.INFO,
                logger="polychat.instrumentation",
            ):
                inst.instrument()

        assert any(
            "No TracerProvider configured" in r.message
            for r in caplog.records
        )


def test_uninstrument_clears_tracer():
    inst._tracer = MagicMock()
    uninstrument()
    assert inst._tracer is None


# -------------------------------------------------------------------
# completion_span
# -------------------------------------------------------------------


@pytest.mark.asyncio
async def test_span_yields_none_without_tracer():
    async with completion_span("ollama", "llama2") as s:
        assert s is None


@pytest.mark.asyncio
async def test_completion_span_creates_span():
    mock_span = MagicMock()
    mock_tracer = MagicMock()
    mock_tracer.start_as_current_span.return_value.__enter__ = (
        MagicMock(return_value=mock_span)
    )
    mock_tracer.start_as_current_span.return_value.__exit__ = (
        MagicMock(return_value=False)
    )
    inst._tracer = mock_tracer

    async with completion_span("mistral", "mistral-small") as s:
        assert s is mock_span

    mock_tracer.start_as_current_span.assert_called_once_with(
        "chat mistral-small",
        kind=SpanKind.CLIENT,
        attributes={
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": "mistral",
            "gen_ai.request.model": "mistral-small",
        },
    )


# -------------------------------------------------------------------
# record_stream_stats / record_error
# -------------------------------------------------------------------


def test_record_stream_stats_sets_attributes():
    span = MagicMock()
    record_stream_stats(span, fragments=3, characters=11)
    span.set_attribute.assert_any_call("polychat.stream.fragments", 3)
    span.set_attribute.assert_any_call("polychat.stream.characters", 11)


def test_record_stream_stats_noop_on_none_span():
    record_stream_stats(None, 1, 1)  # should not raise


def test_record_error_sets_status_and_records_exception():
    span = MagicMock()
    exc = RuntimeError("boom")
    record_error(span, exc)

    span.set_status.assert_called_once_with(
        StatusCode.ERROR, "boom"
    )
    span.record_exception.assert_called_once_with(exc)
    span.set_attribute.assert_called_once_with(
        "error.type", "RuntimeError"
    )


def test_record_error_noop_on_none_span():
    record_error(None, RuntimeError("boom"))  # no raise

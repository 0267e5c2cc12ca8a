"""Tests for trace context propagation and the log formatters."""

import json
import logging

import pytest

from conftest import out_port
from nodeflow.graph.model import OperationType
from nodeflow.observability import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)
from nodeflow.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    strip_ansi_codes,
)


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("nodeflow.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestTraceContext:
    def test_set_merges_and_clear_resets(self):
        set_trace_context(run_id="r1")
        set_trace_context(event_name="go")

        assert get_trace_context() == {"run_id": "r1", "event_name": "go"}

        clear_trace_context()
        assert get_trace_context() == {}

    def test_get_returns_a_copy(self):
        set_trace_context(run_id="r1")
        get_trace_context()["run_id"] = "changed"
        assert get_trace_context()["run_id"] == "r1"

    @pytest.mark.asyncio
    async def test_engine_sets_run_context(self, engine, builder):
        v = builder.add(OperationType.VALUE_PROVIDER, "v", value=1)

        result = await engine.resolve_output_for_node(
            v.id, out_port(v, "Value"), builder.nodes, builder.connections
        )

        context = get_trace_context()
        assert context["run_id"] == result.final_run_state.run_id
        assert context["target_node_id"] == "v"


class TestFormatters:
    def test_structured_formatter_includes_context(self):
        set_trace_context(run_id="r1", event_name="go")

        line = StructuredFormatter().format(_record("\033[32mhello\033[0m", node_id="n1", event="info"))
        data = json.loads(line)

        assert data["message"] == "hello"
        assert data["level"] == "info"
        assert data["logger"] == "nodeflow.test"
        assert data["run_id"] == "r1"
        assert data["event_name"] == "go"
        assert data["node_id"] == "n1"
        assert data["event"] == "info"

    def test_human_formatter_prefix(self):
        set_trace_context(run_id="abcdef1234567890", event_name="go")

        line = strip_ansi_codes(HumanReadableFormatter().format(_record("hello", node_id="n1")))

        assert line == "[INFO    ] [run:abcdef12 | event:go | node:n1] hello"

    def test_human_formatter_without_context(self):
        line = strip_ansi_codes(HumanReadableFormatter().format(_record("plain")))
        assert line == "[INFO    ] plain"


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def _restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_json_format(self):
        configure_logging(level="debug", format="json")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)

    def test_auto_format_follows_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        configure_logging(format="auto")
        assert isinstance(logging.getLogger().handlers[0].formatter, StructuredFormatter)

        monkeypatch.delenv("LOG_FORMAT")
        monkeypatch.setenv("ENV", "development")
        configure_logging(format="auto")
        assert isinstance(logging.getLogger().handlers[0].formatter, HumanReadableFormatter)

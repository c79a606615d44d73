from __future__ import annotations

import io
import json
import logging

import pytest

from agentloop.config.schema import LoggingConfig, Settings
from agentloop.contracts.tool_schema import ToolCall, ToolResult
from agentloop.governance.security import SecurityRedactor
from agentloop.logging.logger import JsonLineFormatter, LogContext, bootstrap_logger, with_context
from agentloop.models.providers.scripted_provider import text_response, tool_call_response
from agentloop.orchestrator.run_context import RunContext


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


def _record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("agentloop.test", logging.INFO, __file__, 1, msg, None, None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


# ------------------------------
# Formatter / bootstrap
# ------------------------------


def test_formatter_emits_context_fields() -> None:
    line = JsonLineFormatter().format(_record(run_id="r1", step_number=2, tool="echo", unrelated="x"))
    payload = json.loads(line)
    assert payload["msg"] == "hello"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "agentloop.test"
    assert payload["run_id"] == "r1"
    assert payload["step_number"] == 2
    assert payload["tool"] == "echo"
    assert "unrelated" not in payload
    assert "parent_run_id" not in payload


def test_bootstrap_writes_json_lines(restore_root_logging) -> None:
    stream = io.StringIO()
    log = bootstrap_logger(Settings(), stream=stream)
    assert log.name == "agentloop"
    with_context(logging.getLogger("agentloop.engine"), LogContext(run_id="r1", tags=["prod"])).info(
        "run.started", extra={"event": "run.started"}
    )
    payload = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert payload["run_id"] == "r1"
    assert payload["tags"] == ["prod"]
    assert payload["event"] == "run.started"


def test_bootstrap_respects_level_and_console(restore_root_logging) -> None:
    stream = io.StringIO()
    bootstrap_logger(Settings(logging=LoggingConfig(level="WARNING")), stream=stream)
    logging.getLogger("agentloop.engine").info("quiet")
    assert stream.getvalue() == ""

    bootstrap_logger(Settings(logging=LoggingConfig(console=False)))
    assert isinstance(logging.getLogger().handlers[0], logging.NullHandler)


def test_with_context_call_site_extra_wins() -> None:
    adapter = with_context(logging.getLogger("agentloop.test"), RunContext(run_id="r1", parent_run_id="p1"))
    _, kwargs = adapter.process("m", {"extra": {"run_id": "override", "tool": "t"}})
    assert kwargs["extra"]["run_id"] == "override"
    assert kwargs["extra"]["parent_run_id"] == "p1"
    assert kwargs["extra"]["tool"] == "t"


def test_engine_logs_run_lifecycle_with_run_id(make_agent, caplog) -> None:
    agent = make_agent([text_response("ok")])
    with caplog.at_level(logging.INFO, logger="agentloop"):
        agent.execute("hi", ctx=RunContext(run_id="logged-run"))
    events = [(r.msg, getattr(r, "run_id", None)) for r in caplog.records if r.name == "agentloop.engine"]
    assert ("run.started", "logged-run") in events
    assert ("step.finished", "logged-run") in events
    assert ("run.finished", "logged-run") in events


def test_tool_logs_redact_secret_arguments(make_agent, tool_factory, caplog) -> None:
    agent = make_agent(
        [tool_call_response("login", {"user": "ana", "password": "hunter2"}), text_response("in")],
        tools=[tool_factory("login", lambda a: "ok")],
        max_steps=2,
    )
    with caplog.at_level(logging.INFO, logger="agentloop"):
        agent.execute("log me in")
    tool_records = [r for r in caplog.records if r.name == "agentloop.tools"]
    assert tool_records
    args = tool_records[0].payload["args"]
    assert args == {"user": "ana", "password": "[REDACTED]"}


# ------------------------------
# Redaction
# ------------------------------


def test_redact_keys_and_patterns() -> None:
    r = SecurityRedactor()
    out = r.redact(
        {
            "api_key": "abc",
            "note": "use sk-abcdefghijklmnopqrstuvwxyz now",
            "nested": [{"Authorization": "Bearer x"}],
            "total_tokens": 12,
        }
    )
    assert out["api_key"] == "[REDACTED]"
    assert out["note"] == "use [REDACTED] now"
    assert out["nested"][0]["Authorization"] == "[REDACTED]"
    assert out["total_tokens"] == 12


def test_redact_pydantic_models() -> None:
    call = ToolCall(id="c1", tool_name="t", args={"token": "secret-value"})
    result = ToolResult(tool_call_id="c1", tool_name="t", result={"session_token": "abc"})
    assert SecurityRedactor().redact(call)["args"]["token"] == "[REDACTED]"
    assert SecurityRedactor().redact(result)["result"]["session_token"] == "[REDACTED]"


def test_redaction_can_be_disabled() -> None:
    settings = Settings(logging=LoggingConfig(redact=False))
    value = {"password": "plain"}
    assert SecurityRedactor.from_settings(settings).redact(value) is value


def test_custom_patterns_and_invalid_pattern() -> None:
    r = SecurityRedactor(patterns=[r"\d{4}-\d{4}"])
    assert r.redact_text("card 1234-5678") == "card [REDACTED]"
    with pytest.raises(ValueError):
        SecurityRedactor(patterns=["("])

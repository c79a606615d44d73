# ==============================
# Built-in Tools
# ==============================
"""
Small deterministic local tools wired into the gateway's default agent.

Handlers follow the `(args, options) -> value` contract and raise on bad input; the
dispatcher turns the exception into a ToolResult error.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from agentloop.contracts.tool_schema import Tool, ToolExecutionOptions


class EchoParams(BaseModel):
    message: str = Field(default="")


def _echo(args: Dict[str, Any], options: ToolExecutionOptions) -> Dict[str, Any]:
    p = EchoParams.model_validate(args or {})
    return {"echo": p.message, "step_number": options.step_number}


def echo_tool() -> Tool:
    return Tool(
        name="echo",
        description="Returns the provided message.",
        parameters={
            "type": "object",
            "properties": {"message": {"type": "string"}},
            "required": ["message"],
        },
        handler=_echo,
    )


def _utc_now(args: Dict[str, Any], options: ToolExecutionOptions) -> str:
    return datetime.now(timezone.utc).isoformat()


def clock_tool() -> Tool:
    return Tool(
        name="utc_now",
        description="Current UTC time in ISO-8601 format.",
        parameters={"type": "object", "properties": {}},
        handler=_utc_now,
    )


def builtin_tools() -> List[Tool]:
    return [echo_tool(), clock_tool()]

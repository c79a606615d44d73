# ==============================
# Testing Fixtures
# ==============================
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, List, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from agentloop.config.schema import Settings
from agentloop.contracts.tool_schema import Tool
from agentloop.models.providers.scripted_provider import ScriptedBackend
from agentloop.orchestrator.engine import AgentConfig, ToolLoopAgent
from agentloop.orchestrator.notifier import AgentCallbacks, LegacyCallbacks


class EventRecorder:
    """Collects (hook_name, payload) pairs from both callback surfaces, in firing order."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Any]] = []

    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def payloads(self, name: str) -> List[Any]:
        return [payload for n, payload in self.events if n == name]

    def _rec(self, name: str) -> Callable[..., None]:
        def _hook(*args: Any) -> None:
            self.events.append((name, args[0] if len(args) == 1 else args))

        return _hook

    def structured(self, prefix: str = "") -> AgentCallbacks:
        return AgentCallbacks(
            on_start=self._rec(prefix + "on_start"),
            on_step_start=self._rec(prefix + "on_step_start"),
            on_tool_call_start=self._rec(prefix + "on_tool_call_start"),
            on_tool_call_finish=self._rec(prefix + "on_tool_call_finish"),
            on_step_finish=self._rec(prefix + "on_step_finish"),
            on_finish=self._rec(prefix + "on_finish"),
        )

    def legacy(self) -> LegacyCallbacks:
        return LegacyCallbacks(
            on_step_start=self._rec("legacy.on_step_start"),
            on_step_finish=self._rec("legacy.on_step_finish"),
            on_tool_call=self._rec("legacy.on_tool_call"),
            on_tool_result=self._rec("legacy.on_tool_result"),
            on_finish=self._rec("legacy.on_finish"),
            on_chain_start=self._rec("legacy.on_chain_start"),
            on_chain_end=self._rec("legacy.on_chain_end"),
            on_chain_error=self._rec("legacy.on_chain_error"),
            on_agent_action=self._rec("legacy.on_agent_action"),
            on_agent_finish=self._rec("legacy.on_agent_finish"),
            on_tool_start=self._rec("legacy.on_tool_start"),
            on_tool_end=self._rec("legacy.on_tool_end"),
            on_tool_error=self._rec("legacy.on_tool_error"),
        )


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def settings() -> Settings:
    """Defaults only; no YAML, no env."""
    return Settings()


@pytest.fixture
def make_agent() -> Callable[..., ToolLoopAgent]:
    """Build a ToolLoopAgent around a ScriptedBackend: make_agent(script, tools=[...], **config)."""

    def _make(script: List[Any], *, tools: List[Tool] | None = None, **config: Any) -> ToolLoopAgent:
        backend = ScriptedBackend(script)
        return ToolLoopAgent(AgentConfig(backend=backend, tools=list(tools or []), **config))

    return _make


def make_tool(name: str, fn: Callable[..., Any] | None = None, **kwargs: Any) -> Tool:
    """Local tool whose handler returns fn(args) (or echoes args)."""

    def _handler(args: dict, options: Any) -> Any:
        return fn(args) if fn is not None else dict(args)

    return Tool(name=name, description=f"test tool {name}", handler=_handler, **kwargs)


@pytest.fixture
def tool_factory() -> Callable[..., Tool]:
    return make_tool

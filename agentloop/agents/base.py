# ==============================
# Base Agent Contract
# ==============================
"""
Base agent contract for agentloop.

Anything that can be registered as a subagent implements this interface. ToolLoopAgent
is the built-in implementation; callers may provide their own.

Rules:
- Agents do NOT read env vars. Configuration is injected by the caller.
- Agents own their own backend, tools and callbacks; a registry only holds them by name.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional, Sequence

from agentloop.contracts.agent_schema import AgentResult
from agentloop.contracts.message_schema import Message
from agentloop.orchestrator.run_context import RunContext

if TYPE_CHECKING:
    from agentloop.orchestrator.notifier import AgentCallbacks


class Agent(ABC):
    @abstractmethod
    def execute(
        self,
        prompt: str,
        *,
        ctx: Optional[RunContext] = None,
        callbacks: Optional["AgentCallbacks"] = None,
    ) -> AgentResult:
        """Run from a single user prompt."""
        raise NotImplementedError

    @abstractmethod
    def execute_with_messages(
        self,
        messages: Sequence[Message],
        *,
        ctx: Optional[RunContext] = None,
        callbacks: Optional["AgentCallbacks"] = None,
    ) -> AgentResult:
        """Run from a full transcript (the agent's own system prompt is still applied)."""
        raise NotImplementedError

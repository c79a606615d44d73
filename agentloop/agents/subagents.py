# ==============================
# Subagent Registry
# ==============================
"""
Named subagents an engine can delegate to.

Design:
- The registry references independently owned Agent instances by name; it never owns
  or builds them, so agents can delegate to each other without cyclic ownership.
- Delegation is one-shot: each call re-enters the subagent from its own system prompt
  and the supplied prompt/transcript. No state is shared with the delegating run.
- Run identity is NOT forwarded. Callers wanting lineage pass `ctx.child()`.
- Every delegation can be recorded as a SubagentDelegation (errors included).
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence

from agentloop.agents.base import Agent
from agentloop.contracts.agent_schema import AgentResult, SubagentDelegation
from agentloop.contracts.errors import DuplicateRegistrationError, SubagentNotFoundError
from agentloop.contracts.message_schema import Message
from agentloop.contracts.tool_schema import Tool, ToolExecutionOptions
from agentloop.orchestrator.run_context import RunContext

DelegationSink = Callable[[SubagentDelegation], None]


class DelegationTracker:
    """Append-only log of delegations made during one or more runs."""

    def __init__(self) -> None:
        self._delegations: List[SubagentDelegation] = []

    def track(self, delegation: SubagentDelegation) -> None:
        self._delegations.append(delegation)

    def delegations(self) -> List[SubagentDelegation]:
        return list(self._delegations)

    def count(self) -> int:
        return len(self._delegations)

    def clear(self) -> None:
        self._delegations = []

    def __len__(self) -> int:
        return len(self._delegations)


class SubagentRegistry:
    def __init__(self) -> None:
        self._agents: Dict[str, Agent] = {}

    def register(self, name: str, agent: Optional[Agent]) -> None:
        if not name:
            raise ValueError("subagent name cannot be empty")
        if agent is None:
            raise ValueError("subagent cannot be None")
        if name in self._agents:
            raise DuplicateRegistrationError(f"subagent '{name}' already registered")
        self._agents[name] = agent

    def unregister(self, name: str) -> None:
        self._agents.pop(name, None)

    def get(self, name: str) -> Optional[Agent]:
        return self._agents.get(name)

    def has(self, name: str) -> bool:
        return name in self._agents

    def list(self) -> List[str]:
        return list(self._agents)

    def names(self) -> List[str]:
        return list(self._agents)

    def clear(self) -> None:
        self._agents.clear()

    def count(self) -> int:
        return len(self._agents)

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    # ------------------------------
    # Delegation
    # ------------------------------

    def execute(self, name: str, prompt: str, *, ctx: Optional[RunContext] = None) -> AgentResult:
        return self.delegate(name, prompt=prompt, ctx=ctx)

    def execute_with_messages(
        self, name: str, messages: Sequence[Message], *, ctx: Optional[RunContext] = None
    ) -> AgentResult:
        return self.delegate(name, messages=messages, ctx=ctx)

    def delegate(
        self,
        name: str,
        *,
        prompt: str = "",
        messages: Optional[Sequence[Message]] = None,
        ctx: Optional[RunContext] = None,
        record: Optional[DelegationSink] = None,
    ) -> AgentResult:
        """
        Run the named subagent once. When `record` is given, a SubagentDelegation is
        passed to it before returning or re-raising.
        """
        delegation = SubagentDelegation(subagent_name=name, prompt=prompt, messages=list(messages or []))
        agent = self._agents.get(name)
        try:
            if agent is None:
                raise SubagentNotFoundError(f"subagent '{name}' not found")
            if messages is not None:
                result = agent.execute_with_messages(list(messages), ctx=ctx)
            else:
                result = agent.execute(prompt, ctx=ctx)
        except Exception as exc:
            if record is not None:
                record(delegation.model_copy(update={"error": str(exc)}))
            raise
        if record is not None:
            record(delegation.model_copy(update={"result": result}))
        return result

    def as_tool(self, name: str, description: str = "") -> Tool:
        """
        Local tool `{"prompt": str}` delegating to the named subagent. Each invocation
        appends a SubagentDelegation to the calling run's delegation log.
        """
        if name not in self._agents:
            raise SubagentNotFoundError(f"subagent '{name}' not found")

        def _handler(args: Dict[str, Any], options: ToolExecutionOptions) -> str:
            # fresh identity, shared cancellation
            sub_ctx = RunContext(token=options.run.token)
            result = self.delegate(
                name,
                prompt=str(args.get("prompt", "")),
                ctx=sub_ctx,
                record=options.delegations.append,
            )
            return result.text

        return Tool(
            name=name,
            description=description or f"Delegate a task to the '{name}' subagent.",
            parameters={
                "type": "object",
                "properties": {"prompt": {"type": "string", "description": "Task for the subagent."}},
                "required": ["prompt"],
            },
            handler=_handler,
        )

# ==============================
# Agent Loop Engine
# ==============================
"""
ToolLoopAgent: drives a multi-step, tool-augmented exchange with a generation backend.

Loop (per step N = 1..ceiling):
  cancellation check -> step-start -> StepExecutor (one backend call)
  -> append assistant message -> agent-action notifications -> ToolDispatcher
  -> append one tool message per result (deferred as pending) -> record step -> step-finish
  -> continuation / stop conditions / safety ceiling

Rules:
- Configuration is copy-on-write: runtime mutators swap in a new AgentConfig, so an
  in-flight run keeps the snapshot it started with.
- Tool problems never abort a run; backend failures and the total deadline do.
- Every notification goes through one EventBus per execution call.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, InstanceOf

from agentloop.agents.base import Agent
from agentloop.agents.skills import Skill, SkillRegistry
from agentloop.agents.subagents import DelegationTracker, SubagentRegistry
from agentloop.config.schema import Settings
from agentloop.contracts.agent_schema import AgentAction, AgentFinish, AgentResult, SubagentDelegation
from agentloop.contracts.errors import ConfigurationError
from agentloop.contracts.event_schema import (
    AgentActionEvent,
    AgentFinishEvent,
    RunErrorEvent,
    RunFinishEvent,
    RunStartEvent,
    StepFinishEvent,
    StepStartEvent,
)
from agentloop.contracts.message_schema import Message
from agentloop.contracts.step_schema import FinishReason, StepResult, StepWarning, Usage
from agentloop.contracts.tool_schema import Tool, ToolResult
from agentloop.governance.approval import ApprovalPolicy, Approver
from agentloop.governance.security import SecurityRedactor
from agentloop.logging.logger import with_context
from agentloop.models.backend import GenerationBackend
from agentloop.models.router import build_backend
from agentloop.orchestrator.notifier import AgentCallbacks, EventBus, LegacyCallbacks, build_event_bus
from agentloop.orchestrator.run_context import RunContext
from agentloop.orchestrator.step_executor import PrepareCallHook, StepExecutor
from agentloop.orchestrator.stop_conditions import (
    StopCondition,
    StopConditionLike,
    StopConditionState,
    evaluate_stop_conditions,
    resolve_stop_conditions,
)
from agentloop.orchestrator.timeouts import TimeoutConfig, timeout_scope
from agentloop.orchestrator.tool_dispatcher import ToolDispatcher
from agentloop.tools.catalog import DEFAULT_DEFERRED_TOOLS, ToolCatalog

logger = logging.getLogger("agentloop.engine")

MAX_STEPS_WARNING = "max_steps_reached"


# ==============================
# Config
# ==============================
class AgentConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    id: str = Field(default="agent", description="Agent identifier (logs only).")
    version: str = Field(default="1")
    backend: Optional[InstanceOf[GenerationBackend]] = Field(default=None, description="Required at execution time.")
    system: str = Field(default="", description="System prompt.")
    tools: List[Tool] = Field(default_factory=list)
    max_steps: Optional[int] = Field(default=None, description="Step budget when stop_when is empty.")
    stop_when: List[Any] = Field(default_factory=list, description="Stop conditions; explicit ones win over max_steps.")
    temperature: Optional[float] = Field(default=None)
    max_tokens: Optional[int] = Field(default=None)
    timeout: TimeoutConfig = Field(default_factory=TimeoutConfig)
    prepare_call: Optional[Callable[..., Any]] = Field(default=None, description="Per-step call preparation hook.")
    experimental_context: Any = Field(default=None, description="Opaque value forwarded to run-scoped events.")
    callbacks: Optional[InstanceOf[AgentCallbacks]] = Field(default=None)
    legacy_callbacks: Optional[InstanceOf[LegacyCallbacks]] = Field(default=None)
    approval: Optional[InstanceOf[ApprovalPolicy]] = Field(default=None)
    deferred_tools: List[str] = Field(default_factory=lambda: list(DEFAULT_DEFERRED_TOOLS))
    streaming: bool = Field(default=False)
    skill_instructions: bool = Field(default=False, description="Append skill instructions to the system prompt.")
    redactor: Optional[InstanceOf[SecurityRedactor]] = Field(default=None)


class _Plan:
    """Immutable snapshot taken by each execution call."""

    __slots__ = ("config", "conditions", "ceiling")

    def __init__(self, config: AgentConfig) -> None:
        self.config = config
        conditions, ceiling = resolve_stop_conditions(config.stop_when, config.max_steps)
        self.conditions: Tuple[StopCondition, ...] = tuple(conditions)
        self.ceiling = ceiling


# ==============================
# Engine
# ==============================
class ToolLoopAgent(Agent):
    def __init__(
        self,
        config: AgentConfig,
        *,
        skills: Optional[SkillRegistry] = None,
        subagents: Optional[SubagentRegistry] = None,
    ) -> None:
        self._plan = _Plan(config)
        self.skills = skills if skills is not None else SkillRegistry()
        self.subagents = subagents if subagents is not None else SubagentRegistry()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        backend: Optional[GenerationBackend] = None,
        tools: Iterable[Tool] = (),
        stop_when: Sequence[StopConditionLike] = (),
        approver: Optional[Approver] = None,
        callbacks: Optional[AgentCallbacks] = None,
        legacy_callbacks: Optional[LegacyCallbacks] = None,
        prepare_call: Optional[PrepareCallHook] = None,
        experimental_context: Any = None,
        skills: Optional[SkillRegistry] = None,
        subagents: Optional[SubagentRegistry] = None,
    ) -> "ToolLoopAgent":
        config = AgentConfig(
            backend=backend if backend is not None else build_backend(settings),
            system=settings.agent.system,
            tools=list(tools),
            max_steps=settings.agent.max_steps,
            stop_when=list(stop_when),
            temperature=settings.agent.temperature,
            max_tokens=settings.agent.max_tokens,
            timeout=TimeoutConfig(**settings.timeouts.model_dump()),
            prepare_call=prepare_call,
            experimental_context=experimental_context,
            callbacks=callbacks,
            legacy_callbacks=legacy_callbacks,
            approval=ApprovalPolicy.from_settings(settings, approver=approver),
            deferred_tools=list(settings.tools.deferred_tools),
            streaming=settings.agent.streaming,
            redactor=SecurityRedactor.from_settings(settings),
        )
        return cls(config, skills=skills, subagents=subagents)

    @property
    def config(self) -> AgentConfig:
        return self._plan.config

    @property
    def stop_conditions(self) -> List[StopCondition]:
        return list(self._plan.conditions)

    # ------------------------------
    # Runtime configuration (copy-on-write)
    # ------------------------------

    def _update(self, **changes: Any) -> None:
        self._plan = _Plan(self._plan.config.model_copy(update=changes))

    def set_system(self, system: str) -> None:
        self._update(system=system)

    def add_tool(self, tool: Tool) -> None:
        """Add a tool, replacing any existing tool with the same name."""
        tools = [t for t in self.config.tools if t.name != tool.name]
        tools.append(tool)
        self._update(tools=tools)

    def remove_tool(self, name: str) -> None:
        self._update(tools=[t for t in self.config.tools if t.name != name])

    def set_max_steps(self, max_steps: int) -> None:
        if max_steps < 1:
            raise ValueError("max_steps must be >= 1")
        self._update(max_steps=max_steps)

    def set_stop_conditions(self, conditions: Sequence[StopConditionLike]) -> None:
        self._update(stop_when=list(conditions))

    # ------------------------------
    # Skills
    # ------------------------------

    def add_skill(self, skill: Skill) -> None:
        self.skills.register(skill)

    def remove_skill(self, name: str) -> None:
        self.skills.unregister(name)

    def get_skill(self, name: str) -> Optional[Skill]:
        return self.skills.get(name)

    def list_skills(self) -> List[Skill]:
        return self.skills.list()

    def execute_skill(self, name: str, text: str, *, ctx: Optional[RunContext] = None) -> str:
        return self.skills.execute(name, text, ctx=ctx)

    # ------------------------------
    # Subagents
    # ------------------------------

    def add_subagent(self, name: str, agent: Agent) -> None:
        self.subagents.register(name, agent)

    def remove_subagent(self, name: str) -> None:
        self.subagents.unregister(name)

    def get_subagent(self, name: str) -> Optional[Agent]:
        return self.subagents.get(name)

    def list_subagents(self) -> List[str]:
        return self.subagents.list()

    def delegate_to_subagent(
        self,
        name: str,
        prompt: str,
        *,
        ctx: Optional[RunContext] = None,
        tracker: Optional[DelegationTracker] = None,
    ) -> AgentResult:
        return self.subagents.delegate(name, prompt=prompt, ctx=ctx, record=tracker.track if tracker else None)

    def delegate_to_subagent_with_messages(
        self,
        name: str,
        messages: Sequence[Message],
        *,
        ctx: Optional[RunContext] = None,
        tracker: Optional[DelegationTracker] = None,
    ) -> AgentResult:
        return self.subagents.delegate(name, messages=messages, ctx=ctx, record=tracker.track if tracker else None)

    # ------------------------------
    # Execution
    # ------------------------------

    def execute(
        self,
        prompt: str,
        *,
        ctx: Optional[RunContext] = None,
        callbacks: Optional[AgentCallbacks] = None,
    ) -> AgentResult:
        return self.execute_with_messages([Message.user(prompt)], ctx=ctx, callbacks=callbacks)

    def execute_with_messages(
        self,
        messages: Sequence[Message],
        *,
        ctx: Optional[RunContext] = None,
        callbacks: Optional[AgentCallbacks] = None,
    ) -> AgentResult:
        plan = self._plan
        config = plan.config
        if config.backend is None:
            raise ConfigurationError("a generation backend is required")

        ctx = (ctx or RunContext()).ensure_run_id()
        bus = build_event_bus(
            legacy=config.legacy_callbacks,
            engine_callbacks=config.callbacks,
            call_callbacks=callbacks,
        )
        return _Run(self, plan, ctx, bus).execute(list(messages))

    def system_prompt(self, config: Optional[AgentConfig] = None) -> str:
        config = config or self.config
        if not config.skill_instructions:
            return config.system
        extra = self.skills.instructions_prompt()
        if not extra:
            return config.system
        return f"{config.system}\n\n{extra}" if config.system else extra


# ==============================
# One execution
# ==============================
class _Run:
    def __init__(self, agent: ToolLoopAgent, plan: _Plan, ctx: RunContext, bus: EventBus) -> None:
        self.plan = plan
        self.config = plan.config
        self.ctx = ctx
        self.bus = bus
        self.run_id = ctx.run_id or ""
        self.system = agent.system_prompt(plan.config)
        self.catalog = ToolCatalog(self.config.tools, deferred_names=self.config.deferred_tools)
        self.backend: GenerationBackend = self.config.backend  # type: ignore[assignment]
        self.log = with_context(logger, ctx)

        self.steps: List[StepResult] = []
        self.tool_results: List[ToolResult] = []
        self.delegations: List[SubagentDelegation] = []
        self.warnings: List[StepWarning] = []
        self.usage = Usage()
        self.step_number = 0

    def execute(self, messages: List[Message]) -> AgentResult:
        config = self.config
        self.bus.publish(
            RunStartEvent(
                run_id=self.run_id,
                parent_run_id=self.ctx.parent_run_id,
                tags=list(self.ctx.tags),
                provider=self.backend.provider,
                model_id=self.backend.model_id,
                system=self.system,
                prompt=messages[0].text() if messages else "",
                messages=list(messages),
                tools=self.catalog.specs(),
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                experimental_context=config.experimental_context,
            )
        )
        self.log.info(
            "run.started",
            extra={"event": "run.started", "payload": {"agent": config.id, "tools": self.catalog.names()}},
        )

        try:
            with timeout_scope(self.ctx.token, config.timeout.total_seconds, "total") as run_token:
                result = self._loop(messages, self.ctx.with_token(run_token))
        except Exception as exc:
            self.log.error(
                "run.failed",
                exc_info=True,
                extra={"event": "run.failed", "step_number": self.step_number or None},
            )
            self.bus.publish(RunErrorEvent(run_id=self.run_id, error=exc, step_number=self.step_number or None))
            raise

        self.log.info(
            "run.finished",
            extra={
                "event": "run.finished",
                "payload": {
                    "steps": len(result.steps),
                    "finish_reason": result.finish_reason.value,
                    "stop_reason": result.stop_reason,
                },
            },
        )
        self.bus.publish(
            RunFinishEvent(run_id=self.run_id, result=result, experimental_context=config.experimental_context)
        )
        return result

    def _loop(self, messages: List[Message], run_ctx: RunContext) -> AgentResult:
        config = self.config
        transcript: List[Message] = list(messages)
        executor = StepExecutor(
            backend=self.backend,
            timeout=config.timeout,
            prepare_call=config.prepare_call,
            streaming=config.streaming,
        )
        dispatcher = ToolDispatcher(
            catalog=self.catalog,
            bus=self.bus,
            approval=config.approval,
            redactor=config.redactor,
            provider=self.backend.provider,
            model_id=self.backend.model_id,
            experimental_context=config.experimental_context,
        )
        custom_data: Any = None
        text = ""
        finish_reason = FinishReason.OTHER
        stop_reason = ""

        for step_number in range(1, self.plan.ceiling + 1):
            self.step_number = step_number
            run_ctx.token.raise_if_cancelled("total")
            self.bus.publish(
                StepStartEvent(
                    run_id=self.run_id,
                    step_number=step_number,
                    provider=self.backend.provider,
                    model_id=self.backend.model_id,
                    system=self.system,
                    messages=list(transcript),
                    tools=self.catalog.specs(),
                    previous_steps=list(self.steps),
                    experimental_context=config.experimental_context,
                )
            )

            outcome = executor.run(
                step_number=step_number,
                ctx=run_ctx,
                system=self.system,
                messages=transcript,
                tools=list(self.catalog),
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                accumulated_usage=self.usage,
                custom_data=custom_data,
            )
            custom_data = outcome.custom_data
            step = outcome.step
            transcript.append(outcome.assistant_message)

            results: List[ToolResult] = []
            if step.tool_calls:
                for call in step.tool_calls:
                    action = AgentAction(
                        tool_call=call,
                        step_number=step_number,
                        reasoning=step.text,
                        run_id=run_ctx.run_id,
                        parent_run_id=run_ctx.parent_run_id,
                        tags=list(run_ctx.tags),
                    )
                    self.bus.publish(AgentActionEvent(run_id=self.run_id, action=action))
                results = dispatcher.dispatch(
                    step.tool_calls,
                    step_number=step_number,
                    ctx=run_ctx,
                    messages=transcript,
                    delegations=self.delegations,
                )
                # deferred results go in as null placeholders under the same call id
                transcript.extend(Message.tool_result(res) for res in results)
                step = step.model_copy(update={"tool_results": results})

            self.steps.append(step)
            self.tool_results.extend(results)
            self.usage = self.usage.add(step.usage)
            self.warnings.extend(step.warnings)
            self.bus.publish(
                StepFinishEvent(
                    run_id=self.run_id,
                    step=step,
                    provider=self.backend.provider,
                    model_id=self.backend.model_id,
                    experimental_context=config.experimental_context,
                )
            )
            self.log.info(
                "step.finished",
                extra={
                    "event": "step.finished",
                    "step_number": step_number,
                    "payload": {
                        "finish_reason": step.finish_reason.value,
                        "tool_calls": [c.tool_name for c in step.tool_calls],
                        "continuable": outcome.continuable,
                    },
                },
            )

            text = step.text
            metadata = {"total_steps": step_number, "usage": self.usage.model_copy()}

            if not outcome.continuable:
                finish_reason = step.finish_reason
                self._agent_finish(run_ctx, text, step_number, finish_reason, metadata)
                break

            state = StopConditionState.snapshot(self.steps, transcript, self.usage)
            reason, cond = evaluate_stop_conditions(self.plan.conditions, state)
            if reason:
                stop_reason = reason
                finish_reason = step.finish_reason
                if cond is not None and cond.budget:
                    finish_reason = FinishReason.LENGTH
                    self._max_steps_warning(step_number)
                    metadata["max_steps_hit"] = True
                metadata["stop_reason"] = reason
                self._agent_finish(run_ctx, text, step_number, finish_reason, metadata)
                break

            if step_number == self.plan.ceiling:
                finish_reason = FinishReason.LENGTH
                self._max_steps_warning(self.plan.ceiling)
                metadata["max_steps_hit"] = True
                self._agent_finish(run_ctx, text, step_number, finish_reason, metadata)
                break

        return AgentResult(
            run_id=self.run_id,
            text=text,
            steps=self.steps,
            tool_results=self.tool_results,
            delegations=self.delegations,
            finish_reason=finish_reason,
            stop_reason=stop_reason,
            usage=self.usage,
            warnings=self.warnings,
        )

    def _max_steps_warning(self, n: int) -> None:
        self.warnings.append(StepWarning(type=MAX_STEPS_WARNING, message=f"Agent reached maximum steps ({n})"))

    def _agent_finish(
        self, run_ctx: RunContext, text: str, step_number: int, finish_reason: FinishReason, metadata: dict
    ) -> None:
        finish = AgentFinish(
            output=text,
            step_number=step_number,
            finish_reason=finish_reason,
            metadata=metadata,
            run_id=run_ctx.run_id,
            parent_run_id=run_ctx.parent_run_id,
            tags=list(run_ctx.tags),
        )
        self.bus.publish(AgentFinishEvent(run_id=self.run_id, finish=finish))

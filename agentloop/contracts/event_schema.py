# ==============================
# Event Contracts
# ==============================
"""
Typed events published on the engine's internal event bus.

Both callback surfaces (structured AgentCallbacks and the older LegacyCallbacks hooks)
subscribe to these events; the loop publishes each notification exactly once.

Nesting per run:
  RunStartEvent
    StepStartEvent
      AgentActionEvent / ToolCallRequestedEvent
      ToolCallStartEvent
      ToolCallFinishEvent
    StepFinishEvent
  AgentFinishEvent
  RunFinishEvent        (or RunErrorEvent)
"""

# ==============================
# Imports
# ==============================
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from agentloop.contracts.agent_schema import AgentAction, AgentFinish, AgentResult
from agentloop.contracts.message_schema import Message
from agentloop.contracts.step_schema import StepResult
from agentloop.contracts.tool_schema import ToolCall, ToolResult, ToolSpec


class ToolCallOutcome(str, Enum):
    EXECUTED = "executed"
    DEFERRED = "deferred"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"


class _Event(BaseModel):
    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    run_id: str = Field(..., description="Run the event belongs to.")


# ==============================
# Run Events
# ==============================
class RunStartEvent(_Event):
    parent_run_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    provider: str = ""
    model_id: str = ""
    system: str = ""
    prompt: str = Field(default="", description="Text of the first input message.")
    messages: List[Message] = Field(default_factory=list)
    tools: List[ToolSpec] = Field(default_factory=list)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    experimental_context: Any = None


class RunFinishEvent(_Event):
    result: AgentResult
    experimental_context: Any = None


class RunErrorEvent(_Event):
    error: BaseException
    step_number: Optional[int] = None


# ==============================
# Step Events
# ==============================
class StepStartEvent(_Event):
    step_number: int
    provider: str = ""
    model_id: str = ""
    system: str = ""
    messages: List[Message] = Field(default_factory=list)
    tools: List[ToolSpec] = Field(default_factory=list)
    previous_steps: List[StepResult] = Field(default_factory=list)
    experimental_context: Any = None


class StepFinishEvent(_Event):
    step: StepResult
    provider: str = ""
    model_id: str = ""
    experimental_context: Any = None

    @property
    def step_number(self) -> int:
        return self.step.step_number

    @property
    def tool_results(self) -> List[ToolResult]:
        return self.step.tool_results


# ==============================
# Decision Events
# ==============================
class AgentActionEvent(_Event):
    action: AgentAction


class AgentFinishEvent(_Event):
    finish: AgentFinish


# ==============================
# Tool Events
# ==============================
class ToolCallRequestedEvent(_Event):
    tool_call: ToolCall
    step_number: int


class ToolCallStartEvent(_Event):
    tool_call: ToolCall
    step_number: int
    deferred: bool = False
    provider: str = ""
    model_id: str = ""
    experimental_context: Any = None

    @property
    def tool_call_id(self) -> str:
        return self.tool_call.id

    @property
    def tool_name(self) -> str:
        return self.tool_call.tool_name

    @property
    def args(self) -> Dict[str, Any]:
        return self.tool_call.args


class ToolCallFinishEvent(_Event):
    tool_call: ToolCall
    result: ToolResult
    outcome: ToolCallOutcome
    step_number: int
    duration_ms: Optional[int] = None
    provider: str = ""
    model_id: str = ""
    experimental_context: Any = None

    @property
    def tool_call_id(self) -> str:
        return self.tool_call.id

    @property
    def tool_name(self) -> str:
        return self.tool_call.tool_name

# ==============================
# Agent Contracts
# ==============================
"""
Agent-level contracts for agentloop.

AgentResult is the terminal aggregate returned to (and owned by) the caller.
AgentAction / AgentFinish are decision-level views derived from a step for external
notification only; the loop never reads them back.
"""

# ==============================
# Imports
# ==============================
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from agentloop.contracts.message_schema import Message
from agentloop.contracts.step_schema import FinishReason, StepResult, StepWarning, Usage
from agentloop.contracts.tool_schema import ToolCall, ToolResult


# ==============================
# Notification Views
# ==============================
class AgentAction(BaseModel):
    """The agent decided to call a tool."""
    model_config = ConfigDict(extra="forbid")

    tool_call: ToolCall
    step_number: int = Field(..., ge=1)
    reasoning: str = Field(default="", description="Text the backend produced alongside the call.")
    run_id: Optional[str] = Field(default=None)
    parent_run_id: Optional[str] = Field(default=None)
    tags: List[str] = Field(default_factory=list)


class AgentFinish(BaseModel):
    """The agent reached its final answer (or was stopped)."""
    model_config = ConfigDict(extra="forbid")

    output: str = Field(default="")
    step_number: int = Field(..., ge=1)
    finish_reason: FinishReason
    metadata: Dict[str, Any] = Field(default_factory=dict)
    run_id: Optional[str] = Field(default=None)
    parent_run_id: Optional[str] = Field(default=None)
    tags: List[str] = Field(default_factory=list)


# ==============================
# Delegation Record
# ==============================
class SubagentDelegation(BaseModel):
    """Record of one delegation to a named subagent (not a live handle)."""
    model_config = ConfigDict(extra="forbid")

    subagent_name: str
    prompt: str = Field(default="")
    messages: List[Message] = Field(default_factory=list)
    result: Optional["AgentResult"] = Field(default=None)
    error: Optional[str] = Field(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None


# ==============================
# Terminal Aggregate
# ==============================
class AgentResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    run_id: Optional[str] = Field(default=None, description="Run id the execution was tracked under.")
    text: str = Field(default="", description="Final text output.")
    steps: List[StepResult] = Field(default_factory=list, description="Steps in execution order.")
    tool_results: List[ToolResult] = Field(default_factory=list, description="All tool results in execution order.")
    delegations: List[SubagentDelegation] = Field(default_factory=list)
    finish_reason: FinishReason = Field(default=FinishReason.OTHER)
    stop_reason: str = Field(default="", description="Reason of the stop condition that ended the loop, if any.")
    usage: Usage = Field(default_factory=Usage)
    warnings: List[StepWarning] = Field(default_factory=list)

    def tool_calls(self) -> List[ToolCall]:
        return [call for step in self.steps for call in step.tool_calls]


SubagentDelegation.model_rebuild()

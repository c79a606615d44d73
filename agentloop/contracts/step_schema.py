# ==============================
# Step Contracts
# ==============================
"""
Step-level contracts: finish reasons, token usage, warnings, the per-step result and the
call-preparation record handed to the optional prepare_call hook.
"""

# ==============================
# Imports
# ==============================
from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from agentloop.contracts.message_schema import Message
from agentloop.contracts.tool_schema import Tool, ToolCall, ToolResult


# ==============================
# Enums
# ==============================
class FinishReason(str, Enum):
    """Why the backend stopped generating for a step."""
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool-calls"
    OTHER = "other"


# ==============================
# Usage / Warnings
# ==============================
class Usage(BaseModel):
    model_config = ConfigDict(extra="forbid")

    input_tokens: Optional[int] = Field(default=None, ge=0)
    output_tokens: Optional[int] = Field(default=None, ge=0)
    total_tokens: Optional[int] = Field(default=None, ge=0)

    def add(self, other: "Usage") -> "Usage":
        return Usage(
            input_tokens=_sum(self.input_tokens, other.input_tokens),
            output_tokens=_sum(self.output_tokens, other.output_tokens),
            total_tokens=_sum(self.total_tokens, other.total_tokens),
        )


def _sum(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None and b is None:
        return None
    return (a or 0) + (b or 0)


class StepWarning(BaseModel):
    """Non-fatal condition reported by the backend or the engine."""
    model_config = ConfigDict(extra="forbid")

    type: str = Field(..., description="Machine-readable warning type.")
    message: str = Field(default="")


# ==============================
# Step Result
# ==============================
class StepResult(BaseModel):
    """Outcome of one request/response cycle plus the tool results it produced."""
    model_config = ConfigDict(extra="forbid")

    step_number: int = Field(..., ge=1, description="1-based step index.")
    text: str = Field(default="")
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_results: List[ToolResult] = Field(default_factory=list)
    finish_reason: FinishReason = Field(default=FinishReason.OTHER)
    raw_finish_reason: Optional[str] = Field(default=None, description="Vendor finish reason, if reported.")
    usage: Usage = Field(default_factory=Usage)
    warnings: List[StepWarning] = Field(default_factory=list)
    response_messages: List[Message] = Field(default_factory=list, description="Reconstructed assistant message.")


# ==============================
# Call Preparation Record
# ==============================
class PrepareCallConfig(BaseModel):
    """
    Everything that goes into one backend call.

    prepare_call hooks may rewrite any field; custom_data is carried to the next step
    untouched by the engine.
    """
    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    step_number: int = Field(..., ge=1)
    system: str = Field(default="")
    messages: List[Message] = Field(default_factory=list)
    tools: List[Tool] = Field(default_factory=list)
    temperature: Optional[float] = Field(default=None)
    max_tokens: Optional[int] = Field(default=None)
    accumulated_usage: Usage = Field(default_factory=Usage)
    custom_data: Any = Field(default=None)

# ==============================
# Tool Contracts
# ==============================
"""
Tool contracts for agentloop.

These models define the tool catalog entries, the calls a backend requests, and the
result envelope produced for every call. No module should invent its own tool result
shape: use ToolResult.

Intended usage:
- Callers build Tool entries (local handler OR deferred marker)
- Backends return ToolCall objects
- ToolDispatcher produces exactly one ToolResult per ToolCall, in order
"""

# ==============================
# Imports
# ==============================
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

if TYPE_CHECKING:
    from agentloop.contracts.agent_schema import SubagentDelegation
    from agentloop.contracts.message_schema import Message
    from agentloop.orchestrator.run_context import RunContext


# ==============================
# Enums
# ==============================
class ToolErrorCode(str, Enum):
    """Standard error codes for tool failures."""
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    BLOCKED = "blocked"
    NO_HANDLER = "no_handler"
    EXECUTION_FAILED = "execution_failed"
    TIMEOUT = "timeout"


# ==============================
# Models
# ==============================
class ToolCall(BaseModel):
    """A tool invocation requested by the backend."""
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Backend-assigned call id.")
    tool_name: str = Field(..., description="Requested tool name (exact match against the catalog).")
    args: Dict[str, Any] = Field(default_factory=dict, description="Structured arguments.")


class ToolError(BaseModel):
    """Structured error for tool failures. Errors are data, not control flow."""
    model_config = ConfigDict(extra="forbid")

    code: ToolErrorCode = Field(..., description="Standard tool error code.")
    message: str = Field(..., description="Human readable message.")
    details: Dict[str, Any] = Field(default_factory=dict, description="Optional structured details (sanitized).")

    def __str__(self) -> str:
        return self.message


class ToolResult(BaseModel):
    """
    Result envelope for one tool call.

    Pattern:
      value    -> result set, error None
      failure  -> error set
      deferred -> neither set; the backend computes the value on a later turn
    """
    model_config = ConfigDict(extra="forbid")

    tool_call_id: str = Field(..., description="Id of the originating ToolCall.")
    tool_name: str = Field(..., description="Tool name as requested.")
    result: Any = Field(default=None, description="Tool output value.")
    error: Optional[ToolError] = Field(default=None, description="Tool error if the call failed.")
    deferred: bool = Field(default=False, description="Execution deferred to the generation backend.")
    duration_ms: Optional[int] = Field(default=None, description="Measured handler latency in milliseconds.")

    @model_validator(mode="after")
    def _enforce_deferred_contract(self) -> "ToolResult":
        if self.deferred and (self.result is not None or self.error is not None):
            raise ValueError("Deferred tool results carry neither value nor error")
        return self

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, call: ToolCall, *, code: ToolErrorCode, message: str, **details: Any) -> "ToolResult":
        err = ToolError(code=code, message=message, details=details)
        return cls(tool_call_id=call.id, tool_name=call.tool_name, error=err)

    @classmethod
    def pending(cls, call: ToolCall) -> "ToolResult":
        return cls(tool_call_id=call.id, tool_name=call.tool_name, deferred=True)


class ToolSpec(BaseModel):
    """
    Tool description sent to the backend.

    This is not the runtime entry; it is the metadata the model needs to request a call.
    """
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Unique tool name.")
    description: str = Field(default="", description="Short description of what the tool does.")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Opaque JSON-schema-like parameter description.")


# ==============================
# Execution Record
# ==============================
@dataclass(frozen=True)
class ToolExecutionOptions:
    """Call-scoped execution record handed to a local tool handler."""

    tool_call_id: str
    step_number: int
    run: "RunContext"
    messages: List["Message"] = field(default_factory=list)
    delegations: List["SubagentDelegation"] = field(default_factory=list)


ToolHandler = Callable[[Dict[str, Any], ToolExecutionOptions], Any]


# ==============================
# Catalog Entry
# ==============================
class Tool(BaseModel):
    """
    Tool catalog entry.

    Either `handler` runs locally, or `deferred=True` marks a tool whose computation
    happens inside the generation backend.
    """
    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1, description="Unique tool name.")
    description: str = Field(default="")
    parameters: Dict[str, Any] = Field(default_factory=dict)
    handler: Optional[Callable[..., Any]] = Field(default=None, description="Local handler (args, options) -> value.")
    deferred: bool = Field(default=False, description="Execution happens inside the backend.")

    def spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, description=self.description, parameters=self.parameters)

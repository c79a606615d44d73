# ==============================
# Message Contracts
# ==============================
"""
Transcript contracts for agentloop.

A transcript is an ordered list of Message objects. Content is a list of typed parts so
the engine can re-inject tool calls and tool results without knowing any vendor format.

Intended usage:
- Engine appends one assistant message per step and one tool message per tool result
- Backends translate Message lists into their own wire format (out of scope here)
"""

# ==============================
# Imports
# ==============================
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from agentloop.contracts.tool_schema import ToolCall, ToolResult


# ==============================
# Enums
# ==============================
class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


# ==============================
# Content Parts
# ==============================
class TextPart(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["text"] = "text"
    text: str = Field(..., description="Plain text content.")


class ToolCallPart(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["tool_call"] = "tool_call"
    tool_call_id: str = Field(..., description="Backend-assigned tool call id.")
    tool_name: str = Field(..., description="Requested tool name.")
    args: Dict[str, Any] = Field(default_factory=dict, description="Structured arguments.")


class ToolResultPart(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str = Field(..., description="Id of the originating tool call.")
    tool_name: str = Field(..., description="Tool name.")
    result: Any = Field(default=None, description="Tool value, or error message when is_error.")
    is_error: bool = Field(default=False)


ContentPart = Annotated[Union[TextPart, ToolCallPart, ToolResultPart], Field(discriminator="type")]


# ==============================
# Message
# ==============================
class Message(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: Role = Field(..., description="Speaker role.")
    content: List[ContentPart] = Field(default_factory=list)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role=Role.USER, content=[TextPart(text=text)])

    @classmethod
    def system(cls, text: str) -> "Message":
        return cls(role=Role.SYSTEM, content=[TextPart(text=text)])

    @classmethod
    def assistant(cls, text: str = "", tool_calls: Optional[List["ToolCall"]] = None) -> "Message":
        """Assistant message: a text part (when non-empty) plus one part per tool call."""
        parts: List[Any] = [TextPart(text=text)] if text else []
        for call in tool_calls or []:
            parts.append(ToolCallPart(tool_call_id=call.id, tool_name=call.tool_name, args=dict(call.args)))
        return cls(role=Role.ASSISTANT, content=parts)

    @classmethod
    def tool_result(cls, result: "ToolResult") -> "Message":
        if result.error is not None:
            part = ToolResultPart(
                tool_call_id=result.tool_call_id, tool_name=result.tool_name, result=result.error.message, is_error=True
            )
        else:
            part = ToolResultPart(tool_call_id=result.tool_call_id, tool_name=result.tool_name, result=result.result)
        return cls(role=Role.TOOL, content=[part])

    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(p.text for p in self.content if isinstance(p, TextPart))

    def tool_calls(self) -> List[ToolCallPart]:
        return [p for p in self.content if isinstance(p, ToolCallPart)]

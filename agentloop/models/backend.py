# ==============================
# Generation Backend Boundary
# ==============================
"""
Provider boundary for text generation.

Important:
- The engine only ever talks to a GenerationBackend; vendor SDKs and wire formats stay
  inside providers/.
- No environment reads here. Configuration is injected by the caller.
- `generate` is blocking. The step executor enforces deadlines around it, so
  implementations only need to honour the token cooperatively if they block for long.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from agentloop.contracts.message_schema import Message
from agentloop.contracts.step_schema import FinishReason, StepWarning, Usage
from agentloop.contracts.tool_schema import ToolCall, ToolSpec
from agentloop.orchestrator.timeouts import CancellationToken


# ==============================
# Request / Response
# ==============================
class GenerateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    system: str = Field(default="", description="System prompt.")
    messages: List[Message] = Field(default_factory=list, description="Transcript so far.")
    tools: List[ToolSpec] = Field(default_factory=list, description="Tools the backend may request.")
    temperature: Optional[float] = Field(default=None)
    max_tokens: Optional[int] = Field(default=None)
    tool_choice: str = Field(default="auto")


class GenerateResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str = Field(default="")
    tool_calls: List[ToolCall] = Field(default_factory=list)
    finish_reason: FinishReason = Field(default=FinishReason.OTHER)
    raw_finish_reason: Optional[str] = Field(default=None)
    usage: Usage = Field(default_factory=Usage)
    warnings: List[StepWarning] = Field(default_factory=list)


class StreamChunk(BaseModel):
    """One streamed piece of a response. Chunks are folded by collect_stream()."""
    model_config = ConfigDict(extra="forbid")

    type: Literal["text-delta", "tool-call", "finish", "warning"]
    text: str = Field(default="")
    tool_call: Optional[ToolCall] = Field(default=None)
    finish_reason: Optional[FinishReason] = Field(default=None)
    raw_finish_reason: Optional[str] = Field(default=None)
    usage: Optional[Usage] = Field(default=None)
    warning: Optional[StepWarning] = Field(default=None)


# ==============================
# Backend
# ==============================
class GenerationBackend(ABC):
    provider: str = "unknown"
    model_id: str = "unknown"

    @abstractmethod
    def generate(self, token: CancellationToken, request: GenerateRequest) -> GenerateResponse:
        raise NotImplementedError

    def stream(self, token: CancellationToken, request: GenerateRequest) -> Iterator[StreamChunk]:
        raise NotImplementedError(f"{type(self).__name__} does not support streaming")

    @property
    def supports_streaming(self) -> bool:
        return type(self).stream is not GenerationBackend.stream

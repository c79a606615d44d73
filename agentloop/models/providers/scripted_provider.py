# ==============================
# Scripted Provider
# ==============================
"""
Replay backend for tests and demos.

Each generate() call pops the next scripted item:
- a GenerateResponse is returned as-is
- an exception instance is raised (simulates a vendor failure)
- a callable is invoked with the request and its return value used

Every request is recorded in `requests` so callers can assert on what the engine sent.
Running past the end of the script raises RuntimeError.
"""

from __future__ import annotations

from typing import Any, Callable, Iterator, List, Optional, Sequence, Union

from agentloop.contracts.step_schema import FinishReason, Usage
from agentloop.contracts.tool_schema import ToolCall
from agentloop.models.backend import GenerateRequest, GenerateResponse, GenerationBackend, StreamChunk
from agentloop.orchestrator.timeouts import CancellationToken

ScriptItem = Union[GenerateResponse, BaseException, Callable[[GenerateRequest], GenerateResponse]]


class ScriptedBackend(GenerationBackend):
    provider = "scripted"

    def __init__(self, script: Sequence[ScriptItem] = (), *, model_id: str = "scripted-1") -> None:
        self.model_id = model_id
        self._script: List[ScriptItem] = list(script)
        self.requests: List[GenerateRequest] = []

    @property
    def remaining(self) -> int:
        return len(self._script)

    def push(self, item: ScriptItem) -> None:
        self._script.append(item)

    def generate(self, token: CancellationToken, request: GenerateRequest) -> GenerateResponse:
        self.requests.append(request)
        if not self._script:
            raise RuntimeError(f"script exhausted after {len(self.requests) - 1} calls")
        item = self._script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, GenerateResponse):
            return item
        return item(request)

    def stream(self, token: CancellationToken, request: GenerateRequest) -> Iterator[StreamChunk]:
        response = self.generate(token, request)
        if response.text:
            yield StreamChunk(type="text-delta", text=response.text)
        for call in response.tool_calls:
            yield StreamChunk(type="tool-call", tool_call=call)
        for warning in response.warnings:
            yield StreamChunk(type="warning", warning=warning)
        yield StreamChunk(
            type="finish",
            finish_reason=response.finish_reason,
            raw_finish_reason=response.raw_finish_reason,
            usage=response.usage,
        )


# ==============================
# Script builders
# ==============================
def text_response(text: str, *, tokens: Optional[int] = None) -> GenerateResponse:
    return GenerateResponse(text=text, finish_reason=FinishReason.STOP, raw_finish_reason="stop", usage=_usage(tokens))


def tool_call_response(
    tool_name: str,
    args: Optional[dict] = None,
    *,
    call_id: str = "call_1",
    text: str = "",
    tokens: Optional[int] = None,
    extra_calls: Sequence[Any] = (),
) -> GenerateResponse:
    calls = [ToolCall(id=call_id, tool_name=tool_name, args=args or {})]
    calls.extend(c if isinstance(c, ToolCall) else ToolCall(**c) for c in extra_calls)
    return GenerateResponse(
        text=text,
        tool_calls=calls,
        finish_reason=FinishReason.TOOL_CALLS,
        raw_finish_reason="tool_calls",
        usage=_usage(tokens),
    )


def _usage(tokens: Optional[int]) -> Usage:
    if tokens is None:
        return Usage()
    return Usage(input_tokens=tokens // 2, output_tokens=tokens - tokens // 2, total_tokens=tokens)

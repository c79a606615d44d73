# ==============================
# Stream Collection
# ==============================
"""
Folds a chunk stream into a single GenerateResponse.

Rules:
- text-delta chunks concatenate, tool-call chunks append in arrival order,
  the finish chunk sets finish reason + usage, warning chunks accumulate.
- With a per-chunk timeout the stream is drained on a worker thread and the caller
  waits at most `per_chunk_seconds` for each next chunk (never past the token deadline).
- An exception raised by the stream is re-raised on the caller's thread.
"""

from __future__ import annotations

import queue
import threading
from typing import Iterable, Iterator, List, Optional

from agentloop.contracts.errors import DeadlineExceededError
from agentloop.contracts.step_schema import FinishReason, StepWarning, Usage
from agentloop.contracts.tool_schema import ToolCall
from agentloop.models.backend import GenerateResponse, StreamChunk
from agentloop.orchestrator.timeouts import CancellationToken

_DONE = object()


class _StreamFailure:
    def __init__(self, error: BaseException) -> None:
        self.error = error


def collect_stream(
    chunks: Iterable[StreamChunk],
    token: CancellationToken,
    per_chunk_seconds: Optional[float] = None,
) -> GenerateResponse:
    text_parts: List[str] = []
    tool_calls: List[ToolCall] = []
    warnings: List[StepWarning] = []
    finish_reason = FinishReason.OTHER
    raw_finish_reason: Optional[str] = None
    usage = Usage()

    for chunk in _iter_with_timeout(chunks, token, per_chunk_seconds):
        if chunk.type == "text-delta":
            text_parts.append(chunk.text)
        elif chunk.type == "tool-call" and chunk.tool_call is not None:
            tool_calls.append(chunk.tool_call)
        elif chunk.type == "warning" and chunk.warning is not None:
            warnings.append(chunk.warning)
        elif chunk.type == "finish":
            finish_reason = chunk.finish_reason or FinishReason.OTHER
            raw_finish_reason = chunk.raw_finish_reason
            if chunk.usage is not None:
                usage = usage.add(chunk.usage)

    return GenerateResponse(
        text="".join(text_parts),
        tool_calls=tool_calls,
        finish_reason=finish_reason,
        raw_finish_reason=raw_finish_reason,
        usage=usage,
        warnings=warnings,
    )


def _iter_with_timeout(
    chunks: Iterable[StreamChunk],
    token: CancellationToken,
    per_chunk_seconds: Optional[float],
) -> Iterator[StreamChunk]:
    if per_chunk_seconds is None and token.remaining() is None:
        for chunk in chunks:
            token.raise_if_cancelled("step")
            yield chunk
        return

    q: "queue.Queue[object]" = queue.Queue()

    def _pump() -> None:
        try:
            for chunk in chunks:
                if token.cancelled:
                    break
                q.put(chunk)
        except Exception as exc:
            q.put(_StreamFailure(exc))
        finally:
            q.put(_DONE)

    threading.Thread(target=_pump, name="agentloop-stream", daemon=True).start()

    while True:
        wait = _next_wait(token, per_chunk_seconds)
        try:
            item = q.get(timeout=wait)
        except queue.Empty:
            token.cancel()
            # chunk budget vs. the enclosing step/total deadline
            if per_chunk_seconds is not None and (wait is None or wait >= per_chunk_seconds):
                raise DeadlineExceededError("chunk") from None
            raise DeadlineExceededError("step") from None
        if item is _DONE:
            return
        if isinstance(item, _StreamFailure):
            raise item.error
        yield item  # type: ignore[misc]


def _next_wait(token: CancellationToken, per_chunk_seconds: Optional[float]) -> Optional[float]:
    remaining = token.remaining()
    if per_chunk_seconds is None:
        return remaining
    if remaining is None:
        return per_chunk_seconds
    return min(per_chunk_seconds, remaining)

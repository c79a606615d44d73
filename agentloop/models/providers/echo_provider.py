# ==============================
# Echo Provider
# ==============================
"""
Deterministic offline backend.

Important:
- No network calls, no environment reads.
- Echoes the last user text back and finishes with "stop", so a default-configured
  engine, the CLI and the HTTP gateway all work without vendor credentials.
"""

from __future__ import annotations

from typing import Iterator

from agentloop.contracts.message_schema import Role
from agentloop.contracts.step_schema import FinishReason, Usage
from agentloop.models.backend import GenerateRequest, GenerateResponse, GenerationBackend, StreamChunk
from agentloop.orchestrator.timeouts import CancellationToken


class EchoBackend(GenerationBackend):
    provider = "echo"

    def __init__(self, *, model_id: str = "echo-1", prefix: str = "") -> None:
        self.model_id = model_id
        self.prefix = prefix

    def generate(self, token: CancellationToken, request: GenerateRequest) -> GenerateResponse:
        token.raise_if_cancelled("step")
        text = self.prefix + _last_user_text(request)
        n = len(text.split())
        return GenerateResponse(
            text=text,
            finish_reason=FinishReason.STOP,
            raw_finish_reason="stop",
            usage=Usage(input_tokens=n, output_tokens=n, total_tokens=2 * n),
        )

    def stream(self, token: CancellationToken, request: GenerateRequest) -> Iterator[StreamChunk]:
        response = self.generate(token, request)
        for i, word in enumerate(response.text.split(" ")):
            yield StreamChunk(type="text-delta", text=word if i == 0 else " " + word)
        yield StreamChunk(
            type="finish",
            finish_reason=response.finish_reason,
            raw_finish_reason=response.raw_finish_reason,
            usage=response.usage,
        )


def _last_user_text(request: GenerateRequest) -> str:
    for message in reversed(request.messages):
        if message.role == Role.USER:
            return message.text().strip()
    return ""

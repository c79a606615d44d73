# ==============================
# Step Executor
# ==============================
"""
Execute a single request/response cycle against the generation backend.

This module is pure execution orchestration:
- No tool calls (the engine hands tool calls to the ToolDispatcher)
- No notifications (the engine publishes step events around this call)
- No retries: any backend failure aborts the run as BackendCallError

Cycle:
  (a) build the PrepareCallConfig for this step
  (b) optional prepare_call(ctx, config) hook may rewrite it (incl. custom_data)
  (c) backend call inside the per-step timeout scope
      (streaming backends go through the per-chunk timeout when enabled)
  (d) translate the response into a StepResult + one reconstructed assistant message
  (e) continuation decision
"""

# ==============================
# Imports
# ==============================
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from agentloop.contracts.errors import BackendCallError, DeadlineExceededError
from agentloop.contracts.message_schema import Message
from agentloop.contracts.step_schema import FinishReason, PrepareCallConfig, StepResult, Usage
from agentloop.contracts.tool_schema import Tool
from agentloop.models.backend import GenerateRequest, GenerateResponse, GenerationBackend
from agentloop.models.streaming import collect_stream
from agentloop.orchestrator.run_context import RunContext
from agentloop.orchestrator.timeouts import CancellationToken, TimeoutConfig, call_with_deadline, timeout_scope

# ==============================
# Callable Types
# ==============================
PrepareCallHook = Callable[[RunContext, PrepareCallConfig], Optional[PrepareCallConfig]]


@dataclass(frozen=True)
class StepOutcome:
    step: StepResult
    assistant_message: Message
    continuable: bool
    custom_data: Any = None


# ==============================
# Executor
# ==============================
class StepExecutor:
    def __init__(
        self,
        *,
        backend: GenerationBackend,
        timeout: Optional[TimeoutConfig] = None,
        prepare_call: Optional[PrepareCallHook] = None,
        streaming: bool = False,
    ) -> None:
        self.backend = backend
        self.timeout = timeout or TimeoutConfig()
        self.prepare_call = prepare_call
        self.streaming = streaming

    def run(
        self,
        *,
        step_number: int,
        ctx: RunContext,
        system: str,
        messages: Sequence[Message],
        tools: Sequence[Tool],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        accumulated_usage: Optional[Usage] = None,
        custom_data: Any = None,
    ) -> StepOutcome:
        config = PrepareCallConfig(
            step_number=step_number,
            system=system,
            messages=list(messages),
            tools=list(tools),
            temperature=temperature,
            max_tokens=max_tokens,
            accumulated_usage=accumulated_usage or Usage(),
            custom_data=custom_data,
        )
        if self.prepare_call is not None:
            rewritten = self.prepare_call(ctx, config)
            if rewritten is not None:
                config = rewritten

        request = GenerateRequest(
            system=config.system,
            messages=list(config.messages),
            tools=[t.spec() for t in config.tools],
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

        try:
            response = self._call_backend(ctx, request)
        except DeadlineExceededError as exc:
            if exc.scope != "chunk" and ctx.token.cancelled:
                exc = DeadlineExceededError("total")
            raise BackendCallError(step_number, exc) from exc
        except Exception as exc:
            raise BackendCallError(step_number, exc) from exc

        return _to_outcome(step_number, response, config.custom_data)

    def _call_backend(self, ctx: RunContext, request: GenerateRequest) -> GenerateResponse:
        with timeout_scope(ctx.token, self.timeout.per_step_seconds, "step") as step_token:
            if self.streaming and self.backend.supports_streaming:
                return self._collect(step_token, request)
            return call_with_deadline(lambda: self.backend.generate(step_token, request), step_token, "step")

    def _collect(self, token: CancellationToken, request: GenerateRequest) -> GenerateResponse:
        token.raise_if_cancelled("step")
        return collect_stream(self.backend.stream(token, request), token, self.timeout.per_chunk_seconds)


# ==============================
# Translation
# ==============================
def _to_outcome(step_number: int, response: GenerateResponse, custom_data: Any) -> StepOutcome:
    assistant = Message.assistant(response.text, list(response.tool_calls))
    step = StepResult(
        step_number=step_number,
        text=response.text,
        tool_calls=list(response.tool_calls),
        finish_reason=response.finish_reason,
        raw_finish_reason=response.raw_finish_reason,
        usage=response.usage,
        warnings=list(response.warnings),
        response_messages=[assistant],
    )
    return StepOutcome(
        step=step,
        assistant_message=assistant,
        continuable=is_continuable(step),
        custom_data=custom_data,
    )


def is_continuable(step: StepResult) -> bool:
    return step.finish_reason == FinishReason.TOOL_CALLS and len(step.tool_calls) > 0

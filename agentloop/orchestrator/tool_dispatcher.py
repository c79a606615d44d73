# ==============================
# Tool Dispatcher
# ==============================
"""
Central tool dispatch entrypoint for the agent loop.

Rules:
- ONLY place tool handlers are invoked.
- Exactly one ToolResult per requested call, same order, strictly sequential.
- Approval is consulted before the catalog is even looked at.
- Never raises for tool-level problems (rejection, unknown tool, handler failure);
  those become ToolResult errors the backend can react to on the next step.
- The one exception: the run-level deadline expiring while a handler runs raises
  DeadlineExceededError, which aborts the run.
- Arguments and results are redacted before they reach a log line.

Per call:
  requested -> approval -> resolution -> deferred placeholder | local handler
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional, Sequence

from agentloop.contracts.agent_schema import SubagentDelegation
from agentloop.contracts.errors import DeadlineExceededError
from agentloop.contracts.event_schema import (
    ToolCallFinishEvent,
    ToolCallOutcome,
    ToolCallRequestedEvent,
    ToolCallStartEvent,
)
from agentloop.contracts.message_schema import Message
from agentloop.contracts.tool_schema import Tool, ToolCall, ToolErrorCode, ToolExecutionOptions, ToolResult
from agentloop.governance.approval import ApprovalPolicy
from agentloop.governance.security import SecurityRedactor
from agentloop.orchestrator.notifier import EventBus
from agentloop.orchestrator.run_context import RunContext
from agentloop.orchestrator.timeouts import call_with_deadline
from agentloop.tools.catalog import ToolCatalog

logger = logging.getLogger("agentloop.tools")


class ToolDispatcher:
    def __init__(
        self,
        *,
        catalog: ToolCatalog,
        bus: Optional[EventBus] = None,
        approval: Optional[ApprovalPolicy] = None,
        redactor: Optional[SecurityRedactor] = None,
        provider: str = "",
        model_id: str = "",
        experimental_context: object = None,
    ) -> None:
        self.catalog = catalog
        self.bus = bus or EventBus()
        self.approval = approval or ApprovalPolicy()
        self.redactor = redactor or SecurityRedactor()
        self.provider = provider
        self.model_id = model_id
        self.experimental_context = experimental_context

    def dispatch(
        self,
        calls: Sequence[ToolCall],
        *,
        step_number: int,
        ctx: RunContext,
        messages: Sequence[Message] = (),
        delegations: Optional[List[SubagentDelegation]] = None,
    ) -> List[ToolResult]:
        if delegations is None:
            delegations = []
        results: List[ToolResult] = []
        for call in calls:
            results.append(
                self._dispatch_one(call, step_number=step_number, ctx=ctx, messages=messages, delegations=delegations)
            )
        return results

    # ------------------------------
    # Per call
    # ------------------------------

    def _dispatch_one(
        self,
        call: ToolCall,
        *,
        step_number: int,
        ctx: RunContext,
        messages: Sequence[Message],
        delegations: List[SubagentDelegation],
    ) -> ToolResult:
        run_id = ctx.run_id or ""
        ctx.token.raise_if_cancelled("total")
        self.bus.publish(ToolCallRequestedEvent(run_id=run_id, tool_call=call, step_number=step_number))

        decision = self.approval.evaluate(call)
        if not decision.allow:
            result = ToolResult.failure(call, code=decision.code or ToolErrorCode.REJECTED, message=decision.reason)
            self._log(logging.WARNING, "tool.rejected", call, ctx, step_number, error=decision.reason)
            return self._finish(call, result, ToolCallOutcome.REJECTED, ctx, step_number)

        tool = self.catalog.resolve(call.tool_name)
        if tool is None:
            result = ToolResult.failure(call, code=ToolErrorCode.NOT_FOUND, message=f"tool not found: {call.tool_name}")
            self._log(logging.WARNING, "tool.not_found", call, ctx, step_number)
            return self._finish(call, result, ToolCallOutcome.NOT_FOUND, ctx, step_number)

        if self.catalog.is_deferred(tool):
            self._start(call, ctx, step_number, deferred=True)
            result = ToolResult.pending(call)
            self._log(logging.INFO, "tool.deferred", call, ctx, step_number)
            return self._finish(call, result, ToolCallOutcome.DEFERRED, ctx, step_number)

        self._start(call, ctx, step_number, deferred=False)
        options = ToolExecutionOptions(
            tool_call_id=call.id,
            step_number=step_number,
            run=ctx,
            messages=list(messages),
            delegations=delegations,
        )
        result = self._run_local(tool, call, options, ctx)
        self._log(
            logging.INFO if result.ok else logging.WARNING,
            "tool.executed",
            call,
            ctx,
            step_number,
            latency_ms=result.duration_ms,
            result=self.redactor.redact(result.result),
            error=result.error.message if result.error else None,
        )
        return self._finish(call, result, ToolCallOutcome.EXECUTED, ctx, step_number)

    def _run_local(self, tool: Tool, call: ToolCall, options: ToolExecutionOptions, ctx: RunContext) -> ToolResult:
        if tool.handler is None:
            return ToolResult.failure(call, code=ToolErrorCode.NO_HANDLER, message=f"tool has no handler: {tool.name}")

        handler = tool.handler
        args = dict(call.args)
        started = time.perf_counter()
        try:
            value = call_with_deadline(lambda: handler(args, options), ctx.token, "total")
        except DeadlineExceededError as exc:
            if ctx.token.cancelled:
                raise
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            return ToolResult.failure(call, code=ToolErrorCode.TIMEOUT, message=str(exc)).model_copy(
                update={"duration_ms": elapsed_ms}
            )
        except Exception as exc:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            failed = ToolResult.failure(
                call, code=ToolErrorCode.EXECUTION_FAILED, message=str(exc) or type(exc).__name__, exc=repr(exc)
            )
            return failed.model_copy(update={"duration_ms": elapsed_ms})

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        return ToolResult(tool_call_id=call.id, tool_name=call.tool_name, result=value, duration_ms=elapsed_ms)

    # ------------------------------
    # Events / logs
    # ------------------------------

    def _start(self, call: ToolCall, ctx: RunContext, step_number: int, *, deferred: bool) -> None:
        self.bus.publish(
            ToolCallStartEvent(
                run_id=ctx.run_id or "",
                tool_call=call,
                step_number=step_number,
                deferred=deferred,
                provider=self.provider,
                model_id=self.model_id,
                experimental_context=self.experimental_context,
            )
        )

    def _finish(
        self, call: ToolCall, result: ToolResult, outcome: ToolCallOutcome, ctx: RunContext, step_number: int
    ) -> ToolResult:
        self.bus.publish(
            ToolCallFinishEvent(
                run_id=ctx.run_id or "",
                tool_call=call,
                result=result,
                outcome=outcome,
                step_number=step_number,
                duration_ms=result.duration_ms,
                provider=self.provider,
                model_id=self.model_id,
                experimental_context=self.experimental_context,
            )
        )
        return result

    def _log(self, level: int, event: str, call: ToolCall, ctx: RunContext, step_number: int, **payload: object) -> None:
        logger.log(
            level,
            event,
            extra={
                "event": event,
                "tool": call.tool_name,
                "step_number": step_number,
                "run_id": ctx.run_id,
                "parent_run_id": ctx.parent_run_id,
                "payload": {"tool_call_id": call.id, "args": self.redactor.redact(call.args), **payload},
            },
        )

# ==============================
# Run Routes
# ==============================
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from agentloop.contracts.errors import AgentLoopError, ConfigurationError
from agentloop.contracts.message_schema import Message
from agentloop.orchestrator.engine import ToolLoopAgent
from agentloop.orchestrator.run_context import RunContext
from gateway.api.deps import get_agent
from gateway.api.envelope import fail, ok

router = APIRouter()


class RunRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt: Optional[str] = Field(default=None, description="Single user prompt.")
    messages: Optional[List[Message]] = Field(default=None, description="Full transcript (wins over prompt).")
    run_id: Optional[str] = Field(default=None)
    parent_run_id: Optional[str] = Field(default=None)
    tags: List[str] = Field(default_factory=list)


def run_context_from(run_id: Optional[str], parent_run_id: Optional[str], tags: List[str]) -> RunContext:
    return RunContext(run_id=run_id or None, parent_run_id=parent_run_id or None, tags=list(tags))


@router.get("/health")
def health() -> Dict[str, Any]:
    return ok({"status": "ok"})


@router.post("/runs")
def create_run(req: RunRequest, agent: ToolLoopAgent = Depends(get_agent)) -> Dict[str, Any]:
    if req.messages is None and req.prompt is None:
        fail(
            http_status=status.HTTP_400_BAD_REQUEST,
            code="invalid_request",
            message="Provide either 'prompt' or 'messages'.",
        )

    ctx = run_context_from(req.run_id, req.parent_run_id, req.tags)
    try:
        if req.messages is not None:
            result = agent.execute_with_messages(req.messages, ctx=ctx)
        else:
            result = agent.execute(req.prompt or "", ctx=ctx)
    except ConfigurationError as exc:
        fail(http_status=status.HTTP_500_INTERNAL_SERVER_ERROR, code="configuration_error", message=str(exc))
    except AgentLoopError as exc:
        fail(
            http_status=status.HTTP_502_BAD_GATEWAY,
            code="run_failed",
            message=str(exc),
            details={"type": type(exc).__name__},
            meta={"run_id": ctx.run_id},
        )

    return ok(result.model_dump(mode="json"), meta={"run_id": result.run_id, "steps": len(result.steps)})

# ==============================
# Skill & Subagent Routes
# ==============================
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from agentloop.agents.skills import Skill
from agentloop.agents.subagents import DelegationTracker
from agentloop.contracts.errors import SkillNotFoundError, SubagentNotFoundError
from agentloop.orchestrator.engine import ToolLoopAgent
from gateway.api.deps import get_agent
from gateway.api.envelope import fail, ok
from gateway.api.routes_run import run_context_from

router = APIRouter()


class SkillExecuteRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    input: str = Field(default="")


class DelegateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt: str = Field(..., min_length=1)
    run_id: Optional[str] = Field(default=None)
    parent_run_id: Optional[str] = Field(default=None)
    tags: List[str] = Field(default_factory=list)


def _serialize_skill(skill: Skill) -> Dict[str, Any]:
    return {
        "name": skill.name,
        "description": skill.description,
        "instructions": skill.instructions,
        "metadata": skill.metadata,
    }


# ------------------------------
# Skills
# ------------------------------


@router.get("/skills")
def list_skills(agent: ToolLoopAgent = Depends(get_agent)) -> Dict[str, Any]:
    return ok({"skills": [_serialize_skill(s) for s in agent.list_skills()]})


@router.post("/skills/{name}/execute")
def execute_skill(name: str, req: SkillExecuteRequest, agent: ToolLoopAgent = Depends(get_agent)) -> Dict[str, Any]:
    try:
        output = agent.execute_skill(name, req.input)
    except SkillNotFoundError as exc:
        fail(http_status=status.HTTP_404_NOT_FOUND, code="skill_not_found", message=str(exc))
    except Exception as exc:
        fail(
            http_status=status.HTTP_502_BAD_GATEWAY,
            code="skill_failed",
            message=str(exc),
            details={"skill": name, "type": type(exc).__name__},
        )
    return ok({"skill": name, "output": output})


# ------------------------------
# Subagents
# ------------------------------


@router.get("/subagents")
def list_subagents(agent: ToolLoopAgent = Depends(get_agent)) -> Dict[str, Any]:
    return ok({"subagents": agent.list_subagents()})


@router.post("/subagents/{name}/delegate")
def delegate(name: str, req: DelegateRequest, agent: ToolLoopAgent = Depends(get_agent)) -> Dict[str, Any]:
    if agent.get_subagent(name) is None:
        fail(http_status=status.HTTP_404_NOT_FOUND, code="subagent_not_found", message=f"subagent '{name}' not found")

    tracker = DelegationTracker()
    ctx = run_context_from(req.run_id, req.parent_run_id, req.tags)
    try:
        agent.delegate_to_subagent(name, req.prompt, ctx=ctx, tracker=tracker)
    except SubagentNotFoundError as exc:
        fail(http_status=status.HTTP_404_NOT_FOUND, code="subagent_not_found", message=str(exc))
    except Exception as exc:
        fail(
            http_status=status.HTTP_502_BAD_GATEWAY,
            code="delegation_failed",
            message=str(exc),
            details={
                "subagent": name,
                "delegation": tracker.delegations()[-1].model_dump(mode="json") if tracker.count() else None,
            },
        )
    delegation = tracker.delegations()[-1]
    return ok({"delegation": delegation.model_dump(mode="json")})

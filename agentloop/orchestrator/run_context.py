# ==============================
# Run Context
# ==============================
"""
Explicit run-identity value threaded through every call boundary.

Principles:
- RunContext is immutable; the with_* helpers return updated copies.
- run_id / parent_run_id / tags are for external correlation only. The engine never
  branches on them.
- A top-level execution assigns a run id once if the caller did not supply one.
- Identity is NOT forwarded across a subagent delegation. Callers that want lineage
  pass `ctx.child()` explicitly.
"""

# ==============================
# Imports
# ==============================
from __future__ import annotations

from typing import List, Optional, Sequence
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from agentloop.orchestrator.timeouts import CancellationToken


def new_run_id() -> str:
    return str(uuid4())


class RunContext(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    run_id: Optional[str] = Field(default=None, description="Unique id of this execution chain.")
    parent_run_id: Optional[str] = Field(default=None, description="Run id of the delegating run, if any.")
    tags: List[str] = Field(default_factory=list, description="Free-form labels (e.g. 'production', 'user:123').")
    token: CancellationToken = Field(default_factory=CancellationToken.background, description="Cancellation/deadline token.")

    def ensure_run_id(self) -> "RunContext":
        if self.run_id:
            return self
        return self.model_copy(update={"run_id": new_run_id()})

    def with_token(self, token: CancellationToken) -> "RunContext":
        return self.model_copy(update={"token": token})

    def child(self) -> "RunContext":
        """Context for an explicitly linked nested run (fresh id, this run as parent)."""
        return RunContext(parent_run_id=self.run_id, tags=list(self.tags), token=self.token)

    def log_extra(self) -> dict:
        return {"run_id": self.run_id, "parent_run_id": self.parent_run_id}


# ==============================
# Helpers
# ==============================
def with_run_id(ctx: Optional[RunContext], run_id: str) -> RunContext:
    return (ctx or RunContext()).model_copy(update={"run_id": run_id})


def with_parent_run_id(ctx: Optional[RunContext], parent_run_id: str) -> RunContext:
    return (ctx or RunContext()).model_copy(update={"parent_run_id": parent_run_id})


def with_tags(ctx: Optional[RunContext], tags: Sequence[str]) -> RunContext:
    return (ctx or RunContext()).model_copy(update={"tags": list(tags)})


def get_run_id(ctx: Optional[RunContext]) -> str:
    return (ctx.run_id if ctx is not None else None) or ""


def get_parent_run_id(ctx: Optional[RunContext]) -> str:
    return (ctx.parent_run_id if ctx is not None else None) or ""


def get_tags(ctx: Optional[RunContext]) -> List[str]:
    return list(ctx.tags) if ctx is not None else []

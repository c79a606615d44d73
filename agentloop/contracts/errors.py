# ==============================
# Error Contracts
# ==============================
"""
Run-level error taxonomy for agentloop.

Rules:
- Configuration errors fail fast, before any step runs.
- Backend-call errors abort the run and carry the failing step number.
- Tool failures are NOT exceptions: they travel as ToolResult.error (see tool_schema.py).
- Registry errors subclass the builtin types callers already expect (ValueError / KeyError).
"""

from __future__ import annotations

from typing import Optional


class AgentLoopError(Exception):
    """Base class for all errors raised by agentloop."""


class ConfigurationError(AgentLoopError, ValueError):
    """Invalid or incomplete engine configuration."""


class BackendCallError(AgentLoopError):
    """The generation backend failed during a step. Never retried by the engine."""

    def __init__(self, step_number: int, cause: BaseException) -> None:
        self.step_number = step_number
        self.cause = cause
        super().__init__(f"step {step_number} failed: {cause}")


class DeadlineExceededError(AgentLoopError, TimeoutError):
    """A total, per-step or per-chunk deadline expired."""

    def __init__(self, scope: str, message: Optional[str] = None) -> None:
        self.scope = scope
        super().__init__(message or f"{scope} timeout exceeded")


class DuplicateRegistrationError(AgentLoopError, ValueError):
    """A name is already taken in a skill or subagent registry."""


class SkillNotFoundError(AgentLoopError, KeyError):
    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "skill not found"


class SubagentNotFoundError(AgentLoopError, KeyError):
    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "subagent not found"

# ==============================
# Tool Approval
# ==============================
"""
Approval gate consulted by the ToolDispatcher before any tool call is resolved.

Two independent checks, in order:
1. Policy lists (settings.policies) when `enforce` is on:
   blocked_tools -> deny (blocked); non-empty allowed_tools without the name -> deny (blocked)
2. Human/programmatic approval when `required` is on:
   approver(call) returning False -> deny (rejected)

A rejected call is not retried within the run; the backend sees the error result and
may choose another action. No logging here; the dispatcher logs the decision.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional

from agentloop.contracts.errors import ConfigurationError
from agentloop.contracts.tool_schema import ToolCall, ToolErrorCode

Approver = Callable[[ToolCall], bool]

REJECTED_MESSAGE = "tool call rejected by user"


@dataclass(frozen=True)
class ApprovalDecision:
    allow: bool
    code: Optional[ToolErrorCode] = None
    reason: str = "ok"
    details: Dict[str, Any] = field(default_factory=dict)


def _norm(value: str) -> str:
    return value.strip().lower()


class ApprovalPolicy:
    def __init__(
        self,
        *,
        required: bool = False,
        approver: Optional[Approver] = None,
        enforce: bool = False,
        allowed_tools: Iterable[str] = (),
        blocked_tools: Iterable[str] = (),
    ) -> None:
        if required and approver is None:
            raise ConfigurationError("tool approval is required but no approver was configured")
        self.required = required
        self.approver = approver
        self.enforce = enforce
        self.allowed_tools: FrozenSet[str] = frozenset(_norm(t) for t in allowed_tools)
        self.blocked_tools: FrozenSet[str] = frozenset(_norm(t) for t in blocked_tools)

    @classmethod
    def from_settings(cls, settings: Any, *, approver: Optional[Approver] = None) -> "ApprovalPolicy":
        pol = settings.policies
        return cls(
            required=pol.tool_approval_required,
            approver=approver,
            enforce=pol.enforce,
            allowed_tools=pol.allowed_tools,
            blocked_tools=pol.blocked_tools,
        )

    def evaluate(self, call: ToolCall) -> ApprovalDecision:
        name = _norm(call.tool_name)
        if self.enforce:
            if name in self.blocked_tools:
                return ApprovalDecision(
                    False, ToolErrorCode.BLOCKED, f"tool blocked by policy: {call.tool_name}", {"tool": call.tool_name}
                )
            if self.allowed_tools and name not in self.allowed_tools:
                return ApprovalDecision(
                    False,
                    ToolErrorCode.BLOCKED,
                    f"tool not in allowlist: {call.tool_name}",
                    {"tool": call.tool_name},
                )

        if self.required and self.approver is not None and not self.approver(call):
            return ApprovalDecision(False, ToolErrorCode.REJECTED, REJECTED_MESSAGE, {"tool": call.tool_name})

        return ApprovalDecision(True)


def allow_all() -> ApprovalPolicy:
    return ApprovalPolicy()

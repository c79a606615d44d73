# ==============================
# Stop Conditions
# ==============================
"""
Stop-condition evaluation for the agent loop.

This module is intentionally small and pure:
- No backend calls
- No tool calls
- Never mutates the state it is handed

A stop condition is any callable `state -> str`. An empty string means "continue";
anything else is the reason recorded verbatim on AgentResult.stop_reason.

Composition is a deterministic left-to-right OR: every condition is evaluated in
registration order (so side-effecting conditions such as alerting always run) and the
first non-empty reason wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

from agentloop.contracts.message_schema import Message
from agentloop.contracts.step_schema import StepResult, Usage

# Raw iteration ceiling once termination is delegated to the condition set.
SAFETY_CEILING = 1000


# ==============================
# State
# ==============================
@dataclass(frozen=True)
class StopConditionState:
    """Read-only snapshot of the run handed to every condition."""

    steps: Tuple[StepResult, ...]
    messages: Tuple[Message, ...]
    usage: Usage

    @classmethod
    def snapshot(cls, steps: Sequence[StepResult], messages: Sequence[Message], usage: Usage) -> "StopConditionState":
        return cls(steps=tuple(steps), messages=tuple(messages), usage=usage.model_copy())


Predicate = Callable[[StopConditionState], str]


class StopCondition:
    """
    Named predicate. `budget=True` marks step-budget conditions: when one of those ends
    the loop, the run finishes with a "length" finish reason and a warning.
    """

    def __init__(self, predicate: Predicate, *, name: str = "", budget: bool = False) -> None:
        self.predicate = predicate
        self.name = name or getattr(predicate, "__name__", "stop_condition")
        self.budget = budget

    def __call__(self, state: StopConditionState) -> str:
        return self.predicate(state) or ""

    def __repr__(self) -> str:
        return f"StopCondition({self.name!r}, budget={self.budget})"


StopConditionLike = Union[StopCondition, Predicate]


# ==============================
# Built-in Conditions
# ==============================
def step_count_is(count: int) -> StopCondition:
    if count < 1:
        raise ValueError("step_count_is requires a positive step count")

    def _check(state: StopConditionState) -> str:
        if len(state.steps) >= count:
            return f"maximum number of steps ({count}) reached"
        return ""

    return StopCondition(_check, name=f"step_count_is({count})", budget=True)


def has_tool_call(tool_name: str) -> StopCondition:
    def _check(state: StopConditionState) -> str:
        if not state.steps:
            return ""
        if any(call.tool_name == tool_name for call in state.steps[-1].tool_calls):
            return f"tool '{tool_name}' was called"
        return ""

    return StopCondition(_check, name=f"has_tool_call({tool_name})")


def token_budget_exceeded(limit: int) -> StopCondition:
    def _check(state: StopConditionState) -> str:
        total = state.usage.total_tokens
        if total is not None and total > limit:
            return f"token budget exceeded ({total} tokens)"
        return ""

    return StopCondition(_check, name=f"token_budget_exceeded({limit})")


# ==============================
# Evaluation
# ==============================
def as_stop_condition(cond: StopConditionLike) -> StopCondition:
    return cond if isinstance(cond, StopCondition) else StopCondition(cond)


def evaluate_stop_conditions(
    conditions: Sequence[StopConditionLike],
    state: StopConditionState,
) -> Tuple[str, Optional[StopCondition]]:
    """
    Return (reason, condition) of the first satisfied condition, or ("", None).
    """
    first_reason = ""
    first_cond: Optional[StopCondition] = None
    for raw in conditions:
        cond = as_stop_condition(raw)
        reason = cond(state)
        if reason and not first_reason:
            first_reason, first_cond = reason, cond
    return first_reason, first_cond


def resolve_stop_conditions(
    stop_when: Optional[Sequence[StopConditionLike]],
    max_steps: Optional[int],
) -> Tuple[List[StopCondition], int]:
    """
    Normalize (stop_when, max_steps) into (conditions, raw iteration ceiling).

    - explicit conditions win; max_steps is then ignored
    - a positive max_steps becomes [step_count_is(max_steps)]
    - neither: [step_count_is(1)] so a misconfigured agent never loops silently
    """
    if stop_when:
        return [as_stop_condition(c) for c in stop_when], SAFETY_CEILING
    if max_steps is not None and max_steps > 0:
        return [step_count_is(max_steps)], SAFETY_CEILING
    return [step_count_is(1)], SAFETY_CEILING

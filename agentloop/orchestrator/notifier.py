# ==============================
# Event Notifier
# ==============================
"""
Internal typed event bus + the two external callback surfaces subscribed to it.

Rules:
- The loop publishes each notification once, as a typed event (contracts/event_schema.py).
- AgentCallbacks (structured) exist at two levels: engine construction and per call.
  For every event type they merge into ONE listener: engine-level first, then call-level,
  synchronously on the calling path. If neither is set the listener is absent.
- LegacyCallbacks (older single-hook vocabulary) are never merged; they fire on their
  own, before the structured listener of the same notification. Tool-finish is the
  exception: the structured finish listener runs first.
- A failing listener is logged and isolated: later listeners still fire and the run
  continues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, List, Optional, Type

from agentloop.contracts.event_schema import (
    AgentActionEvent,
    AgentFinishEvent,
    RunErrorEvent,
    RunFinishEvent,
    RunStartEvent,
    StepFinishEvent,
    StepStartEvent,
    ToolCallFinishEvent,
    ToolCallOutcome,
    ToolCallRequestedEvent,
    ToolCallStartEvent,
)

logger = logging.getLogger("agentloop.events")

Listener = Callable[[Any], None]


# ==============================
# Safe Dispatch
# ==============================
def notify(event: Any, *listeners: Optional[Callable[..., None]]) -> None:
    """Call each non-None listener with `event`; a raising listener does not stop the rest."""
    for listener in listeners:
        if listener is None:
            continue
        _safe_call(listener, event)


def _safe_call(fn: Callable[..., None], *args: Any) -> None:
    try:
        fn(*args)
    except Exception:
        logger.exception(
            "callback_failed",
            extra={"event": type(args[0]).__name__ if args else None, "run_id": getattr(args[0], "run_id", None) if args else None},
        )


def merge_listener(first: Optional[Listener], second: Optional[Listener]) -> Optional[Listener]:
    """Single listener calling `first` then `second`. None when both are absent."""
    if first is None:
        return second
    if second is None:
        return first

    def _merged(event: Any) -> None:
        notify(event, first, second)

    return _merged


# ==============================
# Structured Callbacks
# ==============================
@dataclass(frozen=True)
class AgentCallbacks:
    on_start: Optional[Callable[[RunStartEvent], None]] = None
    on_step_start: Optional[Callable[[StepStartEvent], None]] = None
    on_tool_call_start: Optional[Callable[[ToolCallStartEvent], None]] = None
    on_tool_call_finish: Optional[Callable[[ToolCallFinishEvent], None]] = None
    on_step_finish: Optional[Callable[[StepFinishEvent], None]] = None
    on_finish: Optional[Callable[[RunFinishEvent], None]] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


def merge_callbacks(engine: Optional[AgentCallbacks], call: Optional[AgentCallbacks]) -> AgentCallbacks:
    engine = engine or AgentCallbacks()
    call = call or AgentCallbacks()
    return AgentCallbacks(
        **{f.name: merge_listener(getattr(engine, f.name), getattr(call, f.name)) for f in fields(AgentCallbacks)}
    )


class StructuredSubscriber:
    """Routes bus events to the merged structured listeners."""

    _ROUTES: Dict[Type[Any], str] = {
        RunStartEvent: "on_start",
        StepStartEvent: "on_step_start",
        ToolCallStartEvent: "on_tool_call_start",
        ToolCallFinishEvent: "on_tool_call_finish",
        StepFinishEvent: "on_step_finish",
        RunFinishEvent: "on_finish",
    }

    def __init__(self, callbacks: AgentCallbacks) -> None:
        self.callbacks = callbacks

    def __call__(self, event: Any) -> None:
        attr = self._ROUTES.get(type(event))
        if attr is None:
            return
        # structured tool events describe local execution only
        if isinstance(event, ToolCallStartEvent) and event.deferred:
            return
        if isinstance(event, ToolCallFinishEvent) and event.outcome != ToolCallOutcome.EXECUTED:
            return
        notify(event, getattr(self.callbacks, attr))


# ==============================
# Legacy Callbacks
# ==============================
@dataclass(frozen=True)
class LegacyCallbacks:
    on_step_start: Optional[Callable[[int], None]] = None
    on_step_finish: Optional[Callable[[Any], None]] = None
    on_tool_call: Optional[Callable[[Any], None]] = None
    on_tool_result: Optional[Callable[[Any], None]] = None
    on_finish: Optional[Callable[[Any], None]] = None

    # chain/agent/tool hooks
    on_chain_start: Optional[Callable[[str, List[Any]], None]] = None
    on_chain_end: Optional[Callable[[Any], None]] = None
    on_chain_error: Optional[Callable[[BaseException], None]] = None
    on_agent_action: Optional[Callable[[Any], None]] = None
    on_agent_finish: Optional[Callable[[Any], None]] = None
    on_tool_start: Optional[Callable[[Any], None]] = None
    on_tool_end: Optional[Callable[[Any], None]] = None
    on_tool_error: Optional[Callable[[Any, Any], None]] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


class LegacySubscriber:
    """Translates bus events into the legacy per-name hooks."""

    def __init__(self, callbacks: LegacyCallbacks) -> None:
        self.cb = callbacks

    def __call__(self, event: Any) -> None:
        cb = self.cb
        if isinstance(event, RunStartEvent):
            if cb.on_chain_start is not None:
                _safe_call(cb.on_chain_start, event.prompt, event.messages)
        elif isinstance(event, StepStartEvent):
            notify(event.step_number, cb.on_step_start)
        elif isinstance(event, AgentActionEvent):
            notify(event.action, cb.on_agent_action)
        elif isinstance(event, ToolCallRequestedEvent):
            notify(event.tool_call, cb.on_tool_call)
        elif isinstance(event, ToolCallStartEvent):
            notify(event.tool_call, cb.on_tool_start)
        elif isinstance(event, ToolCallFinishEvent):
            self._tool_finished(event)
        elif isinstance(event, StepFinishEvent):
            notify(event.step, cb.on_step_finish)
        elif isinstance(event, AgentFinishEvent):
            notify(event.finish, cb.on_agent_finish)
        elif isinstance(event, RunFinishEvent):
            notify(event.result, cb.on_chain_end, cb.on_finish)
        elif isinstance(event, RunErrorEvent):
            notify(event.error, cb.on_chain_error)

    def _tool_finished(self, event: ToolCallFinishEvent) -> None:
        cb = self.cb
        result = event.result
        if event.outcome in (ToolCallOutcome.EXECUTED, ToolCallOutcome.DEFERRED):
            notify(result, cb.on_tool_result)
        if result.error is not None:
            if cb.on_tool_error is not None:
                _safe_call(cb.on_tool_error, event.tool_call, result.error)
        else:
            notify(result, cb.on_tool_end)


# ==============================
# Bus
# ==============================
class EventBus:
    def __init__(self) -> None:
        self._subscribers: List[Listener] = []

    def subscribe(self, subscriber: Listener) -> None:
        self._subscribers.append(subscriber)

    def publish(self, event: Any) -> None:
        subscribers = self._subscribers
        if isinstance(event, ToolCallFinishEvent):
            # structured finish precedes the legacy result/end hooks
            subscribers = sorted(subscribers, key=lambda s: isinstance(s, LegacySubscriber))
        notify(event, *subscribers)

    def __len__(self) -> int:
        return len(self._subscribers)


def build_event_bus(
    *,
    legacy: Optional[LegacyCallbacks] = None,
    engine_callbacks: Optional[AgentCallbacks] = None,
    call_callbacks: Optional[AgentCallbacks] = None,
) -> EventBus:
    """Bus for one execution call: legacy hooks first, then merged structured listeners."""
    bus = EventBus()
    if legacy is not None and not legacy.is_empty():
        bus.subscribe(LegacySubscriber(legacy))
    merged = merge_callbacks(engine_callbacks, call_callbacks)
    if not merged.is_empty():
        bus.subscribe(StructuredSubscriber(merged))
    return bus

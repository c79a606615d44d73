from __future__ import annotations

import time
from typing import Any, List

import pytest

from agentloop.agents.skills import Skill
from agentloop.agents.subagents import DelegationTracker
from agentloop.contracts.errors import BackendCallError, ConfigurationError, DeadlineExceededError
from agentloop.contracts.message_schema import Message, Role, ToolResultPart
from agentloop.contracts.step_schema import FinishReason
from agentloop.contracts.tool_schema import Tool, ToolErrorCode
from agentloop.governance.approval import ApprovalPolicy
from agentloop.models.providers.scripted_provider import text_response, tool_call_response
from agentloop.orchestrator.engine import AgentConfig, ToolLoopAgent
from agentloop.orchestrator.notifier import AgentCallbacks
from agentloop.orchestrator.run_context import RunContext
from agentloop.orchestrator.stop_conditions import has_tool_call
from agentloop.orchestrator.timeouts import TimeoutConfig


def _adder(tool_factory):
    return tool_factory("add", lambda a: a["a"] + a["b"])


# ------------------------------
# Loop shape
# ------------------------------


def test_single_text_step_finishes_with_stop(make_agent) -> None:
    agent = make_agent([text_response("hello", tokens=6)])
    result = agent.execute("hi")
    assert result.text == "hello"
    assert result.finish_reason == FinishReason.STOP
    assert len(result.steps) == 1
    assert result.steps[0].step_number == 1
    assert result.stop_reason == ""
    assert result.usage.total_tokens == 6
    assert result.warnings == []


def test_tool_loop_feeds_results_back(make_agent, tool_factory) -> None:
    agent = make_agent(
        [tool_call_response("add", {"a": 1, "b": 2}, tokens=10), text_response("3", tokens=4)],
        tools=[_adder(tool_factory)],
        max_steps=5,
    )
    result = agent.execute("what is 1+2?")
    backend = agent.config.backend

    assert result.text == "3"
    assert result.finish_reason == FinishReason.STOP
    assert [s.step_number for s in result.steps] == [1, 2]
    assert [r.result for r in result.tool_results] == [3]
    assert result.steps[0].tool_results[0].tool_call_id == "call_1"
    assert result.usage.total_tokens == 14

    second = backend.requests[1].messages
    assert [m.role for m in second] == [Role.USER, Role.ASSISTANT, Role.TOOL]
    part = second[2].content[0]
    assert isinstance(part, ToolResultPart)
    assert part.tool_call_id == "call_1"
    assert part.result == 3


def test_multiple_calls_in_one_step_keep_order(make_agent, tool_factory) -> None:
    response = tool_call_response(
        "add",
        {"a": 1, "b": 1},
        call_id="c1",
        extra_calls=[{"id": "c2", "tool_name": "add", "args": {"a": 2, "b": 2}}],
    )
    agent = make_agent([response, text_response("done")], tools=[_adder(tool_factory)], max_steps=3)
    result = agent.execute("two sums")
    assert [r.tool_call_id for r in result.tool_results] == ["c1", "c2"]
    assert [r.result for r in result.tool_results] == [2, 4]
    tool_messages = [m for m in agent.config.backend.requests[1].messages if m.role == Role.TOOL]
    assert [m.content[0].tool_call_id for m in tool_messages] == ["c1", "c2"]


def test_default_budget_is_one_step(make_agent, tool_factory) -> None:
    agent = make_agent([tool_call_response("add", {"a": 1, "b": 1})], tools=[_adder(tool_factory)])
    result = agent.execute("go")
    assert len(result.steps) == 1
    assert result.finish_reason == FinishReason.LENGTH
    assert result.tool_results[0].result == 2


def test_max_steps_ends_with_length_and_warning(make_agent, tool_factory) -> None:
    script = [
        tool_call_response("add", {"a": 1, "b": 1}, call_id="c1"),
        tool_call_response("add", {"a": 2, "b": 2}, call_id="c2"),
    ]
    agent = make_agent(script, tools=[_adder(tool_factory)], max_steps=2)
    result = agent.execute("loop")
    assert len(result.steps) == 2
    assert result.finish_reason == FinishReason.LENGTH
    assert result.stop_reason == "maximum number of steps (2) reached"
    assert [(w.type, w.message) for w in result.warnings] == [
        ("max_steps_reached", "Agent reached maximum steps (2)")
    ]
    assert agent.config.backend.remaining == 0


def test_has_tool_call_stops_after_tool_runs(make_agent, recorder, tool_factory) -> None:
    ran: List[Any] = []
    final = tool_factory("final_answer", lambda a: ran.append(a) or "recorded")
    agent = make_agent(
        [tool_call_response("final_answer", {"answer": "42"}), text_response("never")],
        tools=[final],
        stop_when=[has_tool_call("final_answer")],
        legacy_callbacks=recorder.legacy(),
    )
    result = agent.execute("answer")
    assert "max_steps_hit" not in recorder.payloads("legacy.on_agent_finish")[0].metadata
    assert len(result.steps) == 1
    assert result.stop_reason == "tool 'final_answer' was called"
    assert result.finish_reason == FinishReason.TOOL_CALLS
    assert ran == [{"answer": "42"}]
    assert result.warnings == []


def test_plain_callable_stop_condition(make_agent, tool_factory) -> None:
    agent = make_agent(
        [tool_call_response("add", {"a": 1, "b": 1}), text_response("unused")],
        tools=[_adder(tool_factory)],
        stop_when=[lambda state: "enough" if len(state.steps) >= 1 else ""],
    )
    result = agent.execute("go")
    assert result.stop_reason == "enough"
    assert agent.config.backend.remaining == 1


def test_unknown_tool_does_not_abort(make_agent) -> None:
    agent = make_agent([tool_call_response("ghost"), text_response("recovered")], max_steps=3)
    result = agent.execute("try")
    assert result.text == "recovered"
    assert result.tool_results[0].error.code == ToolErrorCode.NOT_FOUND
    last = agent.config.backend.requests[1].messages[-1]
    assert last.role == Role.TOOL
    assert last.content[0].is_error is True


def test_deferred_results_enter_transcript_as_pending(make_agent, recorder) -> None:
    agent = make_agent(
        [tool_call_response("web-search", {"q": "news"}), text_response("summary")],
        tools=[Tool(name="web-search")],
        max_steps=3,
        callbacks=recorder.structured(),
    )
    result = agent.execute("search")
    assert result.tool_results[0].deferred is True
    messages = agent.config.backend.requests[1].messages
    assert [m.role for m in messages] == [Role.USER, Role.ASSISTANT, Role.TOOL]
    pending = messages[2].content[0]
    assert pending.tool_call_id == result.steps[0].tool_calls[0].id
    assert pending.result is None
    assert pending.is_error is False
    assert "on_tool_call_start" not in recorder.names()


def test_rejected_tool_call_is_reported(make_agent, tool_factory) -> None:
    ran: List[str] = []
    agent = make_agent(
        [tool_call_response("delete", {"path": "/"}), text_response("ok, not deleting")],
        tools=[tool_factory("delete", lambda a: ran.append("deleted"))],
        max_steps=3,
        approval=ApprovalPolicy(required=True, approver=lambda call: False),
    )
    result = agent.execute("clean up")
    assert ran == []
    assert result.tool_results[0].error.code == ToolErrorCode.REJECTED
    assert result.text == "ok, not deleting"


# ------------------------------
# Failures
# ------------------------------


def test_backend_failure_aborts_run(make_agent, recorder) -> None:
    agent = make_agent([RuntimeError("vendor down")], legacy_callbacks=recorder.legacy())
    with pytest.raises(BackendCallError) as info:
        agent.execute("hi")
    assert info.value.step_number == 1
    assert "legacy.on_chain_error" in recorder.names()
    assert "legacy.on_chain_end" not in recorder.names()


def test_missing_backend_is_configuration_error() -> None:
    agent = ToolLoopAgent(AgentConfig())
    with pytest.raises(ConfigurationError):
        agent.execute("hi")


def test_total_timeout_aborts_slow_backend(make_agent) -> None:
    def _slow(request):
        time.sleep(1.0)
        return text_response("late")

    agent = make_agent([_slow], timeout=TimeoutConfig(total_seconds=0.05))
    with pytest.raises(BackendCallError) as info:
        agent.execute("hi")
    assert isinstance(info.value.cause, DeadlineExceededError)
    assert info.value.cause.scope == "total"


def test_failing_listener_does_not_break_run(make_agent) -> None:
    def _explode(event):
        raise RuntimeError("listener bug")

    agent = make_agent([text_response("fine")], callbacks=AgentCallbacks(on_step_start=_explode))
    assert agent.execute("hi").text == "fine"


# ------------------------------
# Identity / notifications
# ------------------------------


def test_run_identity_is_assigned_and_propagated(make_agent, recorder) -> None:
    agent = make_agent([text_response("a"), text_response("b")], callbacks=recorder.structured())
    generated = agent.execute("hi")
    assert generated.run_id

    given = agent.execute("hi", ctx=RunContext(run_id="run-7", parent_run_id="parent-1", tags=["prod"]))
    assert given.run_id == "run-7"
    start = recorder.payloads("on_start")[-1]
    assert start.run_id == "run-7"
    assert start.parent_run_id == "parent-1"
    assert start.tags == ["prod"]
    assert start.prompt == "hi"


def test_callback_order_single_step(make_agent, recorder) -> None:
    agent = make_agent(
        [text_response("done")],
        callbacks=recorder.structured("engine."),
        legacy_callbacks=recorder.legacy(),
    )
    agent.execute("hi", callbacks=recorder.structured("call."))
    assert recorder.names() == [
        "legacy.on_chain_start",
        "engine.on_start",
        "call.on_start",
        "legacy.on_step_start",
        "engine.on_step_start",
        "call.on_step_start",
        "legacy.on_step_finish",
        "engine.on_step_finish",
        "call.on_step_finish",
        "legacy.on_agent_finish",
        "legacy.on_chain_end",
        "legacy.on_finish",
        "engine.on_finish",
        "call.on_finish",
    ]


def test_tool_notifications_order(make_agent, recorder, tool_factory) -> None:
    agent = make_agent(
        [tool_call_response("add", {"a": 1, "b": 2}), text_response("3")],
        tools=[_adder(tool_factory)],
        max_steps=3,
        callbacks=recorder.structured(),
        legacy_callbacks=recorder.legacy(),
    )
    agent.execute("sum")
    tool_names = [n for n in recorder.names() if "tool" in n or "agent_action" in n]
    assert tool_names == [
        "legacy.on_agent_action",
        "legacy.on_tool_call",
        "legacy.on_tool_start",
        "on_tool_call_start",
        "on_tool_call_finish",
        "legacy.on_tool_result",
        "legacy.on_tool_end",
    ]
    finish = recorder.payloads("on_tool_call_finish")[0]
    assert finish.result.result == 3
    assert finish.tool_call_id == "call_1"


def test_step_finish_event_carries_tool_results(make_agent, recorder, tool_factory) -> None:
    agent = make_agent(
        [tool_call_response("add", {"a": 2, "b": 2}), text_response("4")],
        tools=[_adder(tool_factory)],
        max_steps=3,
        callbacks=recorder.structured(),
    )
    agent.execute("sum")
    first = recorder.payloads("on_step_finish")[0]
    assert first.step_number == 1
    assert [r.result for r in first.tool_results] == [4]


def test_agent_finish_metadata(make_agent, recorder, tool_factory) -> None:
    agent = make_agent(
        [tool_call_response("add", {"a": 1, "b": 1})],
        tools=[_adder(tool_factory)],
        max_steps=1,
        legacy_callbacks=recorder.legacy(),
    )
    agent.execute("go")
    finish = recorder.payloads("legacy.on_agent_finish")[0]
    assert finish.metadata["total_steps"] == 1
    assert finish.metadata["stop_reason"] == "maximum number of steps (1) reached"
    assert finish.metadata["max_steps_hit"] is True
    assert finish.finish_reason == FinishReason.LENGTH


# ------------------------------
# Configuration
# ------------------------------


def test_mutators_are_copy_on_write(make_agent, tool_factory) -> None:
    agent = make_agent([], system="old", tools=[tool_factory("a")])
    snapshot = agent.config
    agent.set_system("new")
    agent.add_tool(tool_factory("b"))
    agent.add_tool(tool_factory("a", lambda args: "replaced"))
    assert snapshot.system == "old"
    assert [t.name for t in snapshot.tools] == ["a"]
    assert agent.config.system == "new"
    assert [t.name for t in agent.config.tools] == ["b", "a"]
    agent.remove_tool("b")
    assert [t.name for t in agent.config.tools] == ["a"]


def test_set_max_steps_validates(make_agent) -> None:
    agent = make_agent([])
    with pytest.raises(ValueError):
        agent.set_max_steps(0)
    agent.set_max_steps(4)
    assert agent.stop_conditions[0].budget is True


def test_in_flight_run_keeps_its_snapshot(make_agent, tool_factory) -> None:
    holder: dict = {}

    def _shrink(args):
        holder["agent"].set_max_steps(1)
        return "shrunk"

    script = [
        tool_call_response("shrink", call_id="c1"),
        tool_call_response("shrink", call_id="c2"),
        text_response("done"),
    ]
    agent = make_agent(script, tools=[tool_factory("shrink", _shrink)], max_steps=3)
    holder["agent"] = agent
    result = agent.execute("go")
    assert len(result.steps) == 3
    assert result.text == "done"
    assert agent.config.max_steps == 1


def test_prepare_call_custom_data_flows_between_steps(make_agent, tool_factory) -> None:
    seen: List[Any] = []

    def _prepare(ctx, config):
        seen.append(config.custom_data)
        return config.model_copy(update={"custom_data": (config.custom_data or 0) + 1})

    agent = make_agent(
        [tool_call_response("add", {"a": 1, "b": 1}), text_response("2")],
        tools=[_adder(tool_factory)],
        max_steps=3,
        prepare_call=_prepare,
    )
    agent.execute("go")
    assert seen == [None, 1]


def test_skill_instructions_in_system_prompt(make_agent) -> None:
    agent = make_agent([text_response("ok")], system="Base.", skill_instructions=True)
    agent.add_skill(Skill(name="summarize", handler=lambda text, ctx: text[:10], instructions="Keep it short."))
    agent.execute("hi")
    system = agent.config.backend.requests[0].system
    assert system.startswith("Base.\n\n## Available skills")
    assert "### summarize" in system
    assert "Keep it short." in system


def test_execute_with_messages_uses_given_transcript(make_agent) -> None:
    agent = make_agent([text_response("ok")])
    history = [Message.user("first"), Message.assistant("reply"), Message.user("second")]
    agent.execute_with_messages(history)
    assert [m.text() for m in agent.config.backend.requests[0].messages] == ["first", "reply", "second"]


# ------------------------------
# Delegation
# ------------------------------


def test_subagent_tool_records_delegation(make_agent) -> None:
    sub = make_agent([text_response("sub answer")])
    parent = make_agent(
        [tool_call_response("researcher", {"prompt": "dig"}), text_response("final")],
        max_steps=3,
    )
    parent.add_subagent("researcher", sub)
    parent.add_tool(parent.subagents.as_tool("researcher"))

    result = parent.execute("delegate please", ctx=RunContext(run_id="parent-run"))
    assert result.tool_results[0].result == "sub answer"
    assert len(result.delegations) == 1
    delegation = result.delegations[0]
    assert delegation.subagent_name == "researcher"
    assert delegation.prompt == "dig"
    assert delegation.ok
    assert delegation.result.run_id != "parent-run"
    assert sub.config.backend.requests[0].messages[0].text() == "dig"


def test_delegate_to_subagent_with_tracker(make_agent) -> None:
    parent = make_agent([])
    parent.add_subagent("helper", make_agent([text_response("helped")]))
    tracker = DelegationTracker()
    result = parent.delegate_to_subagent("helper", "assist", tracker=tracker)
    assert result.text == "helped"
    assert tracker.count() == 1
    assert tracker.delegations()[0].result.text == "helped"

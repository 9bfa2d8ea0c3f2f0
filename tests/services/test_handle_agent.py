"""Agent-as-tool tests — nested turns, depth limit, usage roll-up."""

import asyncio

import pytest

from agentcore.core.cancellation import CancelSignal
from agentcore.core.domain_types import (
    ErrorKind,
    PermissionDecision,
    Role,
    ToolCallStatus,
    TurnOutcome,
)
from agentcore.core.errors import (
    FatalProviderError,
    NestingDepthExceededError,
    ToolExecutionError,
)
from agentcore.core.events import TextDelta
from agentcore.core.session_state import Session
from agentcore.core.tool_types import ExecutionContext
from agentcore.services.handle_agent import AgentHandlers
from agentcore.services.permission_broker import PermissionBroker

from tests.services.mock_provider import Pause, text_response, tool_response


async def test_nested_agent_answers_parent(make_runner):
    runner, provider = make_runner([
        tool_response(("call_1", "agent", {"prompt": "List the files"})),
        tool_response(("call_n1", "ls", {})),        # nested
        text_response("README.md and src/"),          # nested
        text_response("The sub-agent found two entries."),
    ])
    session = Session(model="mock-model")

    result = await runner.run_turn(session, "Delegate a listing")

    assert result.status == TurnOutcome.COMPLETED
    assert [m.role for m in session.messages] == [Role.USER, Role.TOOL, Role.ASSISTANT]
    agent_msg = session.messages[1]
    assert agent_msg.tool_call.name == "agent"
    assert agent_msg.tool_result.content == "README.md and src/"
    # Nested history stays out of the parent session
    assert all(m.tool_call is None or m.tool_call.name != "ls" for m in session.messages)
    # 4 provider calls, 100 input tokens each, all rolled into the parent
    assert len(provider.calls) == 4
    assert session.usage.input_tokens == 400
    assert session.usage.output_tokens == 200


async def test_nested_agent_starts_from_empty_history(make_runner):
    runner, provider = make_runner([
        tool_response(("call_1", "agent", {"prompt": "Only this prompt"})),
        text_response("nested answer"),
        text_response("parent answer"),
    ])
    await runner.run_turn(Session(model="mock-model"), "Parent question")

    nested_request = provider.calls[1]["conversation"]
    assert len(nested_request) == 1
    assert nested_request[0].text == "Only this prompt"


async def test_depth_limit_refuses_nesting(make_runner):
    runner, _ = make_runner(
        [
            tool_response(("call_1", "agent", {"prompt": "Go deeper"})),
            text_response("Fine, I will do it myself."),
        ],
        max_depth=0,
    )
    session = Session(model="mock-model")
    await runner.run_turn(session, "Delegate")

    tool_result = session.messages[1].tool_result
    assert tool_result.status == ToolCallStatus.FAILED
    assert tool_result.error_code == "NESTING_DEPTH_EXCEEDED"


async def test_nested_failure_is_a_failed_tool_result(make_runner):
    runner, _ = make_runner([
        tool_response(("call_1", "agent", {"prompt": "Try"})),
        [FatalProviderError("bad request", ErrorKind.BAD_REQUEST)],   # nested
        text_response("The sub-agent failed."),
    ])
    session = Session(model="mock-model")
    result = await runner.run_turn(session, "Delegate")

    assert result.status == TurnOutcome.COMPLETED
    tool_result = session.messages[1].tool_result
    assert tool_result.error_code == "SUBAGENT_FAILED"
    assert "bad request" in tool_result.content


async def test_nested_permission_requests_reach_parent_caller(make_runner, workdir):
    broker = PermissionBroker()
    runner, _ = make_runner(
        [
            tool_response(("call_1", "agent", {"prompt": "Delete the readme"})),
            tool_response(("call_n1", "delete_file", {"path": "README.md"})),
            text_response("Deleted."),
            text_response("The sub-agent deleted it."),
        ],
        gate=broker,
    )
    session = Session(model="mock-model")
    requests = []

    def on_event(event):
        if event["type"] == "permission_request":
            requests.append(event)
            broker.resolve(event["data"]["request_id"], PermissionDecision.ALLOW)

    result = await runner.run_turn(session, "Delegate", on_event=on_event)

    assert result.status == TurnOutcome.COMPLETED
    assert len(requests) == 1
    assert requests[0]["data"]["depth"] == 1
    assert requests[0]["data"]["tool_name"] == "delete_file"
    assert not (workdir / "README.md").exists()


async def test_cancel_reaches_running_nested_agent(make_runner):
    runner, provider = make_runner([
        tool_response(("call_1", "agent", {"prompt": "Research slowly"})),
        [TextDelta("Looking into it"), Pause(30)],   # nested
        text_response("never reached"),
    ])
    session = Session(model="mock-model")
    cancel = CancelSignal()

    def on_event(event):
        if event["type"] == "tool_call":
            asyncio.get_running_loop().call_later(0.3, cancel.cancel)

    result = await asyncio.wait_for(
        runner.run_turn(session, "Delegate", cancel, on_event), timeout=5,
    )

    assert result.status == TurnOutcome.CANCELLED
    assert len(provider.calls) == 2
    assert all(m.role != Role.TOOL for m in session.messages)


async def test_handler_checks_depth_before_running():
    handlers = AgentHandlers()
    context = ExecutionContext(
        session_id="s", cancel=CancelSignal(), depth=2, max_depth=2,
    )
    with pytest.raises(NestingDepthExceededError):
        await handlers.agent(context, {"prompt": "x"})


async def test_unbound_handler_raises():
    context = ExecutionContext(session_id="s", cancel=CancelSignal())
    with pytest.raises(ToolExecutionError):
        await AgentHandlers().agent(context, {"prompt": "x"})

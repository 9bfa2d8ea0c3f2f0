"""Session State — turn status transitions, usage counters, history rules."""

import pytest

from agentcore.core.domain_types import Role, ToolCallStatus, TurnOutcome, TurnStatus
from agentcore.core.errors import ConcurrencyError
from agentcore.core.messages import ToolCall, assistant_message, user_message
from agentcore.core.session_state import Session, UsageCounters


def test_new_session_is_idle():
    session = Session(model="m")
    assert session.turn_status == TurnStatus.IDLE
    assert not session.is_running
    assert session.messages == []


def test_begin_turn_twice_conflicts():
    session = Session(model="m")
    session.begin_turn()
    with pytest.raises(ConcurrencyError) as excinfo:
        session.begin_turn()
    assert excinfo.value.http_status == 409


@pytest.mark.parametrize("outcome, status", [
    (TurnOutcome.COMPLETED, TurnStatus.IDLE),
    (TurnOutcome.CANCELLED, TurnStatus.CANCELLED),
    (TurnOutcome.ERRORED, TurnStatus.ERRORED),
])
def test_finish_turn_sets_terminal_status(outcome, status):
    session = Session(model="m")
    session.begin_turn()
    assert session.finish_turn(outcome) is True
    assert session.turn_status == status


def test_finish_turn_only_once():
    session = Session(model="m")
    session.begin_turn()
    session.finish_turn(TurnOutcome.CANCELLED)
    assert session.finish_turn(TurnOutcome.ERRORED) is False
    assert session.turn_status == TurnStatus.CANCELLED


def test_new_turn_allowed_after_error():
    session = Session(model="m")
    session.begin_turn()
    session.finish_turn(TurnOutcome.ERRORED)
    session.begin_turn()
    assert session.is_running


def test_usage_accumulates_and_never_decreases():
    usage = UsageCounters()
    usage.add(100, 20, 0.5)
    usage.add(-50, -5, -1.0)
    usage.add(30, 0, 0.1)

    assert usage.input_tokens == 130
    assert usage.output_tokens == 20
    assert usage.total_tokens == 150
    assert usage.cost == pytest.approx(0.6)
    assert usage.last_input_tokens == 30


def test_output_only_report_keeps_last_prompt_size():
    usage = UsageCounters()
    usage.add(900, 0, 0)
    usage.add(0, 40, 0)
    assert usage.last_input_tokens == 900


def test_title_comes_from_first_user_message():
    session = Session(model="m")
    session.append(user_message("Fix the failing build\nmore details"))
    session.append(user_message("Second message"))
    assert session.title == "Fix the failing build"


def test_long_title_is_truncated():
    session = Session(model="m")
    session.append(user_message("x" * 200))
    assert len(session.title) == 80
    assert session.title.endswith("...")


def test_replace_history_refused_during_turn():
    session = Session(model="m")
    session.append(user_message("hi"))
    session.begin_turn()
    with pytest.raises(ConcurrencyError):
        session.replace_history([])


def test_steps_increase():
    session = Session(model="m")
    assert [session.next_step() for _ in range(3)] == [1, 2, 3]


def test_to_dict_is_json_friendly():
    session = Session(model="m")
    session.append(user_message("hi", step=1))
    session.append(assistant_message("hello", step=2))
    data = session.to_dict()

    assert data["turn_status"] == "idle"
    assert [m["role"] for m in data["messages"]] == [Role.USER.value, Role.ASSISTANT.value]
    assert data["messages"][1]["parts"] == [{"type": "text", "text": "hello"}]


# ─── Tool call lifecycle ────────────────────────────────────────

def test_tool_call_follows_allowed_transitions():
    call = ToolCall("c1", "write")
    call.transition(ToolCallStatus.PERMISSION_WAIT)
    call.transition(ToolCallStatus.RUNNING)
    call.transition(ToolCallStatus.COMPLETED)
    assert call.status.terminal


def test_terminal_tool_call_cannot_move():
    call = ToolCall("c1", "ls")
    call.transition(ToolCallStatus.FAILED)
    with pytest.raises(ValueError):
        call.transition(ToolCallStatus.RUNNING)


def test_pending_cannot_complete_without_running():
    call = ToolCall("c1", "ls")
    with pytest.raises(ValueError):
        call.transition(ToolCallStatus.COMPLETED)

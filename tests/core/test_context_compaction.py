"""Context Compaction — pure split / threshold / splice helpers."""

from agentcore.core.context_compaction import (
    SUMMARY_PREFIX,
    build_summary_message,
    should_summarize,
    splice_summary,
    split_for_summary,
)
from agentcore.core.domain_types import Role
from agentcore.core.messages import (
    ToolCall,
    ToolResultPart,
    assistant_message,
    tool_message,
    user_message,
)


def _tool(step, call_id="c"):
    call = ToolCall(call_id, "ls", "{}")
    return tool_message(call, ToolResultPart(call_id, "ls", "ok"), step)


def test_nothing_to_summarize_when_history_is_short():
    messages = [user_message("a", 1), assistant_message("b", 2)]
    head, tail = split_for_summary(messages, keep_last_n=5)
    assert head == []
    assert tail == messages


def test_split_keeps_last_n():
    messages = [
        user_message("q1", 1), assistant_message("a1", 2),
        user_message("q2", 3), assistant_message("a2", 4),
    ]
    head, tail = split_for_summary(messages, keep_last_n=2)
    assert [m.text for m in head] == ["q1", "a1"]
    assert [m.text for m in tail] == ["q2", "a2"]


def test_split_never_starts_tail_inside_a_tool_round():
    messages = [
        user_message("q1", 1),
        assistant_message("checking", 2),
        _tool(2, "c1"),
        _tool(2, "c2"),
        assistant_message("done", 3),
    ]
    head, tail = split_for_summary(messages, keep_last_n=2)
    # cut at index 3 would orphan c2 from its round; it moves back to 1
    assert [m.role for m in head] == [Role.USER]
    assert tail[0].role == Role.ASSISTANT
    assert tail[0].text == "checking"


def test_split_input_is_not_mutated():
    messages = [user_message("q1", 1), assistant_message("a1", 2), user_message("q2", 3)]
    snapshot = list(messages)
    split_for_summary(messages, keep_last_n=1)
    assert messages == snapshot


def test_should_summarize_threshold():
    assert should_summarize(8000, 10_000, 0.8) is True
    assert should_summarize(7999, 10_000, 0.8) is False


def test_should_summarize_disabled():
    assert should_summarize(10**9, 10_000, 0.0) is False
    assert should_summarize(10**9, 0, 0.5) is False


def test_summary_message_shape():
    msg = build_summary_message("  the gist  ")
    assert msg.role == Role.USER
    assert msg.summary is True
    assert msg.text == SUMMARY_PREFIX + "the gist"


def test_splice_puts_summary_first():
    summary = build_summary_message("gist")
    tail = [user_message("q", 3)]
    assert splice_summary(summary, tail) == [summary, tail[0]]

"""OpenAI Provider — chunk mapping, quota classification, wire conversion."""

from types import SimpleNamespace as NS

import httpx
import openai
import pytest

from agentcore.core.domain_types import ErrorKind, ToolCallStatus
from agentcore.core.errors import ErrorContext, FatalProviderError, TransientProviderError
from agentcore.core.events import (
    Completed,
    Failed,
    TextDelta,
    ToolCallArgDelta,
    ToolCallEnd,
    ToolCallStart,
    UsageReport,
)
from agentcore.core.messages import (
    ToolCall,
    ToolResultPart,
    assistant_message,
    tool_message,
    user_message,
)
from agentcore.core.tool_types import ToolInfo
from agentcore.infrastructure.providers.openai_client import (
    OpenAIProvider,
    to_openai_messages,
    to_openai_tools,
)
from tests.infrastructure.fake_sdk import FakeCreate, FakeStream
from tests.services.mock_provider import mock_config

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _provider(*results, **config):
    completions = FakeCreate(results)
    provider = OpenAIProvider(
        mock_config(provider="openai", **config),
        client=NS(chat=NS(completions=completions)),
        max_retries=0, base_delay_ms=0,
    )
    return provider, completions


def _chunk(content=None, tool_calls=None, finish_reason=None, usage=None, empty=False):
    choices = [] if empty else [
        NS(delta=NS(content=content, tool_calls=tool_calls), finish_reason=finish_reason),
    ]
    return NS(choices=choices, usage=usage)


def _call(index, arguments="", id=None, name=None):
    function = NS(name=name, arguments=arguments)
    return NS(index=index, id=id, function=function)


async def _collect(provider):
    return [e async for e in provider.stream([user_message("hi", 1)], [])]


def _status_error(status, body=None, cls=openai.APIStatusError):
    response = httpx.Response(status, request=_REQUEST)
    return cls("request failed", response=response, body=body)


# ==============================================================================
# Stream chunks
# ==============================================================================


async def test_parallel_calls_end_when_next_index_starts():
    stream = FakeStream([
        _chunk(content="Checking"),
        _chunk(tool_calls=[_call(0, id="call_a", name="ls")]),
        _chunk(tool_calls=[_call(0, '{"path": ".')]),
        _chunk(tool_calls=[_call(0, '"}')]),
        _chunk(tool_calls=[_call(1, '{"path": "a"}', id="call_b", name="read_file")]),
        _chunk(finish_reason="tool_calls"),
        _chunk(empty=True, usage=NS(prompt_tokens=80, completion_tokens=12)),
    ])
    provider, completions = _provider(stream)
    events = await _collect(provider)

    assert events == [
        TextDelta("Checking"),
        ToolCallStart("call_a", "ls"),
        ToolCallArgDelta("call_a", '{"path": ".'),
        ToolCallArgDelta("call_a", '"}'),
        ToolCallEnd("call_a"),
        ToolCallStart("call_b", "read_file"),
        ToolCallArgDelta("call_b", '{"path": "a"}'),
        ToolCallEnd("call_b"),
        UsageReport(80, 12, provider.config.cost(80, 12)),
        Completed("tool_calls"),
    ]
    assert completions.requests[0]["stream_options"] == {"include_usage": True}
    assert stream.closed


async def test_missing_call_id_is_generated():
    stream = FakeStream([
        _chunk(tool_calls=[_call(0, "{}", name="ls")]),
        _chunk(finish_reason="tool_calls"),
    ])
    provider, _ = _provider(stream)
    events = await _collect(provider)

    start = events[0]
    assert isinstance(start, ToolCallStart)
    assert start.id.startswith("call_")
    assert events[-2] == ToolCallEnd(start.id)


async def test_fragment_for_finished_call_is_a_parse_error():
    stream = FakeStream([
        _chunk(tool_calls=[_call(0, id="a", name="ls")]),
        _chunk(tool_calls=[_call(1, id="b", name="ls")]),
        _chunk(tool_calls=[_call(0, "{}")]),
    ])
    provider, _ = _provider(stream)
    events = await _collect(provider)

    assert isinstance(events[-1], Failed)
    assert events[-1].error_kind == ErrorKind.PARSE_ERROR


async def test_stream_without_finish_reason_has_no_completed():
    provider, _ = _provider(FakeStream([_chunk(content="cut off")]))
    events = await _collect(provider)
    assert events == [TextDelta("cut off")]


async def test_non_streaming_response():
    tool_call = NS(id="call_z", function=NS(name="ls", arguments='{"path": "."}'))
    response = NS(
        choices=[NS(message=NS(content=None, tool_calls=[tool_call]), finish_reason="tool_calls")],
        usage=NS(prompt_tokens=5, completion_tokens=3),
    )
    provider, completions = _provider(response, supports_streaming=False)
    events = await _collect(provider)

    assert "stream" not in completions.requests[0]
    assert events[:3] == [
        ToolCallStart("call_z", "ls"),
        ToolCallArgDelta("call_z", '{"path": "."}'),
        ToolCallEnd("call_z"),
    ]
    assert events[-1] == Completed("tool_calls")


# ==============================================================================
# Error mapping
# ==============================================================================


@pytest.mark.parametrize("exc, kind, transient", [
    (_status_error(429, {"code": "insufficient_quota"}, openai.RateLimitError), ErrorKind.QUOTA, False),
    (_status_error(429, {"code": "rate_limit_exceeded"}, openai.RateLimitError), ErrorKind.RATE_LIMIT, True),
    (_status_error(503), ErrorKind.SERVER_ERROR, True),
    (_status_error(401, cls=openai.AuthenticationError), ErrorKind.AUTH, False),
    (_status_error(400, cls=openai.BadRequestError), ErrorKind.BAD_REQUEST, False),
    (openai.APITimeoutError(request=_REQUEST), ErrorKind.TIMEOUT, True),
    (openai.APIConnectionError(request=_REQUEST), ErrorKind.CONNECTION, True),
])
def test_error_mapping(exc, kind, transient):
    provider, _ = _provider()
    error = provider._map_error(exc, ErrorContext(provider="openai"))

    assert error.error_kind == kind
    expected = TransientProviderError if transient else FatalProviderError
    assert isinstance(error, expected)


# ==============================================================================
# Wire conversion
# ==============================================================================


def test_step_rebuilt_as_one_assistant_message_with_tool_calls():
    call = ToolCall("c1", "ls", "")
    conversation = [
        user_message("list", 1),
        assistant_message("Looking", 2),
        tool_message(call, ToolResultPart("c1", "ls", "denied", ToolCallStatus.FAILED), 2),
        assistant_message("Could not", 3),
    ]
    wire = to_openai_messages(conversation, system="sys")

    assert [m["role"] for m in wire] == ["system", "user", "assistant", "tool", "assistant"]
    assert wire[2]["content"] == "Looking"
    assert wire[2]["tool_calls"][0]["function"] == {"name": "ls", "arguments": "{}"}
    assert wire[3] == {"role": "tool", "tool_call_id": "c1", "content": "denied"}


def test_tool_round_without_text_has_null_content():
    call = ToolCall("c1", "ls", "{}")
    wire = to_openai_messages([
        user_message("go", 1),
        tool_message(call, ToolResultPart("c1", "ls", "ok"), 2),
    ])
    assert wire[1]["role"] == "assistant"
    assert wire[1]["content"] is None
    assert wire[2]["role"] == "tool"


def test_tools_are_functions():
    wire = to_openai_tools([ToolInfo("ls", "List")])
    assert wire[0]["type"] == "function"
    assert wire[0]["function"]["name"] == "ls"
    assert wire[0]["function"]["parameters"]["type"] == "object"

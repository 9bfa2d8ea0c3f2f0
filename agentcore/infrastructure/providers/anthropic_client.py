"""Anthropic Provider — Messages API over AsyncAnthropic, normalized to ProviderEvents.

Invariants:
    - Assistant tool requests are rebuilt as one assistant message of tool_use blocks,
      answered by one user message of tool_result blocks (grouped by Message.step)
    - Consecutive same-role messages are merged (the API requires alternation)
    - content_block_stop of a tool_use block -> ToolCallEnd for that block's id
    - Input usage reported at message_start, output usage at message_delta, so a
      failed attempt still reports what it consumed
    - SDK retries disabled (max_retries=0): ProviderClient owns the retry policy

Design Decisions:
    - Raw event stream (messages.create(stream=True)) over the SDK stream helper:
      every frame maps 1:1 to a ProviderEvent, nothing buffered
    - HTTP 529 and in-stream overloaded_error are transient (OVERLOADED)
"""

import json
import logging
from typing import Any, AsyncIterator

import anthropic
from anthropic import (
    APIConnectionError,
    APIResponseValidationError,
    APIStatusError,
    APITimeoutError,
    RateLimitError,
)

from agentcore.core.domain_types import ErrorKind, ProviderName, Role
from agentcore.core.errors import (
    ErrorContext,
    FatalProviderError,
    ProviderError,
    TransientProviderError,
)
from agentcore.core.events import (
    Completed,
    ProviderEvent,
    TextDelta,
    ToolCallArgDelta,
    ToolCallEnd,
    ToolCallStart,
)
from agentcore.core.messages import Message
from agentcore.core.tool_types import ToolInfo
from agentcore.infrastructure.providers.base import (
    ModelConfig,
    ProviderClient,
    extract_retry_after_ms,
)

logger = logging.getLogger(__name__)

_OVERLOADED_STATUS = 529

# In-stream `error` events arrive on a 200 response; classify by body type
_TRANSIENT_BODY_TYPES = {
    "overloaded_error": ErrorKind.OVERLOADED,
    "rate_limit_error": ErrorKind.RATE_LIMIT,
    "api_error": ErrorKind.SERVER_ERROR,
}


class AnthropicProvider(ProviderClient):
    """Anthropic Messages API variant."""

    name = ProviderName.ANTHROPIC

    def __init__(self, config: ModelConfig, *, client: Any = None, **kwargs):
        super().__init__(config, **kwargs)
        self.client = client or anthropic.AsyncAnthropic(
            api_key=config.api_key or None,
            base_url=config.base_url or None,
            timeout=self.timeout_seconds,
            max_retries=0,
        )

    # ── Requests ────────────────────────────────────────────────

    async def _stream_once(
        self, conversation: list[Message], tools: list[ToolInfo], system: str | None,
    ) -> AsyncIterator[ProviderEvent]:
        stream = await self.client.messages.create(
            **self._request_kwargs(conversation, tools, system), stream=True,
        )
        try:
            async for event in self._convert_stream(stream):
                yield event
        finally:
            await stream.close()

    async def _request_once(
        self, conversation: list[Message], tools: list[ToolInfo], system: str | None,
    ) -> list[ProviderEvent]:
        response = await self.client.messages.create(
            **self._request_kwargs(conversation, tools, system),
        )
        return self._convert_response(response)

    def _request_kwargs(
        self, conversation: list[Message], tools: list[ToolInfo], system: str | None,
    ) -> dict:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "messages": to_anthropic_messages(conversation),
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = to_anthropic_tools(tools)
        return kwargs

    # ── Frame conversion ────────────────────────────────────────

    async def _convert_stream(self, stream) -> AsyncIterator[ProviderEvent]:
        tool_blocks: dict[int, str] = {}
        stop_reason = "end_turn"
        async for event in stream:
            etype = event.type
            if etype == "message_start":
                usage = event.message.usage
                yield self.usage_event(_input_tokens(usage), 0)
            elif etype == "content_block_start":
                block = event.content_block
                if block.type == "tool_use":
                    tool_blocks[event.index] = block.id
                    yield ToolCallStart(block.id, block.name)
                elif block.type == "text" and getattr(block, "text", ""):
                    yield TextDelta(block.text)
            elif etype == "content_block_delta":
                delta = event.delta
                if delta.type == "text_delta":
                    yield TextDelta(delta.text)
                elif delta.type == "input_json_delta":
                    call_id = tool_blocks.get(event.index)
                    if call_id is None:
                        raise FatalProviderError(
                            f"input_json_delta for non-tool block {event.index}",
                            ErrorKind.PARSE_ERROR,
                        )
                    yield ToolCallArgDelta(call_id, delta.partial_json)
            elif etype == "content_block_stop":
                if event.index in tool_blocks:
                    yield ToolCallEnd(tool_blocks[event.index])
            elif etype == "message_delta":
                if event.delta.stop_reason:
                    stop_reason = event.delta.stop_reason
                usage = getattr(event, "usage", None)
                if usage is not None:
                    yield self.usage_event(0, usage.output_tokens or 0)
            elif etype == "message_stop":
                yield Completed(stop_reason)
                return

    def _convert_response(self, response) -> list[ProviderEvent]:
        events: list[ProviderEvent] = []
        for block in response.content:
            if block.type == "text":
                if block.text:
                    events.append(TextDelta(block.text))
            elif block.type == "tool_use":
                events.append(ToolCallStart(block.id, block.name))
                events.append(ToolCallArgDelta(
                    block.id, json.dumps(block.input, ensure_ascii=False),
                ))
                events.append(ToolCallEnd(block.id))
        usage = response.usage
        events.append(self.usage_event(_input_tokens(usage), usage.output_tokens))
        events.append(Completed(response.stop_reason or "end_turn"))
        return events

    # ── Error mapping ───────────────────────────────────────────

    def _map_error(self, exc: Exception, context: ErrorContext) -> ProviderError:
        if isinstance(exc, APITimeoutError):
            return TransientProviderError("API timeout", ErrorKind.TIMEOUT, context=context)
        if isinstance(exc, RateLimitError):
            return TransientProviderError(
                "Rate limit exceeded", ErrorKind.RATE_LIMIT,
                extract_retry_after_ms(exc), context,
            )
        if isinstance(exc, APIConnectionError):
            return TransientProviderError(
                f"Connection error: {exc}", ErrorKind.CONNECTION, context=context,
            )
        if isinstance(exc, APIResponseValidationError):
            return FatalProviderError(str(exc), ErrorKind.PARSE_ERROR, context)
        if isinstance(exc, APIStatusError):
            return _map_status_error(exc, context)
        if isinstance(exc, (json.JSONDecodeError, KeyError, AttributeError)):
            return FatalProviderError(
                f"Malformed response frame: {exc}", ErrorKind.PARSE_ERROR, context,
            )
        logger.error(f"Unexpected Anthropic error: {exc}", exc_info=True)
        return FatalProviderError(str(exc), ErrorKind.UNKNOWN, context)


def _map_status_error(exc: APIStatusError, context: ErrorContext) -> ProviderError:
    status = exc.status_code
    body_type = _body_error_type(exc)
    if status == _OVERLOADED_STATUS:
        return TransientProviderError(
            "Anthropic API overloaded (529)", ErrorKind.OVERLOADED, context=context,
        )
    if body_type in _TRANSIENT_BODY_TYPES:
        return TransientProviderError(
            str(exc), _TRANSIENT_BODY_TYPES[body_type],
            extract_retry_after_ms(exc), context,
        )
    if status >= 500:
        return TransientProviderError(
            f"Server error ({status})", ErrorKind.SERVER_ERROR, context=context,
        )
    if status in (401, 403):
        return FatalProviderError(str(exc), ErrorKind.AUTH, context)
    if "credit balance" in str(exc).lower():
        return FatalProviderError(str(exc), ErrorKind.QUOTA, context)
    return FatalProviderError(str(exc), ErrorKind.BAD_REQUEST, context)


def _body_error_type(exc: APIStatusError) -> str | None:
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("type")
    return None


def _input_tokens(usage) -> int:
    """Prompt size including cached prefix tokens."""
    return (
        (usage.input_tokens or 0)
        + (getattr(usage, "cache_read_input_tokens", 0) or 0)
        + (getattr(usage, "cache_creation_input_tokens", 0) or 0)
    )


# ─── Wire conversion ────────────────────────────────────────────

def to_anthropic_tools(tools: list[ToolInfo]) -> list[dict]:
    return [
        {
            "name": t.name,
            "description": t.description,
            "input_schema": t.parameters,
        }
        for t in tools
    ]


def to_anthropic_messages(conversation: list[Message]) -> list[dict]:
    """Convert vendor-agnostic Messages to Anthropic message params."""
    out: list[dict] = []

    def add(role: str, block: dict) -> None:
        if out and out[-1]["role"] == role:
            out[-1]["content"].append(block)
        else:
            out.append({"role": role, "content": [block]})

    i = 0
    while i < len(conversation):
        msg = conversation[i]
        if msg.role == Role.TOOL:
            j = i
            while (
                j < len(conversation)
                and conversation[j].role == Role.TOOL
                and conversation[j].step == msg.step
            ):
                j += 1
            group = conversation[i:j]
            for m in group:
                call = m.tool_call
                add("assistant", {
                    "type": "tool_use", "id": call.id, "name": call.name,
                    "input": _arguments_object(call.arguments),
                })
            for m in group:
                result = m.tool_result
                add("user", {
                    "type": "tool_result", "tool_use_id": result.tool_call_id,
                    "content": result.content, "is_error": result.is_error,
                })
            i = j
            continue
        if msg.text:
            role = "assistant" if msg.role == Role.ASSISTANT else "user"
            add(role, {"type": "text", "text": msg.text})
        i += 1
    return out


def _arguments_object(raw: str) -> dict:
    """tool_use.input must be an object; unparsable arguments replay as {}."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}

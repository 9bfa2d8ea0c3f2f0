"""OpenAI Provider — Chat Completions over AsyncOpenAI, normalized to ProviderEvents.

Invariants:
    - Assistant text and the tool calls of the same step are rebuilt as ONE assistant
      message with tool_calls, followed by one `tool` message per result
    - Chat Completions has no per-call end marker: a call ends when the next call
      index starts or the choice reports finish_reason
    - Completed is emitted after the stream ends, so the trailing usage chunk
      (stream_options.include_usage) is reported first
    - 429 with code insufficient_quota is fatal (QUOTA), other 429s are retried
    - base_url makes the same variant serve OpenAI-compatible endpoints

Design Decisions:
    - Missing call ids (some compatible servers) get a generated id at start
"""

import json
import logging
import uuid
from typing import Any, AsyncIterator

import openai
from openai import (
    APIConnectionError,
    APIError,
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


class OpenAIProvider(ProviderClient):
    """OpenAI Chat Completions variant (and compatible endpoints)."""

    name = ProviderName.OPENAI

    def __init__(self, config: ModelConfig, *, client: Any = None, **kwargs):
        super().__init__(config, **kwargs)
        self.client = client or openai.AsyncOpenAI(
            api_key=config.api_key or None,
            base_url=config.base_url or None,
            timeout=self.timeout_seconds,
            max_retries=0,
        )

    # ── Requests ────────────────────────────────────────────────

    async def _stream_once(
        self, conversation: list[Message], tools: list[ToolInfo], system: str | None,
    ) -> AsyncIterator[ProviderEvent]:
        stream = await self.client.chat.completions.create(
            **self._request_kwargs(conversation, tools, system),
            stream=True,
            stream_options={"include_usage": True},
        )
        try:
            async for event in self._convert_stream(stream):
                yield event
        finally:
            await stream.close()

    async def _request_once(
        self, conversation: list[Message], tools: list[ToolInfo], system: str | None,
    ) -> list[ProviderEvent]:
        response = await self.client.chat.completions.create(
            **self._request_kwargs(conversation, tools, system),
        )
        return self._convert_response(response)

    def _request_kwargs(
        self, conversation: list[Message], tools: list[ToolInfo], system: str | None,
    ) -> dict:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "messages": to_openai_messages(conversation, system),
        }
        if tools:
            kwargs["tools"] = to_openai_tools(tools)
        return kwargs

    # ── Frame conversion ────────────────────────────────────────

    async def _convert_stream(self, stream) -> AsyncIterator[ProviderEvent]:
        ids_by_index: dict[int, str] = {}
        open_index: int | None = None
        finish_reason: str | None = None

        async for chunk in stream:
            usage = getattr(chunk, "usage", None)
            if usage is not None:
                yield self.usage_event(
                    usage.prompt_tokens or 0, usage.completion_tokens or 0,
                )
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta
            if delta is not None and delta.content:
                yield TextDelta(delta.content)
            for tc in (getattr(delta, "tool_calls", None) or []):
                index = tc.index if tc.index is not None else 0
                if index not in ids_by_index:
                    if open_index is not None:
                        yield ToolCallEnd(ids_by_index[open_index])
                    call_id = tc.id or f"call_{uuid.uuid4().hex[:24]}"
                    name = tc.function.name if tc.function else None
                    if not name:
                        raise FatalProviderError(
                            f"tool call at index {index} started without a name",
                            ErrorKind.PARSE_ERROR,
                        )
                    ids_by_index[index] = call_id
                    open_index = index
                    yield ToolCallStart(call_id, name)
                elif index != open_index:
                    raise FatalProviderError(
                        f"fragment for already finished tool call index {index}",
                        ErrorKind.PARSE_ERROR,
                    )
                if tc.function and tc.function.arguments:
                    yield ToolCallArgDelta(ids_by_index[index], tc.function.arguments)
            if choice.finish_reason:
                if open_index is not None:
                    yield ToolCallEnd(ids_by_index[open_index])
                    open_index = None
                finish_reason = choice.finish_reason

        if finish_reason is not None:
            yield Completed(finish_reason)

    def _convert_response(self, response) -> list[ProviderEvent]:
        events: list[ProviderEvent] = []
        choice = response.choices[0]
        message = choice.message
        if message.content:
            events.append(TextDelta(message.content))
        for tc in (message.tool_calls or []):
            events.append(ToolCallStart(tc.id, tc.function.name))
            if tc.function.arguments:
                events.append(ToolCallArgDelta(tc.id, tc.function.arguments))
            events.append(ToolCallEnd(tc.id))
        if response.usage is not None:
            events.append(self.usage_event(
                response.usage.prompt_tokens or 0,
                response.usage.completion_tokens or 0,
            ))
        events.append(Completed(choice.finish_reason or "stop"))
        return events

    # ── Error mapping ───────────────────────────────────────────

    def _map_error(self, exc: Exception, context: ErrorContext) -> ProviderError:
        if isinstance(exc, APITimeoutError):
            return TransientProviderError("API timeout", ErrorKind.TIMEOUT, context=context)
        if isinstance(exc, RateLimitError):
            if _error_code(exc) == "insufficient_quota":
                return FatalProviderError(
                    "Quota exhausted (insufficient_quota)", ErrorKind.QUOTA, context,
                )
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
            status = exc.status_code
            if status >= 500:
                return TransientProviderError(
                    f"Server error ({status})", ErrorKind.SERVER_ERROR, context=context,
                )
            if status in (401, 403):
                return FatalProviderError(str(exc), ErrorKind.AUTH, context)
            return FatalProviderError(str(exc), ErrorKind.BAD_REQUEST, context)
        if isinstance(exc, APIError):
            # Error frame inside an otherwise successful stream
            return TransientProviderError(
                f"Stream error: {exc}", ErrorKind.SERVER_ERROR, context=context,
            )
        if isinstance(exc, (json.JSONDecodeError, KeyError, AttributeError)):
            return FatalProviderError(
                f"Malformed response frame: {exc}", ErrorKind.PARSE_ERROR, context,
            )
        logger.error(f"Unexpected OpenAI error: {exc}", exc_info=True)
        return FatalProviderError(str(exc), ErrorKind.UNKNOWN, context)


def _error_code(exc: APIError) -> str | None:
    code = getattr(exc, "code", None)
    if code:
        return code
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict):
            return error.get("code")
    return None


# ─── Wire conversion ────────────────────────────────────────────

def to_openai_tools(tools: list[ToolInfo]) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.parameters,
            },
        }
        for t in tools
    ]


def to_openai_messages(
    conversation: list[Message], system: str | None = None,
) -> list[dict]:
    """Convert vendor-agnostic Messages to Chat Completions messages."""
    out: list[dict] = []
    if system:
        out.append({"role": "system", "content": system})

    i = 0
    n = len(conversation)
    while i < n:
        msg = conversation[i]
        if msg.role == Role.USER:
            if msg.text:
                out.append({"role": "user", "content": msg.text})
            i += 1
            continue

        # Assistant text and/or the tool round of the same step
        text = msg.text if msg.role == Role.ASSISTANT else ""
        j = i + 1 if msg.role == Role.ASSISTANT else i
        group: list[Message] = []
        while j < n and conversation[j].role == Role.TOOL and conversation[j].step == msg.step:
            group.append(conversation[j])
            j += 1

        entry: dict[str, Any] = {"role": "assistant", "content": text or None}
        if group:
            entry["tool_calls"] = [
                {
                    "id": m.tool_call.id,
                    "type": "function",
                    "function": {
                        "name": m.tool_call.name,
                        "arguments": m.tool_call.arguments or "{}",
                    },
                }
                for m in group
            ]
        if text or group:
            out.append(entry)
        for m in group:
            out.append({
                "role": "tool",
                "tool_call_id": m.tool_result.tool_call_id,
                "content": m.tool_result.content,
            })
        i = j
    return out

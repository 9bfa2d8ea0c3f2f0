"""Provider Client base — retry, backoff and cancellation around one vendor call.

Invariants:
    - stream() yields ProviderEvents in vendor emission order; finite, not restartable
    - Transient failures (rate limit, 5xx, 529 overloaded, connection, timeout) are
      retried up to max_retries, re-issuing the ENTIRE request
    - A retried attempt that already emitted events is announced with
      Failed(kind, retryable=True) so the caller discards its partial output;
      an attempt that emitted nothing is retried silently
    - Retries exhausted or non-retryable failure -> exactly one Failed(kind, False), then stop
    - Cancellation stops the sequence with no further events and no error,
      including during backoff sleeps
    - Usage cost is always computed from ModelConfig prices

Design Decisions:
    - Vendor subclasses implement only wire conversion, frame conversion and
      error mapping; the retry loop lives here once
    - Exponential backoff with ±25% jitter, Retry-After honoured when present
"""

import logging
import random
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator

from agentcore.core.cancellation import CancelSignal
from agentcore.core.domain_types import ErrorKind, ProviderName
from agentcore.core.errors import (
    CancellationRequested,
    ErrorContext,
    FatalProviderError,
    ProviderError,
)
from agentcore.core.events import (
    Completed,
    Failed,
    ProviderEvent,
    TextDelta,
    UsageReport,
)
from agentcore.core.messages import Message
from agentcore.core.tool_types import ToolInfo, UsageDelta

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelConfig:
    """Model configuration consumed by a Provider Client at construction."""
    provider: str
    model: str
    api_key: str = ""
    base_url: str | None = None
    context_window: int = 200_000
    max_tokens: int = 8192
    supports_tools: bool = True
    supports_streaming: bool = True
    cost_per_1m_input: float = 0.0
    cost_per_1m_output: float = 0.0

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens * self.cost_per_1m_input
            + output_tokens * self.cost_per_1m_output
        ) / 1_000_000


class ProviderClient:
    """Base class for vendor variants. Subclasses set `name` and implement
    _stream_once, _request_once and _map_error."""

    name: ProviderName

    def __init__(
        self,
        config: ModelConfig,
        *,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 60_000,
        timeout_seconds: float = 300,
    ):
        self.config = config
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.timeout_seconds = timeout_seconds

    # ── Public contract ─────────────────────────────────────────

    async def stream(
        self,
        conversation: list[Message],
        tools: list[ToolInfo],
        *,
        system: str | None = None,
        cancel: CancelSignal | None = None,
    ) -> AsyncIterator[ProviderEvent]:
        """Stream one model response as normalized ProviderEvents."""
        cancel = cancel or CancelSignal()
        offered = list(tools) if self.config.supports_tools else []

        for attempt in range(self.max_retries + 1):
            if cancel.cancelled:
                return
            emitted = False
            try:
                async with aclosing(
                    self._attempt(conversation, offered, system),
                ) as events:
                    async for event in events:
                        if cancel.cancelled:
                            return
                        emitted = True
                        yield event
                return
            except Exception as exc:
                error = self._to_provider_error(exc, attempt)

            if isinstance(error, FatalProviderError):
                logger.error(
                    f"Provider call failed: {error.message}",
                    extra=self._log_extra(attempt, error),
                )
                yield Failed(error.error_kind, False, error.message)
                return

            if attempt >= self.max_retries:
                message = (
                    f"retries exhausted after {attempt + 1} attempts "
                    f"(last error: {error.error_kind.value}): {error.message}"
                )
                logger.error(message, extra=self._log_extra(attempt, error))
                yield Failed(ErrorKind.RETRIES_EXHAUSTED, False, message)
                return

            delay_ms = error.retry_after_ms or self._backoff(attempt)
            logger.warning(
                f"Transient provider error, retry after {delay_ms}ms "
                f"(attempt {attempt + 1}): {error.message}",
                extra=self._log_extra(attempt, error),
            )
            if emitted:
                yield Failed(error.error_kind, True, error.message)
            if await cancel.sleep(delay_ms / 1000):
                return

    async def complete(
        self,
        conversation: list[Message],
        *,
        system: str | None = None,
        cancel: CancelSignal | None = None,
    ) -> tuple[str, UsageDelta]:
        """Non-streaming call without tools. Same retry policy as stream().

        Raises FatalProviderError on non-retryable failure or exhaustion and
        CancellationRequested when cancelled during a backoff sleep.
        """
        cancel = cancel or CancelSignal()
        for attempt in range(self.max_retries + 1):
            cancel.raise_if_cancelled()
            try:
                events = await self._request_once(conversation, [], system)
                return self._collect_text(events)
            except Exception as exc:
                error = self._to_provider_error(exc, attempt)

            if isinstance(error, FatalProviderError):
                raise error
            if attempt >= self.max_retries:
                raise FatalProviderError(
                    f"retries exhausted after {attempt + 1} attempts "
                    f"(last error: {error.error_kind.value}): {error.message}",
                    ErrorKind.RETRIES_EXHAUSTED,
                    context=error.context,
                )
            delay_ms = error.retry_after_ms or self._backoff(attempt)
            logger.warning(
                f"Transient provider error on completion, retry after {delay_ms}ms",
                extra=self._log_extra(attempt, error),
            )
            if await cancel.sleep(delay_ms / 1000):
                raise CancellationRequested(cancel.reason or "cancelled")

    # ── Vendor hooks ────────────────────────────────────────────

    def _stream_once(
        self, conversation: list[Message], tools: list[ToolInfo], system: str | None,
    ) -> AsyncIterator[ProviderEvent]:
        """One streaming request converted to ProviderEvents (async generator)."""
        raise NotImplementedError

    async def _request_once(
        self, conversation: list[Message], tools: list[ToolInfo], system: str | None,
    ) -> list[ProviderEvent]:
        """One non-streaming request replayed as the same event sequence."""
        raise NotImplementedError

    def _map_error(self, exc: Exception, context: ErrorContext) -> ProviderError:
        """Classify a vendor SDK exception as transient or fatal."""
        raise NotImplementedError

    # ── Helpers ─────────────────────────────────────────────────

    async def _attempt(
        self, conversation: list[Message], tools: list[ToolInfo], system: str | None,
    ) -> AsyncIterator[ProviderEvent]:
        if self.config.supports_streaming:
            async with aclosing(
                self._stream_once(conversation, tools, system),
            ) as events:
                async for event in events:
                    yield event
            return
        for event in await self._request_once(conversation, tools, system):
            yield event

    def usage_event(self, input_tokens: int, output_tokens: int) -> UsageReport:
        return UsageReport(
            input_tokens, output_tokens,
            self.config.cost(input_tokens, output_tokens),
        )

    def _to_provider_error(self, exc: Exception, attempt: int) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc
        context = ErrorContext(provider=self.name.value, attempt=attempt + 1)
        return self._map_error(exc, context)

    def _collect_text(self, events: list[ProviderEvent]) -> tuple[str, UsageDelta]:
        parts: list[str] = []
        inp = out = 0
        cost = 0.0
        for event in events:
            if isinstance(event, TextDelta):
                parts.append(event.text)
            elif isinstance(event, UsageReport):
                inp += event.input_tokens
                out += event.output_tokens
                cost += event.cost
            elif isinstance(event, Failed):
                raise FatalProviderError(event.message, event.error_kind)
            elif isinstance(event, Completed):
                break
        return "".join(parts), UsageDelta(inp, out, cost)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    def _log_extra(self, attempt: int, error: ProviderError) -> dict:
        return {
            "provider": self.name.value,
            "attempt": attempt + 1,
            "error_code": error.code,
        }


def extract_retry_after_ms(error: Exception) -> int | None:
    """Extract Retry-After header (returns milliseconds)."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    val = headers.get("retry-after")
    if not val:
        return None
    try:
        return int(float(val) * 1000)
    except (TypeError, ValueError):
        return None


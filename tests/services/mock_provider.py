"""Mock Provider — scripted ProviderClient for agent_runner integration tests.

Invariants:
    - ScriptedProvider plays one script per provider request, in order
    - A script is a list of ProviderEvents, Pause markers and exceptions;
      an exception aborts the attempt where it appears
    - The real ProviderClient retry loop runs on top (base_delay_ms=0 by default)

Design Decisions:
    - Subclass, not a fake of stream(): retry and cancellation are exercised
      exactly as with a vendor variant
    - Builders return ready-made scripts shaped like real vendor streams
"""

import asyncio
import json
from dataclasses import dataclass

from agentcore.core.domain_types import ErrorKind, ProviderName
from agentcore.core.errors import FatalProviderError
from agentcore.core.events import (
    Completed,
    TextDelta,
    ToolCallArgDelta,
    ToolCallEnd,
    ToolCallStart,
    UsageReport,
)
from agentcore.infrastructure.providers.base import ModelConfig, ProviderClient


@dataclass(frozen=True)
class Pause:
    """Suspend the stream (simulates network latency)."""
    seconds: float


def mock_config(**overrides) -> ModelConfig:
    values = dict(
        provider="anthropic",
        model="mock-model",
        context_window=10_000,
        cost_per_1m_input=3.0,
        cost_per_1m_output=15.0,
    )
    values.update(overrides)
    return ModelConfig(**values)


class ScriptedProvider(ProviderClient):
    """Replaces a vendor variant. Sequences pre-configured scripts."""

    name = ProviderName.ANTHROPIC

    def __init__(self, scripts, config: ModelConfig | None = None, **kwargs):
        kwargs.setdefault("max_retries", 0)
        kwargs.setdefault("base_delay_ms", 0)
        super().__init__(config or mock_config(), **kwargs)
        self._scripts = list(scripts)
        self.calls = []

    @property
    def remaining(self) -> int:
        return len(self._scripts)

    def _next_script(self, conversation, tools, system):
        self.calls.append({
            "conversation": list(conversation),
            "tools": [t.name for t in tools],
            "system": system,
        })
        if not self._scripts:
            raise RuntimeError(
                f"ScriptedProvider: no script for request {len(self.calls)}",
            )
        return self._scripts.pop(0)

    async def _stream_once(self, conversation, tools, system):
        for item in self._next_script(conversation, tools, system):
            if isinstance(item, Exception):
                raise item
            if isinstance(item, Pause):
                await asyncio.sleep(item.seconds)
                continue
            yield item

    async def _request_once(self, conversation, tools, system):
        events = []
        for item in self._next_script(conversation, tools, system):
            if isinstance(item, Exception):
                raise item
            if not isinstance(item, Pause):
                events.append(item)
        return events

    def _map_error(self, exc, context):
        return FatalProviderError(str(exc), ErrorKind.UNKNOWN, context)


# -- Script builders -----------------------------------------------------------


def _usage(provider_config: ModelConfig, inp: int, out: int) -> UsageReport:
    return UsageReport(inp, out, provider_config.cost(inp, out))


def text_response(text, input_tokens=100, output_tokens=50, chunks=2):
    """Plain text answer split into `chunks` deltas."""
    config = mock_config()
    size = max(1, -(-len(text) // chunks))
    deltas = [TextDelta(text[i:i + size]) for i in range(0, len(text), size)]
    return [
        _usage(config, input_tokens, 0),
        *deltas,
        _usage(config, 0, output_tokens),
        Completed("end_turn"),
    ]


def tool_call_events(call_id, name, arguments):
    """Start, arguments split in two fragments, end."""
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    half = len(raw) // 2
    events = [ToolCallStart(call_id, name)]
    events += [ToolCallArgDelta(call_id, part) for part in (raw[:half], raw[half:]) if part]
    events.append(ToolCallEnd(call_id))
    return events


def tool_response(*calls, text="", input_tokens=100, output_tokens=50):
    """Answer requesting tools. calls are (id, name, arguments) tuples."""
    config = mock_config()
    events = [_usage(config, input_tokens, 0)]
    if text:
        events.append(TextDelta(text))
    for call_id, name, arguments in calls:
        events += tool_call_events(call_id, name, arguments)
    events += [_usage(config, 0, output_tokens), Completed("tool_use")]
    return events

"""Agent Runner Helpers — pure caller-event builders and small turn bookkeeping.

Invariants:
    - All event builders are pure; every event is {"type": str, "data": ...}
    - done_event is always the last event of a turn, exactly once
    - StepProgress holds only the CURRENT provider attempt; reset() discards it

Design Decisions:
    - Extracted from agent_runner.py to keep the loop readable
    - Previews are truncated so SSE frames stay small
"""

import json
from dataclasses import dataclass, field

from agentcore.core.domain_types import LoopState, TurnOutcome
from agentcore.core.errors import ErrorSeverity
from agentcore.core.messages import ToolCall
from agentcore.core.session_state import Session
from agentcore.core.tool_call_accumulator import ToolCallAccumulator
from agentcore.core.tool_types import ToolResult

PREVIEW_CHARS = 300


# -- Caller event builders -----------------------------------------------------

def text_event(text: str) -> dict:
    return {"type": "agent_text", "data": text}


def stream_reset_event(error_kind: str, message: str) -> dict:
    return {
        "type": "stream_reset",
        "data": {"error_kind": error_kind, "message": message},
    }


def tool_call_event(call: ToolCall) -> dict:
    return {
        "type": "tool_call",
        "data": {
            "id": call.id,
            "tool": call.name,
            "input_preview": arguments_preview(call.raw_arguments),
        },
    }


def tool_result_event(call: ToolCall, result: ToolResult) -> dict:
    """Build event for tool result or error."""
    if result.is_error:
        content = result.content
        message = content.get("message") if isinstance(content, dict) else content
        return {
            "type": "tool_error",
            "data": {
                "id": call.id,
                "tool": call.name,
                "error_code": result.error_code,
                "message": message,
            },
        }
    return {
        "type": "tool_result",
        "data": {
            "id": call.id,
            "tool": call.name,
            "result_preview": _preview(result.content_text()),
        },
    }


def permission_request_event(request: dict, depth: int = 0) -> dict:
    return {"type": "permission_request", "data": {**request, "depth": depth}}


def context_usage_event(session: Session, context_window: int) -> dict:
    return {"type": "context_usage", "data": get_context_usage(session, context_window)}


def unexpected_error_event() -> dict:
    return {
        "type": "error",
        "data": {
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "severity": ErrorSeverity.CRITICAL.value,
            "recoverable": False,
        },
    }


def done_event(status: TurnOutcome) -> dict:
    return {
        "type": "done",
        "data": {"status": status.value, "error": status == TurnOutcome.ERRORED},
    }


def get_context_usage(session: Session, context_window: int) -> dict:
    used = session.usage.last_input_tokens
    return {
        **session.usage.to_dict(),
        "context_window": context_window,
        "usage_percentage": (
            round(used / context_window * 100, 2) if context_window else 0.0
        ),
    }


def _preview(text: str) -> str:
    if len(text) <= PREVIEW_CHARS:
        return text
    return text[:PREVIEW_CHARS] + "..."


def arguments_preview(raw: str) -> str:
    """Compact one-line rendering of raw arguments (falls back to raw text)."""
    try:
        return _preview(json.dumps(json.loads(raw), ensure_ascii=False))
    except (json.JSONDecodeError, TypeError):
        return _preview(raw)


# -- Per-attempt progress ------------------------------------------------------

@dataclass
class StepProgress:
    """Text and tool calls of the provider attempt in flight, plus the loop state.

    reset() clears the attempt but keeps the loop state.
    """
    text_parts: list[str] = field(default_factory=list)
    calls: ToolCallAccumulator = field(default_factory=ToolCallAccumulator)
    finish_reason: str | None = None
    state: LoopState = LoopState.IDLE

    @property
    def text(self) -> str:
        return "".join(self.text_parts)

    def reset(self) -> None:
        self.text_parts.clear()
        self.calls.reset()
        self.finish_reason = None

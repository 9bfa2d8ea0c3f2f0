"""Messages — conversation units owned by a Session, plus the ToolCall lifecycle.

Invariants:
    - Message is frozen once created; parts are an immutable tuple
    - A tool-role Message carries the ToolCallPart it answers and its ToolResultPart
    - Message.step groups everything produced by one provider call (assistant text
      and the tool rounds it requested) so vendor converters can rebuild the
      assistant tool-request turn
    - ToolCall transitions only along _ALLOWED_TRANSITIONS; terminal states are final
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Union

from agentcore.core.domain_types import Role, ToolCallStatus


# ─── Content Parts ──────────────────────────────────────────────

@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ToolCallPart:
    id: str
    name: str
    arguments: str


@dataclass(frozen=True)
class ToolResultPart:
    tool_call_id: str
    name: str
    content: str
    status: ToolCallStatus = ToolCallStatus.COMPLETED
    error_code: str | None = None

    @property
    def is_error(self) -> bool:
        return self.status != ToolCallStatus.COMPLETED


ContentPart = Union[TextPart, ToolCallPart, ToolResultPart]


@dataclass(frozen=True)
class Message:
    role: Role
    parts: tuple[ContentPart, ...]
    step: int = 0
    summary: bool = False
    id: str = field(default_factory=lambda: f"msg_{uuid.uuid4().hex}")
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def tool_call(self) -> ToolCallPart | None:
        return next((p for p in self.parts if isinstance(p, ToolCallPart)), None)

    @property
    def tool_result(self) -> ToolResultPart | None:
        return next((p for p in self.parts if isinstance(p, ToolResultPart)), None)

    def to_dict(self) -> dict:
        """JSON-friendly view for API responses."""
        parts = []
        for p in self.parts:
            if isinstance(p, TextPart):
                parts.append({"type": "text", "text": p.text})
            elif isinstance(p, ToolCallPart):
                parts.append({
                    "type": "tool_call", "id": p.id,
                    "name": p.name, "arguments": p.arguments,
                })
            else:
                parts.append({
                    "type": "tool_result", "tool_call_id": p.tool_call_id,
                    "name": p.name, "content": p.content,
                    "status": p.status.value, "error_code": p.error_code,
                })
        return {
            "id": self.id,
            "role": self.role.value,
            "parts": parts,
            "step": self.step,
            "summary": self.summary,
            "created_at": self.created_at.isoformat(),
        }


def user_message(text: str, step: int = 0) -> Message:
    return Message(Role.USER, (TextPart(text),), step=step)


def assistant_message(text: str, step: int) -> Message:
    return Message(Role.ASSISTANT, (TextPart(text),), step=step)


def tool_message(call: "ToolCall", result: ToolResultPart, step: int) -> Message:
    return Message(
        Role.TOOL,
        (ToolCallPart(call.id, call.name, call.raw_arguments), result),
        step=step,
    )


# ─── Tool Call lifecycle ────────────────────────────────────────

_ALLOWED_TRANSITIONS = {
    ToolCallStatus.PENDING: {
        ToolCallStatus.PERMISSION_WAIT, ToolCallStatus.RUNNING,
        ToolCallStatus.FAILED, ToolCallStatus.CANCELLED,
    },
    ToolCallStatus.PERMISSION_WAIT: {
        ToolCallStatus.RUNNING, ToolCallStatus.FAILED, ToolCallStatus.CANCELLED,
    },
    ToolCallStatus.RUNNING: {
        ToolCallStatus.COMPLETED, ToolCallStatus.FAILED, ToolCallStatus.CANCELLED,
    },
}


@dataclass
class ToolCall:
    """A tool request finalized from the provider stream."""
    id: str
    name: str
    raw_arguments: str = ""
    status: ToolCallStatus = ToolCallStatus.PENDING

    def transition(self, new_status: ToolCallStatus) -> None:
        allowed = _ALLOWED_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise ValueError(
                f"Invalid tool call transition {self.status.value} -> "
                f"{new_status.value} (call {self.id})"
            )
        self.status = new_status

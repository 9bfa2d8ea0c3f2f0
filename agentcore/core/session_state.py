"""Session State — ordered message history, usage counters and turn status.

Invariants:
    - Single writer: begin_turn() refuses to start while a turn is RUNNING
    - finish_turn() moves RUNNING -> terminal exactly once per turn
    - Usage counters never decrease (negative reports clamp to zero)
    - Messages are only appended, except replace_history() used by summarization
      between turns
    - permission_grants hold tool names approved with allow_for_session
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from agentcore.core.domain_types import Role, TurnOutcome, TurnStatus
from agentcore.core.errors import ConcurrencyError, ErrorContext
from agentcore.core.messages import Message


_TITLE_MAX_CHARS = 80


@dataclass
class UsageCounters:
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    # Prompt size of the most recent provider call (auto-summarize trigger)
    last_input_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, input_tokens: int, output_tokens: int, cost: float) -> None:
        inp = max(0, int(input_tokens or 0))
        out = max(0, int(output_tokens or 0))
        self.input_tokens += inp
        self.output_tokens += out
        self.cost += max(0.0, float(cost or 0.0))
        if inp:
            self.last_input_tokens = inp

    def to_dict(self) -> dict:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "cost": round(self.cost, 6),
            "last_input_tokens": self.last_input_tokens,
        }


@dataclass
class Session:
    """Per-conversation state — pure dataclass, no IO."""

    model: str
    title: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    messages: list[Message] = field(default_factory=list)
    usage: UsageCounters = field(default_factory=UsageCounters)
    turn_status: TurnStatus = TurnStatus.IDLE
    permission_grants: set[str] = field(default_factory=set)
    step_counter: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_running(self) -> bool:
        return self.turn_status == TurnStatus.RUNNING

    def begin_turn(self) -> None:
        if self.turn_status == TurnStatus.RUNNING:
            raise ConcurrencyError(
                f"Session {self.id} already has an active turn",
                ErrorContext(session_id=self.id),
            )
        self.turn_status = TurnStatus.RUNNING

    def finish_turn(self, outcome: TurnOutcome) -> bool:
        """Set terminal turn status. Returns False if already finished."""
        if self.turn_status != TurnStatus.RUNNING:
            return False
        self.turn_status = {
            TurnOutcome.COMPLETED: TurnStatus.IDLE,
            TurnOutcome.CANCELLED: TurnStatus.CANCELLED,
            TurnOutcome.ERRORED: TurnStatus.ERRORED,
        }[outcome]
        return True

    def next_step(self) -> int:
        self.step_counter += 1
        return self.step_counter

    def append(self, message: Message) -> None:
        if not self.title and message.role == Role.USER and message.text:
            self.title = _derive_title(message.text)
        self.messages.append(message)

    def replace_history(self, messages: list[Message]) -> None:
        if self.turn_status == TurnStatus.RUNNING:
            raise ConcurrencyError(
                f"Cannot rewrite history of session {self.id} during a turn",
                ErrorContext(session_id=self.id),
            )
        self.messages = list(messages)

    def add_usage(self, input_tokens: int, output_tokens: int, cost: float) -> None:
        self.usage.add(input_tokens, output_tokens, cost)

    def grant(self, tool_name: str) -> None:
        self.permission_grants.add(tool_name)

    def is_granted(self, tool_name: str) -> bool:
        return tool_name in self.permission_grants

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "model": self.model,
            "turn_status": self.turn_status.value,
            "usage": self.usage.to_dict(),
            "messages": [m.to_dict() for m in self.messages],
            "created_at": self.created_at.isoformat(),
        }


def _derive_title(text: str) -> str:
    line = text.strip().splitlines()[0] if text.strip() else ""
    if len(line) > _TITLE_MAX_CHARS:
        return line[:_TITLE_MAX_CHARS - 3] + "..."
    return line

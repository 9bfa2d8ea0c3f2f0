"""Domain Types — enums and identity types shared by the loop, dispatch and providers.

Invariants:
    - All valid states encoded as Enums — no raw string matching
    - str Enums serialize to JSON without custom encoders (SSE payloads, tool results)
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

SessionId = NewType("SessionId", str)
MessageId = NewType("MessageId", str)
ToolCallId = NewType("ToolCallId", str)
PermissionRequestId = NewType("PermissionRequestId", str)


# ─── Enums ───────────────────────────────────────────────────────

class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallStatus(str, Enum):
    """Lifecycle of a single tool call. Terminal: completed, failed, cancelled."""
    PENDING = "pending"
    PERMISSION_WAIT = "permission_wait"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL_TOOL_STATUSES


_TERMINAL_TOOL_STATUSES = frozenset({
    ToolCallStatus.COMPLETED, ToolCallStatus.FAILED, ToolCallStatus.CANCELLED,
})


class TurnStatus(str, Enum):
    """Session-level turn status — what the session is doing right now."""
    IDLE = "idle"
    RUNNING = "running"
    CANCELLED = "cancelled"
    ERRORED = "errored"


class LoopState(str, Enum):
    """Agent loop state machine."""
    IDLE = "idle"
    STREAMING = "streaming"
    DISPATCHING_TOOLS = "dispatching_tools"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERRORED = "errored"


class TurnOutcome(str, Enum):
    """Terminal status reported to the caller of a turn."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERRORED = "errored"


class PermissionDecision(str, Enum):
    ALLOW = "allow"
    ALLOW_FOR_SESSION = "allow_for_session"
    DENY = "deny"


class ErrorKind(str, Enum):
    """Normalized provider failure kinds (vendor-agnostic)."""
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    SERVER_ERROR = "server_error"
    OVERLOADED = "overloaded"
    AUTH = "auth"
    QUOTA = "quota"
    BAD_REQUEST = "bad_request"
    PARSE_ERROR = "parse_error"
    RETRIES_EXHAUSTED = "retries_exhausted"
    UNKNOWN = "unknown"


class ProviderName(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"

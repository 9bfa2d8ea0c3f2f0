"""Error Hierarchy — typed, categorized exceptions for provider, tool and loop failures.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Tool-level errors (validation, execution, permission) are recoverable: they become
      failed tool results fed back to the model and never end a turn
    - Provider fatal errors and loop limits are critical: they end the turn as errored
    - CancellationRequested is NOT an AgentCoreError — cancellation is a clean terminal state
    - to_response() produces REST envelope; to_sse_event() produces SSE envelope

Design Decisions:
    - Single hierarchy with AgentCoreError base: FastAPI global handler catches all
    - ErrorContext as dataclass: observability fields without coupling to logging
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone

from agentcore.core.domain_types import ErrorKind


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    PERMISSION = "permission"
    RESOURCE_NOT_FOUND = "resource_not_found"
    EXTERNAL_API = "external_api"
    TOOL = "tool"
    INTERNAL = "internal"
    CONFLICT = "conflict"
    TIMEOUT = "timeout"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: str | None = None
    tool_name: str | None = None
    tool_call_id: str | None = None
    provider: str | None = None
    attempt: int | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class AgentCoreError(Exception):
    """Base exception for all agentcore errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "session_id": self.context.session_id,
                    "tool_name": self.context.tool_name,
                    "provider": self.context.provider,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }

    def to_sse_event(self) -> dict:
        """Convert to SSE error event."""
        return {
            "type": "error",
            "data": {
                "code": self.code,
                "message": self.context.user_message or self.message,
                "severity": self.severity.value,
                "recoverable": self.severity in (
                    ErrorSeverity.INFO, ErrorSeverity.WARNING,
                ),
                "tool_name": self.context.tool_name,
            },
        }

    def to_tool_payload(self) -> dict:
        """Structured error body fed back to the model as a tool result."""
        return {
            "status": "error",
            "error_code": self.code,
            "message": self.message,
        }


class CancellationRequested(Exception):
    """Raised at a suspension point once the turn's cancel signal fires."""


# ─── Tool Errors (reported to the model, turn continues) ────────

class ToolValidationError(AgentCoreError):
    """Tool arguments failed to parse or did not match the tool schema."""
    def __init__(
        self, message: str, field: str | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, context, 400,
        )
        self.field = field


class ToolExecutionError(AgentCoreError):
    """Tool ran but failed."""
    def __init__(
        self, message: str, code: str = "TOOL_EXECUTION_ERROR",
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, ErrorCategory.TOOL,
            ErrorSeverity.WARNING, context, 422,
        )


class PermissionDeniedError(AgentCoreError):
    """Permission Gate refused a sensitive tool call."""
    def __init__(self, tool_name: str, context: ErrorContext | None = None):
        super().__init__(
            f"Permission denied for tool '{tool_name}'. The user did not "
            "authorize this action; try a different approach.",
            "PERMISSION_DENIED", ErrorCategory.PERMISSION,
            ErrorSeverity.WARNING, context, 403,
        )
        self.tool_name = tool_name


class ToolNotFoundError(AgentCoreError):
    """Model requested a tool that is not registered."""
    def __init__(self, tool_name: str, context: ErrorContext | None = None):
        super().__init__(
            f"Tool '{tool_name}' does not exist.",
            "UNKNOWN_TOOL", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.WARNING, context, 404,
        )
        self.tool_name = tool_name


class NestingDepthExceededError(AgentCoreError):
    """Agent-as-tool invoked beyond the maximum nesting depth."""
    def __init__(self, max_depth: int, context: ErrorContext | None = None):
        super().__init__(
            f"Maximum agent nesting depth ({max_depth}) reached; "
            "complete this task without delegating.",
            "NESTING_DEPTH_EXCEEDED", ErrorCategory.TOOL,
            ErrorSeverity.WARNING, context, 422,
        )
        self.max_depth = max_depth


# ─── Provider Errors ────────────────────────────────────────────

class ProviderError(AgentCoreError):
    """LLM provider call failed."""
    def __init__(
        self,
        message: str,
        error_kind: ErrorKind,
        code: str,
        severity: ErrorSeverity,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"Provider error ({error_kind.value}): {message}",
            code, ErrorCategory.EXTERNAL_API, severity, ctx, 503,
        )
        self.error_kind = error_kind
        self.retry_after_ms = retry_after_ms


class TransientProviderError(ProviderError):
    """Retryable: rate limit, timeout, transient server or network fault."""
    def __init__(
        self, message: str, error_kind: ErrorKind,
        retry_after_ms: int | None = None, context: ErrorContext | None = None,
    ):
        super().__init__(
            message, error_kind, "PROVIDER_TRANSIENT_ERROR",
            ErrorSeverity.WARNING, retry_after_ms, context,
        )


class FatalProviderError(ProviderError):
    """Not retried: auth, quota, malformed request or response, retries exhausted."""
    def __init__(
        self, message: str, error_kind: ErrorKind,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, error_kind, "PROVIDER_FATAL_ERROR",
            ErrorSeverity.CRITICAL, None, context,
        )


# ─── Loop / Session Errors ──────────────────────────────────────

class AgentLoopExceededError(AgentCoreError):
    """Agent exceeded maximum iteration limit."""
    def __init__(self, max_iterations: int, context: ErrorContext | None = None):
        super().__init__(
            f"Agent exceeded maximum iteration limit ({max_iterations})",
            "AGENT_LOOP_EXCEEDED", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 500,
        )


class ConcurrencyError(AgentCoreError):
    """A turn is already active on this session."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONCURRENCY_CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


class ResourceNotFoundError(AgentCoreError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )

"""Tool Types — static tool descriptors, execution context and results.

Invariants:
    - ToolInfo is immutable after registration
    - ToolResult.status is COMPLETED or FAILED (cancelled calls produce no result)
    - content_text() is what the model sees: plain text, or JSON for structured payloads
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable

from agentcore.core.cancellation import CancelSignal
from agentcore.core.domain_types import ToolCallStatus
from agentcore.core.errors import AgentCoreError


_EMPTY_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}, "required": []}


@dataclass(frozen=True)
class ToolInfo:
    """Static descriptor: what the model sees plus dispatch flags."""
    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=lambda: dict(_EMPTY_SCHEMA))
    sensitive: bool = False
    interruptible: bool = True
    mutates_files: bool = False
    describe_action: Callable[[dict], str] | None = None

    def action_description(self, args: dict) -> str:
        """Human-readable description passed to the Permission Gate."""
        if self.describe_action is not None:
            return self.describe_action(args)
        rendered = json.dumps(args, ensure_ascii=False)
        if len(rendered) > 300:
            rendered = rendered[:300] + "..."
        return f"Run tool '{self.name}' with {rendered}"


@dataclass(frozen=True)
class FileChange:
    path: str
    before: str
    after: str


@dataclass(frozen=True)
class UsageDelta:
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0


@dataclass
class ToolResult:
    status: ToolCallStatus
    content: Any = ""
    error_code: str | None = None
    file_changes: list[FileChange] = field(default_factory=list)
    usage: UsageDelta | None = None

    @classmethod
    def ok(cls, content: Any = "", **kwargs: Any) -> "ToolResult":
        return cls(ToolCallStatus.COMPLETED, content, **kwargs)

    @classmethod
    def from_error(cls, error: AgentCoreError) -> "ToolResult":
        return cls(
            ToolCallStatus.FAILED, error.to_tool_payload(), error_code=error.code,
        )

    @property
    def is_error(self) -> bool:
        return self.status != ToolCallStatus.COMPLETED

    def content_text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return json.dumps(self.content, ensure_ascii=False, default=str)


@dataclass
class ExecutionContext:
    """Per-turn context handed to every tool handler."""
    session_id: str
    cancel: CancelSignal
    working_dir: str = "."
    depth: int = 0
    max_depth: int = 2
    tool_call_id: str | None = None
    # Shared with the owning Session: allow_for_session grants land here
    permission_grants: set[str] = field(default_factory=set)
    # Caller event sink of the turn (None when nobody is listening)
    emit: Callable[[dict], None] | None = None

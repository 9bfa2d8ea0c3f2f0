"""Boundary Protocols — contracts between the core and its external collaborators.

Invariants:
    - Core NEVER imports from the HTTP shell — dependency arrows point inward only
    - Permission decisions, file history and tool execution are reached through
      Protocol types; implementations are injected at construction

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
"""

from typing import Protocol

from agentcore.core.domain_types import PermissionDecision
from agentcore.core.tool_types import ExecutionContext, ToolResult


class PermissionGate(Protocol):
    """Authorizes sensitive tool calls. May suspend awaiting a human."""
    async def request(
        self, tool_name: str, description: str, session_id: str,
    ) -> PermissionDecision: ...


class HistoryRecorder(Protocol):
    """Notified once per file changed by a successful mutating tool."""
    async def record(self, path: str, before: str, after: str) -> None: ...


class ToolHandler(Protocol):
    """Executable side of a registered tool."""
    async def __call__(
        self, context: ExecutionContext, args: dict,
    ) -> ToolResult: ...

"""Permission Gates — human-in-the-loop broker and a fixed-answer gate.

Invariants:
    - Every pending request is an asyncio Future resolved exactly once
    - A request leaves the pending table when resolved or when its waiter is
      cancelled (turn cancellation), never earlier
    - resolve() on an unknown or already-answered id raises ResourceNotFoundError
    - Listeners are per session and called synchronously when a request is queued

Design Decisions:
    - In-memory pending table: requests do not survive a restart (neither do turns)
    - StaticPermissionGate for tests and non-interactive runs (permission_mode
      allow / deny)
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from agentcore.core.domain_types import PermissionDecision
from agentcore.core.errors import ResourceNotFoundError

logger = logging.getLogger(__name__)

Listener = Callable[["PermissionRequest"], None]


@dataclass
class PermissionRequest:
    tool_name: str
    description: str
    session_id: str
    id: str = field(default_factory=lambda: f"perm_{uuid.uuid4().hex[:16]}")
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    future: asyncio.Future | None = field(default=None, repr=False)

    def to_dict(self) -> dict:
        return {
            "request_id": self.id,
            "tool_name": self.tool_name,
            "description": self.description,
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
        }


class PermissionBroker:
    """Queues permission requests until a human answers through the API."""

    def __init__(self) -> None:
        self._pending: dict[str, PermissionRequest] = {}
        self._listeners: dict[str, list[Listener]] = {}

    async def request(
        self, tool_name: str, description: str, session_id: str,
    ) -> PermissionDecision:
        req = PermissionRequest(tool_name, description, session_id)
        req.future = asyncio.get_running_loop().create_future()
        self._pending[req.id] = req
        logger.info(
            f"Permission requested for '{tool_name}' ({req.id})",
            extra={"session_id": session_id, "tool_name": tool_name},
        )
        for listener in list(self._listeners.get(session_id, [])):
            listener(req)
        try:
            return await req.future
        finally:
            self._pending.pop(req.id, None)

    def resolve(self, request_id: str, decision: PermissionDecision) -> PermissionRequest:
        req = self._pending.get(request_id)
        if req is None or req.future is None or req.future.done():
            raise ResourceNotFoundError("PermissionRequest", request_id)
        req.future.set_result(decision)
        logger.info(
            f"Permission {decision.value} for '{req.tool_name}' ({request_id})",
            extra={"session_id": req.session_id, "tool_name": req.tool_name},
        )
        return req

    def pending(self, session_id: str | None = None) -> list[PermissionRequest]:
        return [
            r for r in self._pending.values()
            if session_id is None or r.session_id == session_id
        ]

    def deny_all(self, session_id: str) -> int:
        """Deny every open request of a session (e.g. the session is deleted)."""
        count = 0
        for req in self.pending(session_id):
            if req.future is not None and not req.future.done():
                req.future.set_result(PermissionDecision.DENY)
                count += 1
        return count

    def subscribe(self, session_id: str, listener: Listener) -> Callable[[], None]:
        """Call `listener` for each new request of `session_id`. Returns unsubscribe."""
        self._listeners.setdefault(session_id, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(session_id, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                self._listeners.pop(session_id, None)
        return unsubscribe


class StaticPermissionGate:
    """Answers every request with the same decision and remembers what it saw."""

    def __init__(self, decision: PermissionDecision = PermissionDecision.ALLOW):
        self.decision = decision
        self.requests: list[tuple[str, str, str]] = []

    async def request(
        self, tool_name: str, description: str, session_id: str,
    ) -> PermissionDecision:
        self.requests.append((tool_name, description, session_id))
        return self.decision

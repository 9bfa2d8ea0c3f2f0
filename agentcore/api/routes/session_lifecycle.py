"""Session Lifecycle — create, list, inspect and delete in-memory sessions.

Invariants:
    - Sessions live in dependencies.sessions (module-level dict)
    - Deleting a session cancels its active turn and denies its open
      permission requests before the session is dropped
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from agentcore.api.dependencies import (
    active_turns, get_broker, get_runner, get_session_or_404, sessions,
)
from agentcore.core.session_state import Session
from agentcore.schemas.session import SessionCreate, SessionResponse
from agentcore.services.agent_runner import AgentRunner
from agentcore.services.permission_broker import PermissionBroker

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


def _summary(session: Session) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        title=session.title,
        model=session.model,
        turn_status=session.turn_status.value,
        message_count=len(session.messages),
        usage=session.usage.to_dict(),
        created_at=session.created_at,
    )


@router.post(
    "", response_model=SessionResponse, status_code=status.HTTP_201_CREATED,
)
async def create_session(
    body: SessionCreate | None = None,
    runner: AgentRunner = Depends(get_runner),
):
    session = Session(
        model=runner.provider.config.model,
        title=(body.title or "") if body else "",
    )
    sessions[session.id] = session
    logger.info("Session created", extra={"session_id": session.id})
    return _summary(session)


@router.get("")
async def list_sessions(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    ordered = sorted(sessions.values(), key=lambda s: s.created_at, reverse=True)
    return {
        "sessions": [
            _summary(s).model_dump(mode="json")
            for s in ordered[offset:offset + limit]
        ],
        "pagination": {"limit": limit, "offset": offset, "total": len(ordered)},
    }


@router.get("/{session_id}")
async def get_session(session_id: str):
    """Full session: messages, usage and turn status."""
    return get_session_or_404(session_id).to_dict()


@router.delete("/{session_id}")
async def delete_session(
    session_id: str,
    broker: PermissionBroker = Depends(get_broker),
):
    get_session_or_404(session_id)
    cancel = active_turns.get(session_id)
    if cancel is not None:
        cancel.cancel("session deleted")
    denied = broker.deny_all(session_id)
    sessions.pop(session_id, None)
    logger.info(
        f"Session deleted ({denied} pending permission requests denied)",
        extra={"session_id": session_id},
    )
    return {"message": "Session deleted"}

"""Session Agent Stream — SSE turn streaming, cancellation and summarization.

Invariants:
    - At most one active turn per session: a second POST /messages gets 409
    - Every SSE stream ends with exactly one `done` event (emitted by the runner)
    - Client disconnect closes runner.run(), which cancels the turn
    - The session's cancel signal is registered in active_turns for the whole
      stream and removed when the stream ends

Design Decisions:
    - StreamingResponse for SSE: event_generator yields formatted SSE lines
    - Summarize is a plain JSON endpoint: it makes one non-streaming provider call
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from agentcore.api.dependencies import active_turns, get_runner, get_session_or_404
from agentcore.core.cancellation import CancelSignal
from agentcore.core.errors import ConcurrencyError, ErrorContext
from agentcore.schemas.session import MessageCreate, SummarizeRequest
from agentcore.services.agent_runner import AgentRunner

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])

# SSE headers prevent proxy/browser buffering of streamed events.
_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}


def _sse_line(event: dict) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False, default=str)}\n\n"


@router.post("/{session_id}/messages")
async def send_message(
    session_id: str,
    body: MessageCreate,
    runner: AgentRunner = Depends(get_runner),
):
    """Run one turn and stream its events as SSE."""
    session = get_session_or_404(session_id)
    if session.is_running or session_id in active_turns:
        raise ConcurrencyError(
            f"Session {session_id} already has an active turn",
            ErrorContext(session_id=session_id),
        )
    cancel = CancelSignal()
    active_turns[session_id] = cancel

    async def event_generator():
        try:
            async for event in runner.run(session, body.content, cancel):
                yield _sse_line(event)
        except asyncio.CancelledError:
            logger.info(
                "Client disconnected from stream", extra={"session_id": session_id},
            )
            raise
        finally:
            if active_turns.get(session_id) is cancel:
                active_turns.pop(session_id, None)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


@router.post("/{session_id}/cancel")
async def cancel_turn(session_id: str):
    """Cancel the active turn, if any. The stream then ends with done/cancelled."""
    get_session_or_404(session_id)
    cancel = active_turns.get(session_id)
    if cancel is None:
        return {"cancelled": False, "message": "No active turn"}
    cancel.cancel("cancelled by user")
    logger.info("Turn cancellation requested", extra={"session_id": session_id})
    return {"cancelled": True, "message": "Turn cancellation requested"}


@router.post("/{session_id}/summarize")
async def summarize_session(
    session_id: str,
    body: SummarizeRequest | None = None,
    runner: AgentRunner = Depends(get_runner),
):
    """Replace older history with a model-written summary (between turns only)."""
    session = get_session_or_404(session_id)
    if session_id in active_turns:
        raise ConcurrencyError(
            f"Cannot summarize session {session_id} during a turn",
            ErrorContext(session_id=session_id),
        )
    summarized = await runner.summarize(
        session, keep_last_n=body.keep_last_n if body else None,
    )
    return {
        "summarized": summarized,
        "message_count": len(session.messages),
        "usage": session.usage.to_dict(),
    }

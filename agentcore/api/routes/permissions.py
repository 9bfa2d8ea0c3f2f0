"""Permissions — list and answer pending permission requests.

Invariants:
    - Only requests still pending in the broker are listed
    - Answering an unknown or already-answered request is a 404
"""

import logging

from fastapi import APIRouter, Depends, Query

from agentcore.api.dependencies import get_broker
from agentcore.schemas.session import PermissionAnswer
from agentcore.services.permission_broker import PermissionBroker

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/permissions", tags=["permissions"])


@router.get("")
async def list_pending(
    session_id: str | None = Query(None),
    broker: PermissionBroker = Depends(get_broker),
):
    return {"requests": [r.to_dict() for r in broker.pending(session_id)]}


@router.post("/{request_id}")
async def answer_request(
    request_id: str,
    body: PermissionAnswer,
    broker: PermissionBroker = Depends(get_broker),
):
    req = broker.resolve(request_id, body.decision)
    return {
        "request_id": req.id,
        "tool_name": req.tool_name,
        "decision": body.decision.value,
    }

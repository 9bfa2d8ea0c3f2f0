"""Session Schemas — Pydantic models with field-level validation for API boundaries.

Invariants:
    - MessageCreate.content: 1-100000 chars, stripped, non-empty
    - PermissionAnswer.decision is one of allow / allow_for_session / deny

Design Decisions:
    - Responses built from Session.to_dict(); only request bodies and the
      session summary are modelled here
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from agentcore.core.domain_types import PermissionDecision


class SessionCreate(BaseModel):
    title: str | None = Field(None, max_length=200)


class SessionResponse(BaseModel):
    """Session summary — public-facing session data without messages."""
    id: str
    title: str
    model: str
    turn_status: str
    message_count: int
    usage: dict
    created_at: datetime


class MessageCreate(BaseModel):
    """One user turn."""
    content: str = Field(min_length=1, max_length=100_000)

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("content cannot be empty or whitespace")
        return v


class SummarizeRequest(BaseModel):
    keep_last_n: int | None = Field(None, ge=0, le=1000)


class PermissionAnswer(BaseModel):
    decision: PermissionDecision

"""Pydantic schemas for the course chat assistant."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import Field, field_validator

from app.config import get_settings
from app.schemas.base import CamelSchema, CreatedAtMixin, IDMixin


# Request schemas
class HistoryItem(CamelSchema):
    """One prior conversation turn supplied by the client."""

    role: Literal["user", "assistant"]
    content: str


class CourseChatRequest(CamelSchema):
    """Request to ask the course assistant a question."""

    course_id: UUID
    message: str = Field(..., min_length=1)
    session_id: str | None = None
    conversation_history: list[HistoryItem] = Field(default_factory=list)

    @field_validator("message")
    @classmethod
    def limit_length(cls, v: str) -> str:
        """Cap message length at the configured maximum."""
        max_chars = get_settings().chat_message_max_chars
        if len(v) > max_chars:
            raise ValueError(f"Message exceeds {max_chars} characters")
        return v


class ChatSessionCreateRequest(CamelSchema):
    """Request to start an empty conversation."""

    course_id: UUID
    title: str | None = Field(None, max_length=255)


class ChatSessionRenameRequest(CamelSchema):
    """Request to rename a conversation. A blank title clears it."""

    title: str | None = Field(None, max_length=255)


# Response schemas
class CourseChatResponse(CamelSchema):
    """Assistant answer and the session it was recorded in."""

    session_id: UUID
    response: str


class ChatSessionResponse(CamelSchema, IDMixin, CreatedAtMixin):
    """Chat session summary."""

    course_id: UUID
    title: str | None = None
    message_count: int
    last_message_at: datetime | None = None


class ChatSessionListResponse(CamelSchema):
    """One page of chat sessions."""

    sessions: list[ChatSessionResponse]
    has_more: bool


class ChatMessageResponse(CamelSchema, IDMixin, CreatedAtMixin):
    """Chat message."""

    session_id: UUID
    role: str
    content: str

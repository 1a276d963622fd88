"""API routes for the course chat assistant and its conversation history."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError

from app.api.deps import CourseChat, CurrentUser, DbSession
from app.config import sanitize_error
from app.errors import ForbiddenError, InternalError
from app.schemas.course_chat import (
    ChatMessageResponse,
    ChatSessionCreateRequest,
    ChatSessionListResponse,
    ChatSessionRenameRequest,
    ChatSessionResponse,
    CourseChatRequest,
    CourseChatResponse,
)
from app.services import chat_sessions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/course-chat", tags=["course-chat"])


# =============================================================================
# HELPERS
# =============================================================================


async def _get_session_or_404(db, session_id: UUID, user_id: UUID):
    session = await chat_sessions.get_owned_session(db, session_id, user_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat session not found")
    return session


# =============================================================================
# ASK
# =============================================================================


@router.post("", response_model=CourseChatResponse)
async def send_chat_message(
    request: CourseChatRequest,
    db: DbSession,
    user: CurrentUser,
    chat: CourseChat,
):
    """
    Ask the course assistant a question.

    The answer is grounded in the course's knowledge document. The user
    message is stored before the model is called; if a later step fails the
    session keeps the question without a reply.
    """
    try:
        return await chat.answer(db, user.id, request)
    except SQLAlchemyError as e:
        logger.exception("Database error during course chat for course %s", request.course_id)
        raise InternalError(sanitize_error(e, generic_message="Internal Server Error")) from e


# =============================================================================
# SESSION MANAGEMENT
# =============================================================================


@router.post("/sessions", response_model=ChatSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: ChatSessionCreateRequest,
    db: DbSession,
    user: CurrentUser,
):
    """Start a new, empty conversation for a course the caller is enrolled in."""
    if not await chat_sessions.is_enrolled(db, user.id, request.course_id):
        raise ForbiddenError("User not enrolled in course")
    session = await chat_sessions.create_session(db, user.id, request.course_id, request.title)
    await db.commit()
    return ChatSessionResponse.model_validate(session)


@router.get("/sessions", response_model=ChatSessionListResponse)
async def list_sessions(
    db: DbSession,
    user: CurrentUser,
    course_id: UUID = Query(..., alias="courseId"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """List the caller's conversations for a course, most recently active first."""
    sessions, has_more = await chat_sessions.list_sessions(
        db, user.id, course_id, limit=limit, offset=offset
    )
    return ChatSessionListResponse(
        sessions=[ChatSessionResponse.model_validate(s) for s in sessions],
        has_more=has_more,
    )


@router.get("/sessions/search", response_model=list[ChatSessionResponse])
async def search_sessions(
    db: DbSession,
    user: CurrentUser,
    course_id: UUID = Query(..., alias="courseId"),
    q: str = "",
):
    """Find conversations by title."""
    sessions = await chat_sessions.search_sessions(db, user.id, course_id, q)
    return [ChatSessionResponse.model_validate(s) for s in sessions]


@router.get("/sessions/{session_id}/messages", response_model=list[ChatMessageResponse])
async def get_session_messages(
    session_id: UUID,
    db: DbSession,
    user: CurrentUser,
):
    """Full message history of a conversation, oldest first."""
    session = await _get_session_or_404(db, session_id, user.id)
    messages = await chat_sessions.get_messages(db, session.id)
    return [ChatMessageResponse.model_validate(m) for m in messages]


@router.patch("/sessions/{session_id}", response_model=ChatSessionResponse)
async def rename_session(
    session_id: UUID,
    request: ChatSessionRenameRequest,
    db: DbSession,
    user: CurrentUser,
):
    """Rename a conversation."""
    session = await _get_session_or_404(db, session_id, user.id)
    await chat_sessions.rename_session(db, session, request.title)
    await db.commit()
    await db.refresh(session)
    return ChatSessionResponse.model_validate(session)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: UUID,
    db: DbSession,
    user: CurrentUser,
):
    """Delete a conversation and all its messages."""
    session = await _get_session_or_404(db, session_id, user.id)
    await chat_sessions.delete_session(db, session)
    await db.commit()

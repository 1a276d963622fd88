"""Trailing-window chat throttle derived from message history."""

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import ChatMessage, ChatSession, utcnow

WINDOW = timedelta(seconds=60)


async def count_recent_messages(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    *,
    now: datetime | None = None,
) -> int:
    """Messages of either role across the user's sessions for a course in the last 60 seconds."""
    since = (now or utcnow()) - WINDOW

    session_ids = (
        select(ChatSession.id)
        .where(ChatSession.user_id == user_id, ChatSession.course_id == course_id)
    )
    stmt = (
        select(func.count())
        .select_from(ChatMessage)
        .where(ChatMessage.session_id.in_(session_ids), ChatMessage.created_at >= since)
    )
    result = await db.execute(stmt)
    return result.scalar() or 0


async def allow(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    limit_per_minute: int = 10,
    *,
    now: datetime | None = None,
) -> bool:
    """
    Decide whether the user may send another chat message for the course.

    Nothing is stored: the window is recomputed from message timestamps on
    every call. Database errors propagate; there is no fail-open path.
    """
    count = await count_recent_messages(db, user_id, course_id, now=now)
    return count < limit_per_minute

"""Chat session and message persistence, always scoped to one user."""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import ChatMessage, ChatRole, ChatSession, Enrollment, utcnow


async def is_enrolled(db: AsyncSession, user_id: UUID, course_id: UUID) -> bool:
    result = await db.execute(
        select(Enrollment.id).where(
            Enrollment.student_id == user_id, Enrollment.course_id == course_id
        )
    )
    return result.first() is not None


async def create_session(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    title: str | None = None,
) -> ChatSession:
    session = ChatSession(user_id=user_id, course_id=course_id, title=title)
    db.add(session)
    await db.flush()
    return session


async def get_owned_session(
    db: AsyncSession,
    session_id: UUID,
    user_id: UUID,
    course_id: UUID | None = None,
) -> ChatSession | None:
    """Session by id, only if it belongs to the user (and course, when given)."""
    stmt = select(ChatSession).where(ChatSession.id == session_id, ChatSession.user_id == user_id)
    if course_id is not None:
        stmt = stmt.where(ChatSession.course_id == course_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def resolve_session(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    session_id: UUID | None,
) -> ChatSession:
    """
    Reuse the requested session when it exists and belongs to (user, course).

    Anything else, including another user's session id, yields a fresh session.
    """
    if session_id is not None:
        existing = await get_owned_session(db, session_id, user_id, course_id)
        if existing is not None:
            return existing
    return await create_session(db, user_id, course_id)


async def append_message(
    db: AsyncSession,
    session: ChatSession,
    role: ChatRole,
    content: str,
) -> ChatMessage:
    """Append a message and bump the session's counters."""
    now = utcnow()
    message = ChatMessage(session_id=session.id, role=role.value, content=content, created_at=now)
    db.add(message)
    session.message_count = (session.message_count or 0) + 1
    session.last_message_at = now
    await db.flush()
    return message


async def get_messages(db: AsyncSession, session_id: UUID) -> list[ChatMessage]:
    stmt = (
        select(ChatMessage)
        .where(ChatMessage.session_id == session_id)
        .order_by(ChatMessage.created_at.asc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


def _recent_first(stmt):
    return stmt.order_by(
        ChatSession.last_message_at.desc().nulls_last(),
        ChatSession.created_at.desc(),
    )


async def list_sessions(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    *,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[ChatSession], bool]:
    """
    One page of the user's sessions for a course, most recently active first.

    Returns:
        (sessions, has_more)
    """
    scope = (ChatSession.user_id == user_id, ChatSession.course_id == course_id)

    count_stmt = select(func.count()).select_from(ChatSession).where(*scope)
    total = (await db.execute(count_stmt)).scalar() or 0

    stmt = _recent_first(select(ChatSession).where(*scope)).offset(offset).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all()), offset + limit < total


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def search_sessions(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    query: str,
) -> list[ChatSession]:
    """Sessions whose title contains the query, case-insensitively."""
    q = query.strip()
    if not q:
        return []
    stmt = _recent_first(
        select(ChatSession).where(
            ChatSession.user_id == user_id,
            ChatSession.course_id == course_id,
            ChatSession.title.ilike(f"%{_escape_like(q)}%", escape="\\"),
        )
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def rename_session(db: AsyncSession, session: ChatSession, title: str | None) -> ChatSession:
    session.title = (title or "").strip() or None
    await db.flush()
    return session


async def delete_session(db: AsyncSession, session: ChatSession) -> None:
    """Delete a session; its messages go with it."""
    await db.delete(session)
    await db.flush()

"""Per-course cache of extracted knowledge text."""

import hashlib
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import KnowledgeCacheEntry, utcnow
from app.db.upsert import upsert


def content_hash(data: bytes) -> str:
    """SHA-256 hex digest of the raw document bytes."""
    return hashlib.sha256(data).hexdigest()


async def get_entry(db: AsyncSession, course_id: UUID) -> KnowledgeCacheEntry | None:
    stmt = (
        select(KnowledgeCacheEntry)
        .where(KnowledgeCacheEntry.course_id == course_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get(db: AsyncSession, course_id: UUID) -> str | None:
    """
    Return the cached text for a course, or None on a miss.

    An empty cached text counts as a miss. The stored hash is not compared
    with the live document here; see clear() for invalidation.
    """
    entry = await get_entry(db, course_id)
    if entry is None or not entry.text:
        return None
    return entry.text


async def put(db: AsyncSession, course_id: UUID, text: str, file_hash: str) -> None:
    """Store text and hash for a course in one upsert; the last writer wins."""
    await upsert(
        db,
        KnowledgeCacheEntry,
        {
            "course_id": course_id,
            "text": text,
            "file_hash": file_hash,
            "updated_at": utcnow(),
        },
        conflict_columns=["course_id"],
        update_columns=["text", "file_hash", "updated_at"],
    )


async def clear(db: AsyncSession, course_id: UUID) -> bool:
    """Drop the cached text for a course. Returns True if a row was removed."""
    result = await db.execute(
        delete(KnowledgeCacheEntry).where(KnowledgeCacheEntry.course_id == course_id)
    )
    return (result.rowcount or 0) > 0

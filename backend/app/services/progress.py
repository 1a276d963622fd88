"""Learner progress accumulation and dashboard analytics."""

import datetime as dt
import logging
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Course, LearnerProgress, ProgressStatus, utcnow
from app.db.upsert import upsert
from app.errors import BadRequestError

logger = logging.getLogger(__name__)

TIMEFRAME_DAYS = {"day": 1, "week": 7, "month": 30}

_UNFINISHED = (ProgressStatus.NOT_STARTED.value, ProgressStatus.IN_PROGRESS.value)


async def get_progress(
    db: AsyncSession,
    user_id: UUID,
    course_id: UUID,
    video_id: UUID | None = None,
) -> LearnerProgress | None:
    """Progress record for the exact key; video_id None is the course-level record."""
    stmt = select(LearnerProgress).where(
        LearnerProgress.user_id == user_id,
        LearnerProgress.course_id == course_id,
    )
    if video_id is None:
        stmt = stmt.where(LearnerProgress.video_id.is_(None))
    else:
        stmt = stmt.where(LearnerProgress.video_id == video_id)
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


def merge_status(existing: str | None, incoming: ProgressStatus | str) -> str:
    """Incoming status, except that 'completed' is never downgraded."""
    if existing == ProgressStatus.COMPLETED.value:
        return ProgressStatus.COMPLETED.value
    return ProgressStatus(incoming).value


async def record_progress(
    db: AsyncSession,
    *,
    user_id: UUID,
    course_id: UUID,
    status: ProgressStatus | str,
    seconds: int,
    video_id: UUID | None = None,
    score: float | None = None,
    now: dt.datetime | None = None,
) -> LearnerProgress:
    """
    Merge an activity delta into the (user, course, video) progress record.

    `seconds` is the delta since the caller's last sync and is added to the
    stored total. Status only moves forward out of 'completed'; completed_at
    is stamped on the first transition into 'completed' and kept afterwards.
    A score of None leaves the stored score unchanged.
    """
    if seconds < 0:
        raise BadRequestError("seconds must be a non-negative delta")
    now = now or utcnow()

    existing = await get_progress(db, user_id, course_id, video_id)

    new_status = merge_status(existing.status if existing else None, status)
    new_seconds = (existing.time_spent_seconds if existing else 0) + seconds
    completed_at = existing.completed_at if existing and existing.completed_at else None
    if completed_at is None and new_status == ProgressStatus.COMPLETED.value:
        completed_at = now

    if existing is not None:
        existing.status = new_status
        existing.time_spent_seconds = new_seconds
        existing.completed_at = completed_at
        if score is not None:
            existing.score = score
        existing.updated_at = now
        await db.flush()
        return existing

    await upsert(
        db,
        LearnerProgress,
        {
            "id": uuid4(),
            "user_id": user_id,
            "course_id": course_id,
            "video_id": video_id,
            "status": new_status,
            "time_spent_seconds": new_seconds,
            "score": score,
            "started_at": now,
            "completed_at": completed_at,
            "created_at": now,
            "updated_at": now,
        },
        conflict_columns=["user_id", "course_id", "video_id"],
        update_columns=["status", "time_spent_seconds", "score", "completed_at", "updated_at"],
    )
    record = await get_progress(db, user_id, course_id, video_id)
    logger.info("Started progress record for user %s course %s video %s", user_id, course_id, video_id)
    return record


async def mark_lesson_completed(
    db: AsyncSession,
    *,
    user_id: UUID,
    course_id: UUID,
    video_id: UUID,
) -> LearnerProgress:
    """Mark a lesson completed without adding time."""
    return await record_progress(
        db,
        user_id=user_id,
        course_id=course_id,
        video_id=video_id,
        status=ProgressStatus.COMPLETED,
        seconds=0,
    )


async def get_completed_video_ids(db: AsyncSession, user_id: UUID, course_id: UUID) -> list[UUID]:
    stmt = select(LearnerProgress.video_id).where(
        LearnerProgress.user_id == user_id,
        LearnerProgress.course_id == course_id,
        LearnerProgress.status == ProgressStatus.COMPLETED.value,
        LearnerProgress.video_id.is_not(None),
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_learner_stats(db: AsyncSession, user_id: UUID) -> dict:
    """Completion rate (0..1) and total seconds across the user's progress records."""
    result = await db.execute(
        select(LearnerProgress.status, LearnerProgress.time_spent_seconds).where(
            LearnerProgress.user_id == user_id
        )
    )
    rows = result.all()
    total = len(rows)
    completed = sum(1 for status, _ in rows if status == ProgressStatus.COMPLETED.value)
    return {
        "completion_rate": completed / total if total else 0.0,
        "total_time_seconds": sum(seconds or 0 for _, seconds in rows),
    }


async def get_continue_learning(db: AsyncSession, user_id: UUID) -> list[dict]:
    """
    Courses with unfinished records, with the latest such status and summed seconds.
    """
    result = await db.execute(
        select(LearnerProgress.course_id, LearnerProgress.status, LearnerProgress.time_spent_seconds)
        .where(LearnerProgress.user_id == user_id, LearnerProgress.status.in_(_UNFINISHED))
        .order_by(LearnerProgress.updated_at.asc())
    )

    by_course: dict[UUID, dict] = {}
    for course_id, status, seconds in result.all():
        entry = by_course.setdefault(course_id, {"status": status, "seconds": 0})
        entry["status"] = status
        entry["seconds"] += seconds or 0

    if not by_course:
        return []

    courses = await db.execute(select(Course).where(Course.id.in_(list(by_course))))
    course_by_id = {course.id: course for course in courses.scalars()}

    return [
        {
            "course": course_by_id[course_id],
            "latest_status": entry["status"],
            "time_spent_seconds": entry["seconds"],
        }
        for course_id, entry in by_course.items()
        if course_id in course_by_id
    ]


async def get_activity_series(
    db: AsyncSession,
    user_id: UUID,
    timeframe: str = "week",
    *,
    today: dt.date | None = None,
) -> list[dict]:
    """
    Seconds per day for the trailing 1/7/30 days ending today, zero-filled.

    Time is attributed to the day the progress record was created.
    """
    days = TIMEFRAME_DAYS.get(timeframe, TIMEFRAME_DAYS["week"])
    today = today or utcnow().date()
    since = today - dt.timedelta(days=days - 1)
    since_at = dt.datetime.combine(since, dt.time.min, tzinfo=dt.timezone.utc)

    result = await db.execute(
        select(LearnerProgress.created_at, LearnerProgress.time_spent_seconds).where(
            LearnerProgress.user_id == user_id,
            LearnerProgress.created_at >= since_at,
        )
    )

    buckets: dict[dt.date, int] = {}
    for created_at, seconds in result.all():
        day = created_at.date()
        buckets[day] = buckets.get(day, 0) + (seconds or 0)

    return [
        {"date": since + dt.timedelta(days=i), "seconds": buckets.get(since + dt.timedelta(days=i), 0)}
        for i in range(days)
    ]

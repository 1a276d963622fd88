"""Learner progress and dashboard analytics routes."""

from uuid import UUID

from fastapi import APIRouter

from app.api.deps import CurrentUser, DbSession, get_course_or_404
from app.schemas.progress import (
    ActivityPoint,
    CompletedLessonsResponse,
    ContinueLearningItem,
    CourseSummary,
    LearnerStatsResponse,
    ProgressRecordRequest,
    ProgressResponse,
    Timeframe,
)
from app.services import progress as progress_service

router = APIRouter(tags=["progress"])


@router.post("/progress", response_model=ProgressResponse)
async def record_progress(
    data: ProgressRecordRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> ProgressResponse:
    """
    Merge an activity delta into the caller's progress record.

    Send only the seconds accumulated since the last successful sync.
    Safe to retry: a completed record stays completed.
    """
    await get_course_or_404(db, data.course_id)
    record = await progress_service.record_progress(
        db,
        user_id=current_user.id,  # From auth, NEVER from request
        course_id=data.course_id,
        video_id=data.video_id,
        status=data.status,
        seconds=data.seconds,
        score=data.score,
    )
    await db.commit()
    return ProgressResponse.model_validate(record)


@router.post(
    "/progress/courses/{course_id}/lessons/{video_id}/complete",
    response_model=ProgressResponse,
)
async def complete_lesson(
    course_id: UUID,
    video_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> ProgressResponse:
    """Mark a lesson completed."""
    await get_course_or_404(db, course_id)
    record = await progress_service.mark_lesson_completed(
        db, user_id=current_user.id, course_id=course_id, video_id=video_id
    )
    await db.commit()
    return ProgressResponse.model_validate(record)


@router.get("/progress/courses/{course_id}/completed-lessons", response_model=CompletedLessonsResponse)
async def list_completed_lessons(
    course_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> CompletedLessonsResponse:
    """Lesson ids the caller has completed in a course."""
    video_ids = await progress_service.get_completed_video_ids(db, current_user.id, course_id)
    return CompletedLessonsResponse(video_ids=video_ids)


@router.get("/analytics/stats", response_model=LearnerStatsResponse)
async def get_stats(
    current_user: CurrentUser,
    db: DbSession,
) -> LearnerStatsResponse:
    """Completion rate and total learning time."""
    stats = await progress_service.get_learner_stats(db, current_user.id)
    return LearnerStatsResponse(**stats)


@router.get("/analytics/continue-learning", response_model=list[ContinueLearningItem])
async def get_continue_learning(
    current_user: CurrentUser,
    db: DbSession,
) -> list[ContinueLearningItem]:
    """Courses the caller has started but not finished."""
    items = await progress_service.get_continue_learning(db, current_user.id)
    return [
        ContinueLearningItem(
            course=CourseSummary.model_validate(item["course"]),
            latest_status=item["latest_status"],
            time_spent_seconds=item["time_spent_seconds"],
        )
        for item in items
    ]


@router.get("/analytics/activity", response_model=list[ActivityPoint])
async def get_activity(
    current_user: CurrentUser,
    db: DbSession,
    timeframe: Timeframe = "week",
) -> list[ActivityPoint]:
    """Learning seconds per day over the last day, week or month."""
    points = await progress_service.get_activity_series(db, current_user.id, timeframe)
    return [ActivityPoint(**point) for point in points]

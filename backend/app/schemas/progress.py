"""Pydantic schemas for learner progress and analytics."""

import datetime as dt
from typing import Literal
from uuid import UUID

from pydantic import Field

from app.db.models import ProgressStatus
from app.schemas.base import CamelSchema, IDMixin


# Request schemas
class ProgressRecordRequest(CamelSchema):
    """Activity delta to merge into a progress record."""

    course_id: UUID
    video_id: UUID | None = None
    status: ProgressStatus
    seconds: int = Field(0, ge=0, description="Active seconds since the last sync, not a running total")
    score: float | None = None


# Response schemas
class ProgressResponse(CamelSchema, IDMixin):
    """Stored progress record."""

    user_id: UUID
    course_id: UUID
    video_id: UUID | None = None
    status: ProgressStatus
    time_spent_seconds: int
    score: float | None = None
    started_at: dt.datetime
    completed_at: dt.datetime | None = None


class CompletedLessonsResponse(CamelSchema):
    """Lessons the learner has completed in a course."""

    video_ids: list[UUID]


class LearnerStatsResponse(CamelSchema):
    """Aggregate learner statistics."""

    completion_rate: float = Field(..., ge=0, le=1)
    total_time_seconds: int


class CourseSummary(CamelSchema, IDMixin):
    """Course fields shown on the learner dashboard."""

    title: str
    description: str | None = None
    thumbnail_url: str | None = None


class ContinueLearningItem(CamelSchema):
    """A course with unfinished progress."""

    course: CourseSummary
    latest_status: ProgressStatus
    time_spent_seconds: int


class ActivityPoint(CamelSchema):
    """Seconds of learning recorded on one day."""

    date: dt.date
    seconds: int


Timeframe = Literal["day", "week", "month"]

"""
SQLAlchemy 2.0 Models for CourseHub.

Uses modern declarative syntax with Mapped[] type annotations.
All models use UUID primary keys and proper relationship definitions.

Column types are kept portable (Uuid, DateTime(timezone=True)) so the same
metadata runs on PostgreSQL in production and SQLite in the test suite.
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


def utcnow() -> datetime:
    """Timezone-aware current time used for Python-side column defaults."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================


class ProgressStatus(str, PyEnum):
    """Learner progress on a course or lesson."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ChatRole(str, PyEnum):
    """Role in chat conversation."""

    USER = "user"
    ASSISTANT = "assistant"


# =============================================================================
# MODELS
# =============================================================================


class Profile(Base):
    """
    Public profile of an authenticated user.

    Accounts live in the managed auth provider; the profile id equals the
    token subject.
    """

    __tablename__ = "profiles"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    # Relationships
    courses: Mapped[list["Course"]] = relationship("Course", back_populates="instructor")


class Course(Base):
    """A course authored by an instructor."""

    __tablename__ = "courses"
    __table_args__ = (Index("idx_courses_instructor_id", "instructor_id"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    instructor_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    # Relationships
    instructor: Mapped["Profile"] = relationship("Profile", back_populates="courses")
    videos: Mapped[list["Video"]] = relationship(
        "Video", back_populates="course", cascade="all, delete-orphan"
    )
    knowledge_base: Mapped[Optional["KnowledgeDocument"]] = relationship(
        "KnowledgeDocument", back_populates="course", cascade="all, delete-orphan", uselist=False
    )


class Video(Base):
    """A lesson video inside a course."""

    __tablename__ = "videos"
    __table_args__ = (Index("idx_videos_course_id", "course_id"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    course_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_url: Mapped[Optional[str]] = mapped_column(String(), nullable=True)
    duration: Mapped[Optional[int]] = mapped_column(nullable=True)  # seconds
    order_index: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    course: Mapped["Course"] = relationship("Course", back_populates="videos")


class Enrollment(Base):
    """Join record granting a student access to a course."""

    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("course_id", "student_id", name="unique_enrollment"),
        Index("idx_enrollments_student_id", "student_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    course_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    student_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )


class KnowledgeDocument(Base):
    """
    The single reference document grounding a course's chat assistant.

    At most one per course; replacing it deletes the previous row and object.
    """

    __tablename__ = "course_knowledge_base"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    course_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("courses.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    file_name: Mapped[str] = mapped_column(String(), nullable=False)
    file_url: Mapped[str] = mapped_column(String(), nullable=False)
    file_type: Mapped[Optional[str]] = mapped_column(String(), nullable=True)
    file_size: Mapped[int] = mapped_column(nullable=False, default=0)
    storage_key: Mapped[Optional[str]] = mapped_column(String(), nullable=True)
    processed: Mapped[bool] = mapped_column(nullable=False, default=False, server_default=false())
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    course: Mapped["Course"] = relationship("Course", back_populates="knowledge_base")


class KnowledgeCacheEntry(Base):
    """
    Extracted knowledge text, one row per course.

    file_hash is the SHA-256 hex digest of the bytes the text came from.
    """

    __tablename__ = "course_knowledge_base_cache"

    course_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    file_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )


class ChatSession(Base):
    """
    A titled thread of messages between one user and the assistant for one course.
    """

    __tablename__ = "course_chat_sessions"
    __table_args__ = (
        Index("idx_course_chat_sessions_user_course", "user_id", "course_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    course_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[Optional[str]] = mapped_column(String(), nullable=True)
    message_count: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    last_message_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    # Relationships
    messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ChatMessage.created_at",
    )


class ChatMessage(Base):
    """
    Individual message in a chat session. Append-only.
    """

    __tablename__ = "course_chat_messages"
    __table_args__ = (
        Index("idx_course_chat_messages_session_created", "session_id", "created_at"),
        CheckConstraint("role IN ('user', 'assistant')", name="check_chat_message_role"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    session_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("course_chat_sessions.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(), nullable=False)  # 'user' or 'assistant'
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    session: Mapped["ChatSession"] = relationship("ChatSession", back_populates="messages")


class LearnerProgress(Base):
    """
    Durable engagement record for a course (video_id NULL) or one lesson.

    status never regresses from 'completed'; time_spent_seconds only grows.
    """

    __tablename__ = "learner_progress"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "course_id",
            "video_id",
            name="learner_progress_user_course_video_key",
            postgresql_nulls_not_distinct=True,
        ),
        CheckConstraint(
            "status IN ('not_started', 'in_progress', 'completed')",
            name="check_learner_progress_status",
        ),
        CheckConstraint("time_spent_seconds >= 0", name="check_time_spent_non_negative"),
        Index("idx_learner_progress_user_id", "user_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    course_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    video_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("videos.id", ondelete="CASCADE"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(), nullable=False, default=ProgressStatus.NOT_STARTED.value, server_default="not_started"
    )
    score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    time_spent_seconds: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

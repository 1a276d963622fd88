"""Pydantic schemas for API request/response validation."""

from app.schemas.course_chat import (
    ChatMessageResponse,
    ChatSessionCreateRequest,
    ChatSessionListResponse,
    ChatSessionRenameRequest,
    ChatSessionResponse,
    CourseChatRequest,
    CourseChatResponse,
    HistoryItem,
)
from app.schemas.knowledge_base import KnowledgeCacheClearResponse, KnowledgeDocumentResponse
from app.schemas.progress import (
    ActivityPoint,
    CompletedLessonsResponse,
    ContinueLearningItem,
    LearnerStatsResponse,
    ProgressRecordRequest,
    ProgressResponse,
)

__all__ = [
    # Course chat
    "CourseChatRequest",
    "CourseChatResponse",
    "HistoryItem",
    "ChatSessionCreateRequest",
    "ChatSessionRenameRequest",
    "ChatSessionResponse",
    "ChatSessionListResponse",
    "ChatMessageResponse",
    # Knowledge base
    "KnowledgeDocumentResponse",
    "KnowledgeCacheClearResponse",
    # Progress
    "ProgressRecordRequest",
    "ProgressResponse",
    "CompletedLessonsResponse",
    "LearnerStatsResponse",
    "ContinueLearningItem",
    "ActivityPoint",
]

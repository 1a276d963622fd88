"""Pydantic schemas for course knowledge documents."""

from datetime import datetime
from uuid import UUID

from app.schemas.base import CamelSchema, IDMixin


class KnowledgeDocumentResponse(CamelSchema, IDMixin):
    """Knowledge document metadata."""

    course_id: UUID
    file_name: str
    file_url: str
    file_type: str | None = None
    file_size: int
    processed: bool
    uploaded_at: datetime


class KnowledgeCacheClearResponse(CamelSchema):
    """Result of an explicit cache clear."""

    cleared: bool

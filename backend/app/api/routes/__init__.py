"""API routes package."""

from app.api.routes import course_chat, knowledge_base, progress

__all__ = [
    "course_chat",
    "knowledge_base",
    "progress",
]

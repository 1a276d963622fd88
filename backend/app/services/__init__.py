"""Services for knowledge extraction, chat, progress and external integrations."""

from app.services.text_extractor import text_extractor

__all__ = ["text_extractor"]

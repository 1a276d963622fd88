"""Course knowledge documents: lookup, download and cached text resolution."""

import logging
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.db.models import KnowledgeDocument
from app.errors import InternalError
from app.services import knowledge_cache
from app.services.storage import StorageService, knowledge_object_key
from app.services.text_extractor import text_extractor

logger = logging.getLogger(__name__)


async def get_document(db: AsyncSession, course_id: UUID) -> KnowledgeDocument | None:
    """Knowledge document metadata for a course, if one is attached."""
    result = await db.execute(
        select(KnowledgeDocument).where(KnowledgeDocument.course_id == course_id)
    )
    return result.scalar_one_or_none()


class KnowledgeBaseService:
    """Resolves the knowledge text that grounds a course's assistant."""

    def __init__(
        self,
        storage: StorageService,
        *,
        fetch_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.storage = storage
        self.fetch_timeout = (
            fetch_timeout if fetch_timeout is not None else get_settings().knowledge_fetch_timeout_seconds
        )
        self._transport = transport

    async def fetch_document_bytes(self, file_url: str) -> bytes:
        """
        Download a knowledge document.

        Objects under the knowledge prefix are read from storage with service
        credentials; any other URL is fetched over HTTP.
        """
        key = knowledge_object_key(file_url)
        if key is not None:
            return await self.storage.download(key)

        try:
            async with httpx.AsyncClient(timeout=self.fetch_timeout, transport=self._transport) as http:
                resp = await http.get(file_url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise InternalError("Failed to fetch knowledge base file") from e
        if not resp.is_success:
            raise InternalError("Failed to fetch knowledge base file")
        return resp.content

    async def load_text(self, db: AsyncSession, document: KnowledgeDocument) -> str:
        """
        Knowledge text for a document's course.

        A cache hit is trusted as-is. On a miss the document is downloaded,
        extracted and hashed, and text and hash are cached together before the
        text is returned. Concurrent misses may both extract; the last upsert wins.
        """
        cached = await knowledge_cache.get(db, document.course_id)
        if cached is not None:
            return cached

        logger.info("Knowledge cache miss for course %s, extracting %s", document.course_id, document.file_url)
        data = await self.fetch_document_bytes(document.file_url)
        text = await text_extractor.extract_text(data, document.file_url, document.file_type)
        await knowledge_cache.put(db, document.course_id, text, knowledge_cache.content_hash(data))
        document.processed = True
        logger.info("Cached %d chars of knowledge text for course %s", len(text), document.course_id)
        return text

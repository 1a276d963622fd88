"""API routes for managing a course's knowledge base document."""

import logging
import re
import time
from uuid import UUID

from fastapi import APIRouter, File, HTTPException, UploadFile, status
from sqlalchemy.exc import SQLAlchemyError

from app.api.deps import CurrentUser, DbSession, Storage, get_instructed_course
from app.config import get_settings, sanitize_error
from app.db.models import KnowledgeDocument
from app.errors import BadRequestError, InternalError
from app.schemas.knowledge_base import KnowledgeCacheClearResponse, KnowledgeDocumentResponse
from app.services import knowledge_cache
from app.services.knowledge_base import get_document
from app.services.storage import KNOWLEDGE_BUCKET_PREFIX, StorageError, StorageService
from app.services.text_extractor import (
    APPLICATION_DOCX,
    APPLICATION_MSWORD,
    APPLICATION_PDF,
    TEXT_PLAIN,
    text_extractor,
)

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/courses/{course_id}/knowledge-base", tags=["knowledge-base"])

ALLOWED_TYPES = {APPLICATION_PDF, APPLICATION_MSWORD, APPLICATION_DOCX, TEXT_PLAIN}

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_file_name(file_name: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", file_name)


async def _remove_document_row(db, document: KnowledgeDocument) -> None:
    """Delete the metadata row and the course's cached text. The object stays until commit."""
    await db.delete(document)
    await knowledge_cache.clear(db, document.course_id)
    await db.flush()


async def _delete_replaced_object(storage: StorageService, key: str | None) -> None:
    """Remove an object whose row is already gone; a failure only leaves an orphan object."""
    if not key:
        return
    try:
        await storage.delete(key)
    except StorageError:
        logger.warning("Could not delete replaced knowledge object %s", key, exc_info=True)


@router.get("", response_model=KnowledgeDocumentResponse)
async def get_knowledge_base(
    course_id: UUID,
    db: DbSession,
    user: CurrentUser,
):
    """Knowledge document metadata for a course the caller teaches."""
    await get_instructed_course(db, course_id, user)
    document = await get_document(db, course_id)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No knowledge base document for this course")
    return KnowledgeDocumentResponse.model_validate(document)


@router.post("", response_model=KnowledgeDocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_knowledge_base(
    course_id: UUID,
    db: DbSession,
    user: CurrentUser,
    storage: Storage,
    file: UploadFile = File(...),
):
    """
    Upload (or replace) the course's knowledge document.

    Flow:
    1. Validate type (PDF, DOC, DOCX, TXT) and size
    2. Upload the new object
    3. Swap the metadata rows and clear the cached text in one commit
    4. If recording fails, remove the uploaded object again; the previous
       document stays intact
    5. Delete the previous object only once the new row is committed
    """
    await get_instructed_course(db, course_id, user)

    content_type = file.content_type or ""
    if content_type not in ALLOWED_TYPES:
        raise BadRequestError("Invalid file type. Please upload PDF, DOC, DOCX, or TXT files only.")

    max_size = settings.knowledge_max_file_size_bytes
    if file.size is not None and file.size > max_size:
        raise BadRequestError("File size exceeds 10MB limit.")
    data = await file.read(max_size + 1)
    if len(data) > max_size:
        raise BadRequestError("File size exceeds 10MB limit.")
    if content_type == APPLICATION_PDF and not await text_extractor.validate_pdf(data):
        raise BadRequestError("The uploaded file is not a valid PDF.")

    file_name = file.filename or "document"
    key = f"{KNOWLEDGE_BUCKET_PREFIX}/{course_id}/{int(time.time() * 1000)}_{sanitize_file_name(file_name)}"
    await storage.upload(key, data, content_type)

    document = KnowledgeDocument(
        course_id=course_id,
        file_name=file_name,
        file_url=storage.public_url(key),
        file_type=content_type,
        file_size=len(data),
        storage_key=key,
    )
    replaced_key = None
    try:
        existing = await get_document(db, course_id)
        if existing is not None:
            logger.info("Replacing knowledge document %s for course %s", existing.id, course_id)
            replaced_key = existing.storage_key
            await _remove_document_row(db, existing)
        db.add(document)
        await db.commit()
    except SQLAlchemyError as e:
        logger.exception("Recording knowledge document for course %s failed, removing %s", course_id, key)
        await db.rollback()
        await storage.delete(key)
        raise InternalError(sanitize_error(e, generic_message="Failed to save knowledge base document.")) from e

    await _delete_replaced_object(storage, replaced_key)
    logger.info("Uploaded knowledge document %s (%d bytes) for course %s", key, len(data), course_id)
    return KnowledgeDocumentResponse.model_validate(document)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_knowledge_base(
    course_id: UUID,
    db: DbSession,
    user: CurrentUser,
    storage: Storage,
):
    """Remove the course's knowledge document."""
    await get_instructed_course(db, course_id, user)
    document = await get_document(db, course_id)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No knowledge base document for this course")
    key = document.storage_key
    await _remove_document_row(db, document)
    await db.commit()
    await _delete_replaced_object(storage, key)

@router.delete("/cache", response_model=KnowledgeCacheClearResponse)
async def clear_knowledge_cache(
    course_id: UUID,
    db: DbSession,
    user: CurrentUser,
):
    """
    Drop the cached knowledge text so the next chat re-extracts the document.

    Needed when the document object changed without going through upload.
    """
    await get_instructed_course(db, course_id, user)
    cleared = await knowledge_cache.clear(db, course_id)
    await db.commit()
    return KnowledgeCacheClearResponse(cleared=cleared)

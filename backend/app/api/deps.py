"""
FastAPI Dependencies for Authentication, Authorization and service handles.

Key patterns:
1. get_current_user: Validates the bearer token issued by the managed auth
   provider, returns the caller's Profile
2. User-scoped queries: service functions accept user_id to enforce ownership
3. No global "current user" state - always pass user explicitly
4. External clients (storage, model) are dependencies, so each request gets
   explicit handles and tests can override them

Security model:
- JWT in the Authorization header ('Bearer <token>')
- The caller's identity comes only from the token subject
- Privileged reads (enrollment, rate limit, knowledge documents) run through
  the server's own DB session and storage credentials, never the caller's
"""

from functools import lru_cache
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.db.models import Course, Profile
from app.db.session import get_db
from app.errors import UnauthorizedError
from app.services.course_chat import CourseChatService
from app.services.gemini import GeminiClient
from app.services.knowledge_base import KnowledgeBaseService
from app.services.storage import StorageService

settings = get_settings()


# =============================================================================
# JWT UTILITIES
# =============================================================================


def decode_access_token(token: str) -> UUID | None:
    """
    Decode and validate an access token.

    Returns user_id if valid, None if invalid/expired.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options={"verify_aud": settings.jwt_audience is not None},
        )
        user_id_str = payload.get("sub")
        if user_id_str is None:
            return None
        return UUID(user_id_str)
    except (JWTError, ValueError):
        return None


# =============================================================================
# AUTHENTICATION DEPENDENCIES
# =============================================================================


async def get_token_from_request(
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Extract the bearer token from the Authorization header."""
    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]

    raise UnauthorizedError("Unauthorized")


async def get_current_user(
    token: Annotated[str, Depends(get_token_from_request)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Profile:
    """
    Validate the token and return the caller's profile.

    Raises 401 if:
    - Token is missing, invalid, or expired
    - No profile exists for the token subject
    """
    user_id = decode_access_token(token)
    if user_id is None:
        raise UnauthorizedError("Unauthorized")

    result = await db.execute(select(Profile).where(Profile.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise UnauthorizedError("Unauthorized")

    return user


# Type alias for dependency injection
CurrentUser = Annotated[Profile, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]


# =============================================================================
# SERVICE HANDLES
# =============================================================================


@lru_cache
def get_storage() -> StorageService:
    """Storage client bound to the server's own credentials."""
    return StorageService(settings)


def get_model_client() -> GeminiClient:
    return GeminiClient(settings)


Storage = Annotated[StorageService, Depends(get_storage)]
ModelClient = Annotated[GeminiClient, Depends(get_model_client)]


def get_knowledge_base_service(storage: Storage) -> KnowledgeBaseService:
    return KnowledgeBaseService(storage, fetch_timeout=settings.knowledge_fetch_timeout_seconds)


KnowledgeBase = Annotated[KnowledgeBaseService, Depends(get_knowledge_base_service)]


def get_course_chat_service(knowledge: KnowledgeBase, model: ModelClient) -> CourseChatService:
    return CourseChatService(
        knowledge,
        model,
        rate_limit_per_minute=settings.chat_rate_limit_per_minute,
    )


CourseChat = Annotated[CourseChatService, Depends(get_course_chat_service)]


# =============================================================================
# AUTHORIZATION HELPERS
# =============================================================================


async def get_course_or_404(db: AsyncSession, course_id: UUID) -> Course:
    result = await db.execute(select(Course).where(Course.id == course_id))
    course = result.scalar_one_or_none()
    if course is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    return course


async def get_instructed_course(db: AsyncSession, course_id: UUID, current_user: Profile) -> Course:
    """
    Fetch a course the caller teaches.

    404 if the course does not exist, 403 if the caller is not its instructor.
    """
    course = await get_course_or_404(db, course_id)
    if course.instructor_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the course instructor can manage its knowledge base",
        )
    return course

"""Pytest configuration and fixtures."""

import os

# Settings are read once at import time; point them at test values first.
os.environ["DATABASE_URL_OVERRIDE"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["AWS_ACCESS_KEY_ID"] = "test"
os.environ["AWS_SECRET_ACCESS_KEY"] = "test"
os.environ["AWS_S3_BUCKET"] = "coursehub-test"
os.environ["GEMINI_API_KEY"] = "test-gemini-key"
os.environ["ENVIRONMENT"] = "development"

from collections.abc import AsyncGenerator  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402
from uuid import UUID, uuid4  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from app.api.deps import get_model_client, get_storage  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.models import (  # noqa: E402
    ChatMessage,
    ChatRole,
    ChatSession,
    Course,
    Enrollment,
    KnowledgeDocument,
    Profile,
    Video,
    utcnow,
)
from app.db.session import AsyncSessionLocal, engine  # noqa: E402
from app.main import app  # noqa: E402
from app.services.storage import KNOWLEDGE_BUCKET_PREFIX, StorageError  # noqa: E402


# =============================================================================
# FAKE EXTERNAL SERVICES
# =============================================================================


class FakeStorage:
    """In-memory stand-in for the S3 storage service."""

    public_base_url = "https://storage.test/coursehub-test"

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    async def upload(self, key: str, data: bytes, content_type: str) -> None:
        self.objects[key] = data

    async def download(self, key: str) -> bytes:
        if key not in self.objects:
            raise StorageError(f"Failed to download {key}: NoSuchKey")
        return self.objects[key]

    async def delete(self, key: str) -> None:
        self.objects.pop(key, None)
        self.deleted.append(key)


class FakeModel:
    """Records prompts and answers with a canned reply."""

    def __init__(self, reply: str = "Photosynthesis turns light into chemical energy."):
        self.reply = reply
        self.prompts: list[str] = []
        self.error: Exception | None = None

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


# =============================================================================
# DATABASE AND APP FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
async def create_schema() -> AsyncGenerator[None, None]:
    """Fresh schema for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    """
    Session for arranging and inspecting test data.

    Commit before calling the API: the in-memory database shares one
    connection with the app's sessions.
    """
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def model() -> FakeModel:
    return FakeModel()


@pytest.fixture
async def client(storage: FakeStorage, model: FakeModel) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_model_client] = lambda: model
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


# =============================================================================
# FACTORIES
# =============================================================================


def make_token(user_id: UUID, *, expires_in: timedelta = timedelta(hours=1)) -> str:
    settings = get_settings()
    payload = {
        "sub": str(user_id),
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def auth_headers(user_id: UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


async def create_profile(db: AsyncSession, name: str = "Learner") -> Profile:
    profile = Profile(id=uuid4(), email=f"{uuid4().hex[:8]}@example.com", full_name=name)
    db.add(profile)
    await db.commit()
    return profile


async def create_course(db: AsyncSession, instructor: Profile, title: str = "Biology 101") -> Course:
    course = Course(instructor_id=instructor.id, title=title)
    db.add(course)
    await db.commit()
    return course


async def create_video(db: AsyncSession, course: Course, title: str = "Lesson 1") -> Video:
    video = Video(course_id=course.id, title=title)
    db.add(video)
    await db.commit()
    return video


async def enroll(db: AsyncSession, student: Profile, course: Course) -> Enrollment:
    enrollment = Enrollment(course_id=course.id, student_id=student.id)
    db.add(enrollment)
    await db.commit()
    return enrollment


async def attach_document(
    db: AsyncSession,
    storage: FakeStorage,
    course: Course,
    data: bytes = b"Photosynthesis converts light energy into chemical energy.",
    *,
    file_name: str = "notes.txt",
    file_type: str | None = "text/plain",
) -> KnowledgeDocument:
    """Store a knowledge document object and its metadata row."""
    key = f"{KNOWLEDGE_BUCKET_PREFIX}/{course.id}/1700000000000_{file_name}"
    await storage.upload(key, data, file_type or "application/octet-stream")
    document = KnowledgeDocument(
        course_id=course.id,
        file_name=file_name,
        file_url=storage.public_url(key),
        file_type=file_type,
        file_size=len(data),
        storage_key=key,
    )
    db.add(document)
    await db.commit()
    return document


async def create_chat_session(
    db: AsyncSession,
    user: Profile,
    course: Course,
    title: str | None = None,
    *,
    message_times: list[datetime] | None = None,
) -> ChatSession:
    """A session with one user message per entry in message_times."""
    session = ChatSession(user_id=user.id, course_id=course.id, title=title)
    db.add(session)
    await db.flush()
    for i, created_at in enumerate(message_times or []):
        db.add(
            ChatMessage(
                session_id=session.id,
                role=ChatRole.USER.value,
                content=f"question {i}",
                created_at=created_at,
            )
        )
    if message_times:
        session.message_count = len(message_times)
        session.last_message_at = max(message_times)
    await db.commit()
    return session


@pytest.fixture
def now() -> datetime:
    return utcnow()

"""End-to-end tests for POST /course-chat."""

from datetime import timedelta
from uuid import UUID, uuid4

import pytest
from sqlalchemy import func, select

from conftest import (
    attach_document,
    auth_headers,
    create_chat_session,
    create_course,
    create_profile,
    enroll,
)

from app.db.models import ChatMessage, ChatSession, KnowledgeDocument
from app.errors import UpstreamError
from app.services import knowledge_cache
from app.services.course_chat import SYSTEM_PROMPT

KNOWLEDGE_TEXT = "Photosynthesis converts light energy into chemical energy."


@pytest.fixture
async def classroom(db, storage):
    """An instructor's course with a text knowledge document and one enrolled student."""
    instructor = await create_profile(db, "Instructor")
    student = await create_profile(db, "Student")
    course = await create_course(db, instructor)
    await enroll(db, student, course)
    document = await attach_document(db, storage, course, KNOWLEDGE_TEXT.encode())
    return student, course, document


async def count_rows(db, model, *where) -> int:
    return await db.scalar(select(func.count()).select_from(model).where(*where))


async def session_messages(db, session_id: UUID) -> list[tuple[str, str]]:
    result = await db.execute(
        select(ChatMessage.role, ChatMessage.content)
        .where(ChatMessage.session_id == session_id)
        .order_by(ChatMessage.created_at)
    )
    return [tuple(row) for row in result.all()]


def chat_body(course_id, message="What does photosynthesis do?", **extra) -> dict:
    return {"courseId": str(course_id), "message": message, **extra}


async def test_answers_from_knowledge_base(client, db, model, classroom):
    student, course, document = classroom

    response = await client.post(
        "/course-chat",
        json=chat_body(
            course.id,
            conversationHistory=[
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "Hello! Ask me about the course."},
            ],
        ),
        headers=auth_headers(student.id),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["response"] == model.reply

    prompt = model.prompts[0]
    assert prompt.startswith(SYSTEM_PROMPT)
    assert f"COURSE KNOWLEDGE BASE:\n\n{KNOWLEDGE_TEXT}" in prompt
    assert "PREVIOUS CONVERSATION:\nUSER: Hi\n\nASSISTANT: Hello! Ask me about the course." in prompt
    assert prompt.endswith("QUESTION:\nWhat does photosynthesis do?")

    session = await db.get(ChatSession, UUID(body["sessionId"]))
    assert session.user_id == student.id
    assert session.message_count == 2
    assert await session_messages(db, session.id) == [
        ("user", "What does photosynthesis do?"),
        ("assistant", model.reply),
    ]

    assert await knowledge_cache.get(db, course.id) == KNOWLEDGE_TEXT
    refreshed = await db.get(KnowledgeDocument, document.id, populate_existing=True)
    assert refreshed.processed is True


async def test_reuses_own_session(client, db, classroom):
    student, course, _ = classroom
    session = await create_chat_session(db, student, course, "Week 1")

    response = await client.post(
        "/course-chat",
        json=chat_body(course.id, sessionId=str(session.id)),
        headers=auth_headers(student.id),
    )

    assert response.status_code == 200
    assert response.json()["sessionId"] == str(session.id)
    refreshed = await db.get(ChatSession, session.id, populate_existing=True)
    assert refreshed.message_count == 2
    assert await count_rows(db, ChatSession) == 1


async def test_not_enrolled_is_forbidden_and_nothing_is_stored(client, db, model, storage):
    instructor = await create_profile(db, "Instructor")
    outsider = await create_profile(db, "Outsider")
    course = await create_course(db, instructor)
    await attach_document(db, storage, course)

    response = await client.post(
        "/course-chat", json=chat_body(course.id), headers=auth_headers(outsider.id)
    )

    assert response.status_code == 403
    assert response.json() == {"error": "User not enrolled in course"}
    assert await count_rows(db, ChatSession) == 0
    assert await count_rows(db, ChatMessage) == 0
    assert model.prompts == []


async def test_rate_limit_rejects_before_storing(client, db, model, classroom, now):
    student, course, _ = classroom
    session = await create_chat_session(
        db, student, course, message_times=[now - timedelta(seconds=5)] * 10
    )

    response = await client.post(
        "/course-chat",
        json=chat_body(course.id, sessionId=str(session.id)),
        headers=auth_headers(student.id),
    )

    assert response.status_code == 429
    assert response.json() == {"error": "Rate limit exceeded. Try again in a minute."}
    assert await count_rows(db, ChatMessage) == 10
    assert await count_rows(db, ChatSession) == 1
    assert model.prompts == []


async def test_missing_knowledge_document_is_not_found(client, db, model):
    instructor = await create_profile(db, "Instructor")
    student = await create_profile(db, "Student")
    course = await create_course(db, instructor)
    await enroll(db, student, course)
    session = await create_chat_session(db, student, course, "Earlier chat")

    response = await client.post(
        "/course-chat",
        json=chat_body(course.id, sessionId=str(session.id)),
        headers=auth_headers(student.id),
    )

    assert response.status_code == 404
    assert response.json() == {"error": "No knowledge base document for this course"}
    assert model.prompts == []
    # The question was stored before the lookup and stays without a reply
    assert await session_messages(db, session.id) == [("user", "What does photosynthesis do?")]


async def test_foreign_session_id_starts_new_session(client, db, classroom):
    student, course, _ = classroom
    other = await create_profile(db, "Other Student")
    await enroll(db, other, course)
    foreign = await create_chat_session(db, other, course, "Not yours")

    response = await client.post(
        "/course-chat",
        json=chat_body(course.id, sessionId=str(foreign.id)),
        headers=auth_headers(student.id),
    )

    assert response.status_code == 200
    new_id = UUID(response.json()["sessionId"])
    assert new_id != foreign.id
    assert (await db.get(ChatSession, new_id)).user_id == student.id
    assert await count_rows(db, ChatMessage, ChatMessage.session_id == foreign.id) == 0


@pytest.mark.parametrize("session_id", ["not-a-uuid", "", str(uuid4())])
async def test_unknown_or_malformed_session_id_starts_new_session(client, db, classroom, session_id):
    student, course, _ = classroom

    response = await client.post(
        "/course-chat",
        json=chat_body(course.id, sessionId=session_id),
        headers=auth_headers(student.id),
    )

    assert response.status_code == 200
    assert await count_rows(db, ChatSession) == 1


async def test_cache_hit_is_trusted(client, db, model, classroom):
    student, course, _ = classroom
    await knowledge_cache.put(db, course.id, "Cached summary of chapter one.", "stale-hash")
    await db.commit()

    response = await client.post(
        "/course-chat", json=chat_body(course.id), headers=auth_headers(student.id)
    )

    assert response.status_code == 200
    assert "COURSE KNOWLEDGE BASE:\n\nCached summary of chapter one." in model.prompts[0]
    assert KNOWLEDGE_TEXT not in model.prompts[0]


async def test_unsupported_document_type(client, db, storage, model):
    instructor = await create_profile(db, "Instructor")
    student = await create_profile(db, "Student")
    course = await create_course(db, instructor)
    await enroll(db, student, course)
    await attach_document(
        db,
        storage,
        course,
        b"PK\x03\x04",
        file_name="syllabus.docx",
        file_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    )

    response = await client.post(
        "/course-chat", json=chat_body(course.id), headers=auth_headers(student.id)
    )

    assert response.status_code == 500
    assert "Unsupported knowledge base file type" in response.json()["error"]
    assert model.prompts == []
    assert await knowledge_cache.get(db, course.id) is None


async def test_model_failure_keeps_question_without_reply(client, db, model, classroom):
    student, course, _ = classroom
    model.error = UpstreamError("Gemini API error: 503 overloaded", upstream_status=503, body="overloaded")

    response = await client.post(
        "/course-chat", json=chat_body(course.id), headers=auth_headers(student.id)
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Gemini API error: 503 overloaded"}
    assert await session_messages(
        db, (await db.scalar(select(ChatSession.id)))
    ) == [("user", "What does photosynthesis do?")]
    # Extraction succeeded before the model call and stays cached
    assert await knowledge_cache.get(db, course.id) == KNOWLEDGE_TEXT


async def test_requires_bearer_token(client, classroom):
    _, course, _ = classroom

    response = await client.post("/course-chat", json=chat_body(course.id))

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


async def test_rejects_unknown_user_token(client, classroom):
    _, course, _ = classroom

    response = await client.post(
        "/course-chat", json=chat_body(course.id), headers=auth_headers(uuid4())
    )

    assert response.status_code == 401


@pytest.mark.parametrize(
    "payload",
    [
        {"message": "no course"},
        {"courseId": "not-a-uuid", "message": "hi"},
        {"courseId": str(uuid4()), "message": "   "},
        {"courseId": str(uuid4()), "message": "x" * 2001},
        {"courseId": str(uuid4()), "message": "hi", "conversationHistory": [{"role": "system", "content": "x"}]},
    ],
)
async def test_malformed_payload_is_bad_request(client, classroom, payload):
    student, _, _ = classroom

    response = await client.post("/course-chat", json=payload, headers=auth_headers(student.id))

    assert response.status_code == 400
    assert response.json()["error"]


async def test_cors_preflight(client):
    response = await client.options(
        "/course-chat",
        headers={"Origin": "https://learn.example.com", "Access-Control-Request-Method": "POST"},
    )

    assert response.status_code == 200
    assert "access-control-allow-origin" in response.headers

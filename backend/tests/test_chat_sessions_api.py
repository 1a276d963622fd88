"""Tests for chat session management routes."""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from conftest import auth_headers, create_chat_session, create_course, create_profile, enroll

from app.db.models import ChatMessage, ChatSession


@pytest.fixture
async def learner(db):
    student = await create_profile(db, "Student")
    course = await create_course(db, await create_profile(db, "Instructor"))
    await enroll(db, student, course)
    return student, course


async def test_create_session(client, learner):
    student, course = learner

    response = await client.post(
        "/course-chat/sessions",
        json={"courseId": str(course.id), "title": "Exam prep"},
        headers=auth_headers(student.id),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["title"] == "Exam prep"
    assert body["messageCount"] == 0
    assert body["lastMessageAt"] is None


async def test_create_session_requires_enrollment(client, db):
    outsider = await create_profile(db, "Outsider")
    course = await create_course(db, await create_profile(db, "Instructor"))

    response = await client.post(
        "/course-chat/sessions",
        json={"courseId": str(course.id)},
        headers=auth_headers(outsider.id),
    )

    assert response.status_code == 403


async def test_list_sessions_recent_first_with_paging(client, db, learner, now):
    student, course = learner
    idle = await create_chat_session(db, student, course, "Never used")
    old = await create_chat_session(db, student, course, "Old", message_times=[now - timedelta(days=2)])
    new = await create_chat_session(db, student, course, "New", message_times=[now - timedelta(minutes=1)])
    other = await create_profile(db, "Other")
    await create_chat_session(db, other, course, "Someone else's")

    first = await client.get(
        "/course-chat/sessions",
        params={"courseId": str(course.id), "limit": 2},
        headers=auth_headers(student.id),
    )
    second = await client.get(
        "/course-chat/sessions",
        params={"courseId": str(course.id), "limit": 2, "offset": 2},
        headers=auth_headers(student.id),
    )

    assert [s["id"] for s in first.json()["sessions"]] == [str(new.id), str(old.id)]
    assert first.json()["hasMore"] is True
    assert [s["id"] for s in second.json()["sessions"]] == [str(idle.id)]
    assert second.json()["hasMore"] is False


async def test_search_sessions_by_title(client, db, learner):
    student, course = learner
    match = await create_chat_session(db, student, course, "Photosynthesis questions")
    await create_chat_session(db, student, course, "Cell division")

    response = await client.get(
        "/course-chat/sessions/search",
        params={"courseId": str(course.id), "q": "photo"},
        headers=auth_headers(student.id),
    )
    blank = await client.get(
        "/course-chat/sessions/search",
        params={"courseId": str(course.id), "q": "  "},
        headers=auth_headers(student.id),
    )

    assert [s["id"] for s in response.json()] == [str(match.id)]
    assert blank.json() == []


async def test_search_treats_wildcards_literally(client, db, learner):
    student, course = learner
    match = await create_chat_session(db, student, course, "50% of the final")
    await create_chat_session(db, student, course, "500 practice questions")
    await create_chat_session(db, student, course, "unit_2 notes")
    await create_chat_session(db, student, course, "unit 2 recap")

    percent = await client.get(
        "/course-chat/sessions/search",
        params={"courseId": str(course.id), "q": "50%"},
        headers=auth_headers(student.id),
    )
    underscore = await client.get(
        "/course-chat/sessions/search",
        params={"courseId": str(course.id), "q": "unit_2"},
        headers=auth_headers(student.id),
    )

    assert [s["id"] for s in percent.json()] == [str(match.id)]
    assert [s["title"] for s in underscore.json()] == ["unit_2 notes"]


async def test_get_messages_oldest_first(client, db, learner, now):
    student, course = learner
    session = await create_chat_session(
        db, student, course, message_times=[now - timedelta(seconds=30), now - timedelta(seconds=10)]
    )

    response = await client.get(
        f"/course-chat/sessions/{session.id}/messages", headers=auth_headers(student.id)
    )

    assert response.status_code == 200
    assert [m["content"] for m in response.json()] == ["question 0", "question 1"]
    assert response.json()[0]["sessionId"] == str(session.id)


async def test_rename_session(client, db, learner):
    student, course = learner
    session = await create_chat_session(db, student, course, "Draft")

    renamed = await client.patch(
        f"/course-chat/sessions/{session.id}",
        json={"title": "  Final review  "},
        headers=auth_headers(student.id),
    )
    cleared = await client.patch(
        f"/course-chat/sessions/{session.id}",
        json={"title": "   "},
        headers=auth_headers(student.id),
    )

    assert renamed.json()["title"] == "Final review"
    assert cleared.json()["title"] is None


async def test_delete_session_removes_messages(client, db, learner, now):
    student, course = learner
    session = await create_chat_session(db, student, course, message_times=[now])

    response = await client.delete(f"/course-chat/sessions/{session.id}", headers=auth_headers(student.id))

    assert response.status_code == 204
    assert await db.get(ChatSession, session.id, populate_existing=True) is None
    assert await db.scalar(select(func.count()).select_from(ChatMessage)) == 0


@pytest.mark.parametrize("method", ["get_messages", "patch", "delete"])
async def test_other_users_sessions_are_not_found(client, db, learner, method):
    student, course = learner
    other = await create_profile(db, "Other")
    foreign = await create_chat_session(db, other, course, "Private")
    headers = auth_headers(student.id)

    if method == "get_messages":
        response = await client.get(f"/course-chat/sessions/{foreign.id}/messages", headers=headers)
    elif method == "patch":
        response = await client.patch(f"/course-chat/sessions/{foreign.id}", json={"title": "x"}, headers=headers)
    else:
        response = await client.delete(f"/course-chat/sessions/{foreign.id}", headers=headers)

    assert response.status_code == 404
    assert response.json() == {"error": "Chat session not found"}


async def test_unknown_session_is_not_found(client, learner):
    student, _ = learner

    response = await client.get(f"/course-chat/sessions/{uuid4()}/messages", headers=auth_headers(student.id))

    assert response.status_code == 404

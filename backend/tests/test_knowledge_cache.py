"""Tests for the per-course knowledge text cache."""

import hashlib

from conftest import create_course, create_profile

from app.services import knowledge_cache


async def test_put_then_get_returns_text(db):
    course = await create_course(db, await create_profile(db))

    await knowledge_cache.put(db, course.id, "cell biology notes", "abc123")
    await db.commit()

    assert await knowledge_cache.get(db, course.id) == "cell biology notes"
    entry = await knowledge_cache.get_entry(db, course.id)
    assert entry.file_hash == "abc123"


async def test_second_put_overwrites(db):
    course = await create_course(db, await create_profile(db))

    await knowledge_cache.put(db, course.id, "first", "h1")
    await knowledge_cache.put(db, course.id, "second", "h2")
    await db.commit()

    assert await knowledge_cache.get(db, course.id) == "second"
    assert (await knowledge_cache.get_entry(db, course.id)).file_hash == "h2"


async def test_miss_and_empty_text(db):
    course = await create_course(db, await create_profile(db))

    assert await knowledge_cache.get(db, course.id) is None

    await knowledge_cache.put(db, course.id, "", "h")
    await db.commit()
    assert await knowledge_cache.get(db, course.id) is None


async def test_clear(db):
    course = await create_course(db, await create_profile(db))
    await knowledge_cache.put(db, course.id, "text", "h")
    await db.commit()

    assert await knowledge_cache.clear(db, course.id) is True
    await db.commit()
    assert await knowledge_cache.get(db, course.id) is None
    assert await knowledge_cache.clear(db, course.id) is False


def test_content_hash_is_sha256_hex():
    assert knowledge_cache.content_hash(b"abc") == hashlib.sha256(b"abc").hexdigest()

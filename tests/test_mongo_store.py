"""MongoScheduleStore y repos: traducción de errores y semántica de los updates en Mongo.

Los tests de integración usan Motor contra un MongoDB real
(`SCHEDSYNC_TEST_MONGO_URI`, por defecto localhost) y se saltan si no hay servidor.
"""
import asyncio
import os
from uuid import uuid4

import pytest
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import MongoClient
from pymongo.errors import AutoReconnect, PyMongoError

from factories import make_schedule
from schedsync.domain.schedules.errors import InstructorNotFoundError, StaleInstructorError, StoreError
from schedsync.domain.schedules.schemas import PendingPropagation
from schedsync.domain.schedules.validation import to_copy
from schedsync.infrastructure.db import mongo_async
from schedsync.repositories import subjects_repo, teachers_repo
from schedsync.services.data_access import MongoScheduleStore

MONGO_URI = os.getenv("SCHEDSYNC_TEST_MONGO_URI", "mongodb://localhost:27017")


def _pending(schedule_id: str, token: str) -> PendingPropagation:
    return PendingPropagation(token=token, schedule_id=schedule_id, action="upsert", subject_id="su1")


# ---- sin servidor: repos reemplazados con monkeypatch ----


def test_pymongo_error_becomes_store_error(monkeypatch):
    async def down(*args, **kwargs):
        raise AutoReconnect("primary down")

    monkeypatch.setattr(subjects_repo, "upsert_copy", down)
    copy = to_copy(make_schedule(id="s1", subject_id="su1"), "ins_1")

    with pytest.raises(StoreError) as exc:
        asyncio.run(MongoScheduleStore().upsert_subject_schedule_copy("su1", copy))
    assert isinstance(exc.value.cause, AutoReconnect)
    assert exc.value.status_code == 503


def test_failed_write_is_stale_when_teacher_exists(monkeypatch):
    async def no_match(*args, **kwargs):
        return None

    async def exists(instructor_id):
        return True

    monkeypatch.setattr(teachers_repo, "write_schedules", no_match)
    monkeypatch.setattr(teachers_repo, "teacher_exists", exists)

    with pytest.raises(StaleInstructorError):
        asyncio.run(MongoScheduleStore().write_instructor_schedules("ins_1", [], expected_version=3))


def test_failed_write_is_not_found_when_teacher_missing(monkeypatch):
    async def no_match(*args, **kwargs):
        return None

    async def missing(instructor_id):
        return False

    monkeypatch.setattr(teachers_repo, "write_schedules", no_match)
    monkeypatch.setattr(teachers_repo, "teacher_exists", missing)

    with pytest.raises(InstructorNotFoundError):
        asyncio.run(MongoScheduleStore().write_instructor_schedules("nobody", []))


def test_copies_are_sent_as_plain_documents(monkeypatch):
    sent = []

    async def capture(subject_id, copy):
        sent.append((subject_id, copy))
        return True

    monkeypatch.setattr(subjects_repo, "upsert_copy", capture)
    copy = to_copy(make_schedule(id="s1", days=["Monday"], subject_id="su1"), "ins_1")

    assert asyncio.run(MongoScheduleStore().upsert_subject_schedule_copy("su1", copy)) is True
    subject_id, doc = sent[0]
    assert subject_id == "su1"
    assert doc["schedule_id"] == "s1"
    assert doc["instructor_id"] == "ins_1"
    assert doc["days"] == ["mon"]


# ---- con servidor ----


@pytest.fixture(scope="module")
def mongo_uri():
    client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=1500)
    try:
        client.admin.command("ping")
    except PyMongoError:
        pytest.skip("MongoDB no disponible para tests de integración")
    finally:
        client.close()
    return MONGO_URI


@pytest.fixture()
def run_db(mongo_uri, monkeypatch):
    """Corre `scenario(db)` en una base temporal que los repos ven vía `get_async_db()`."""

    def run(scenario):
        async def main():
            client = AsyncIOMotorClient(mongo_uri, serverSelectionTimeoutMS=1500)
            name = f"schedsync_test_{uuid4().hex[:8]}"
            db = client[name]
            monkeypatch.setattr(mongo_async, "_adb", db)
            try:
                return await scenario(db)
            finally:
                await client.drop_database(name)
                client.close()

        return asyncio.run(main())

    return run


def test_upsert_twice_leaves_one_copy(run_db):
    store = MongoScheduleStore()
    copy = to_copy(make_schedule(id="s1", subject_id="su1"), "ins_1")

    async def scenario(db):
        await db["subjects"].insert_one({"_id": "su1", "schedules": [], "instructor_ids": ["ins_1"]})
        assert await store.upsert_subject_schedule_copy("su1", copy)
        assert await store.upsert_subject_schedule_copy("su1", copy)
        assert not await store.upsert_subject_schedule_copy("ghost", copy)
        return await db["subjects"].find_one({"_id": "su1"})

    doc = run_db(scenario)
    assert [c["schedule_id"] for c in doc["schedules"]] == ["s1"]
    assert doc["instructor_ids"] == ["ins_1"]


def test_dollar_prefixed_id_is_matched_literally(run_db):
    store = MongoScheduleStore()
    other = to_copy(make_schedule(id="s1", subject_id="su1"), "ins_1")
    odd = to_copy(make_schedule(id="$oops", days=["tue"], subject_id="su1"), "ins_1")

    async def scenario(db):
        await db["subjects"].insert_one({"_id": "su1"})
        await store.upsert_subject_schedule_copy("su1", other)
        await store.upsert_subject_schedule_copy("su1", odd)
        await store.upsert_subject_schedule_copy("su1", odd)
        return await store.list_subject_schedule_copies("su1")

    assert [c.schedule_id for c in run_db(scenario)] == ["s1", "$oops"]


def test_remove_copy_is_idempotent(run_db):
    store = MongoScheduleStore()
    copy = to_copy(make_schedule(id="s1", subject_id="su1"), "ins_1")

    async def scenario(db):
        await db["subjects"].insert_one({"_id": "su1"})
        await store.upsert_subject_schedule_copy("su1", copy)
        await store.remove_subject_schedule_copy("su1", "s1")
        await store.remove_subject_schedule_copy("su1", "s1")
        return await store.find_subjects_with_copy("s1")

    assert run_db(scenario) == []


def test_write_uses_version_compare_and_swap(run_db):
    store = MongoScheduleStore()
    s = make_schedule(id="s1")

    async def scenario(db):
        # Documento sin contador: cuenta como versión 0
        await db["teachers"].insert_one({"_id": "ins_1", "schedules": []})
        first = await store.write_instructor_schedules("ins_1", [s], expected_version=0, pending=_pending("s1", "t1"))
        with pytest.raises(StaleInstructorError):
            await store.write_instructor_schedules("ins_1", [], expected_version=0)
        second = await store.write_instructor_schedules("ins_1", [s], expected_version=1, pending=_pending("s1", "t2"))
        with pytest.raises(InstructorNotFoundError):
            await store.write_instructor_schedules("nobody", [s], expected_version=0)
        return first, second, await store.load_instructor("ins_1")

    first, second, record = run_db(scenario)
    assert (first, second) == (1, 2)
    assert record.version == 2
    assert [x.id for x in record.schedules] == ["s1"]
    # El marcador más nuevo reemplaza al anterior del mismo horario
    assert [p.token for p in record.pending] == ["t2"]


def test_pending_markers_are_listed_and_cleared(run_db):
    store = MongoScheduleStore()

    async def scenario(db):
        await db["teachers"].insert_one({"_id": "ins_1", "schedules": [], "schedules_version": 0})
        await store.write_instructor_schedules("ins_1", [], expected_version=0, pending=_pending("s1", "t1"))
        await store.write_instructor_schedules("ins_1", [], expected_version=1, pending=_pending("s2", "t2"))
        listed = await store.list_pending()
        await store.clear_pending("ins_1", "t1")
        return listed, await store.list_pending()

    listed, after = run_db(scenario)
    assert [(iid, p.token) for iid, p in listed] == [("ins_1", "t1"), ("ins_1", "t2")]
    assert [(iid, p.token) for iid, p in after] == [("ins_1", "t2")]


def test_conditional_section_clear_keeps_other_schedule(run_db):
    store = MongoScheduleStore()
    held = to_copy(make_schedule(id="a"), "ins_1")

    async def scenario(db):
        await db["sections"].insert_one({"_id": "se1", "instructor_id": "ins_1"})
        assert await store.set_section_schedule("se1", held)
        cleared_other = await store.set_section_schedule("se1", None, only_if_schedule_id="b")
        kept = await store.get_section("se1")
        cleared_own = await store.set_section_schedule("se1", None, only_if_schedule_id="a")
        return cleared_other, kept, cleared_own, await store.get_section("se1")

    cleared_other, kept, cleared_own, final = run_db(scenario)
    assert cleared_other is False
    assert kept["schedule"]["schedule_id"] == "a"
    assert cleared_own is True
    assert final["schedule"] is None
    assert final["id"] == "se1"


def test_reassign_swaps_only_affected_instructors(run_db):
    store = MongoScheduleStore()
    old = to_copy(make_schedule(id="o1", subject_id="su1"), "old")
    other = to_copy(make_schedule(id="x1", subject_id="su1"), "other")
    incoming = to_copy(make_schedule(id="n1", subject_id="su1"), "new")

    async def scenario(db):
        await db["subjects"].insert_one({"_id": "su1", "instructor_ids": ["old", "other"]})
        await store.upsert_subject_schedule_copy("su1", old)
        await store.upsert_subject_schedule_copy("su1", other)
        rebuilt = await store.reassign_subject_copies("su1", "old", "new", [incoming])
        missing = await store.reassign_subject_copies("ghost", "old", "new", [incoming])
        return rebuilt, missing, await db["subjects"].find_one({"_id": "su1"})

    rebuilt, missing, doc = run_db(scenario)
    assert [c.schedule_id for c in rebuilt] == ["x1", "n1"]
    assert missing == []
    assert doc["instructor_ids"] == ["other", "new"]

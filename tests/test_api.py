import pytest
from fastapi.testclient import TestClient

from factories import InMemoryScheduleStore
from schedsync.api import deps
from schedsync.core.config import settings
from schedsync.main import app

BASE = settings.api_prefix_normalized


def _slot(**overrides):
    body = {"days": ["Monday"], "start_time": "08:00", "end_time": "09:00", "room_name": "Room A"}
    body.update(overrides)
    return body


@pytest.fixture()
def api_store(monkeypatch, test_settings):
    store = InMemoryScheduleStore()
    store.add_teacher("ins_1")
    store.add_subject("su1")
    store.add_section("se1", instructor_id="ins_1")
    monkeypatch.setattr(deps, "settings", test_settings)
    app.dependency_overrides[deps.get_schedule_store] = lambda: store
    yield store
    app.dependency_overrides.clear()


@pytest.fixture()
def client(api_store):
    return TestClient(app)


def test_ping_and_health(client):
    assert client.get(f"{BASE}/ping").json() == {"message": "pong"}
    body = client.get(f"{BASE}/health").json()
    assert body["ok"] is True
    assert body["mongo_ready"] is False


def test_create_list_and_delete(client, api_store):
    r = client.post(f"{BASE}/instructors/ins_1/schedules", json=_slot(subject_id="su1", section_id="se1"))
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "settled"
    assert body["data"]["days"] == ["mon"]
    sid = body["id"]
    assert api_store.subject_copy_ids("su1") == [sid]
    assert r.headers.get("X-Request-Id")

    listed = client.get(f"{BASE}/instructors/ins_1/schedules").json()
    assert [s["id"] for s in listed["schedules"]] == [sid]

    assert client.delete(f"{BASE}/instructors/ins_1/schedules/{sid}").status_code == 204
    assert client.delete(f"{BASE}/instructors/ins_1/schedules/{sid}").status_code == 204
    assert api_store.subjects["su1"]["schedules"] == []


def test_conflict_returns_409_with_conflicts(client):
    client.post(f"{BASE}/instructors/ins_1/schedules", json=_slot(subject_code="CS101"))
    r = client.post(f"{BASE}/instructors/ins_1/schedules", json=_slot(start_time="08:30", end_time="09:30", room_name="Room B"))
    assert r.status_code == 409
    body = r.json()
    assert "CS101" in body["message"]
    assert len(body["details"]["conflicts"]) == 1
    assert body["details"]["reason"] == "schedule_conflict"


def test_invalid_range_returns_422(client, api_store):
    r = client.post(f"{BASE}/instructors/ins_1/schedules", json=_slot(start_time="10:00", end_time="09:00"))
    assert r.status_code == 422
    assert r.json()["details"]["reason"] == "invalid_time_range"
    assert api_store.writes() == []


def test_malformed_body_returns_422(client):
    r = client.post(f"{BASE}/instructors/ins_1/schedules", json=_slot(days=["Someday"]))
    assert r.status_code == 422
    assert r.json()["message"] == "Validation error"


def test_partial_propagation_returns_202(client, api_store):
    api_store.fail_next("upsert_subject_schedule_copy", times=3)
    r = client.post(f"{BASE}/instructors/ins_1/schedules", json=_slot(subject_id="su1"))
    assert r.status_code == 202
    body = r.json()
    assert body["status"] == "partial"
    assert body["stage"] == "subject"
    assert [s.id for s in api_store.teachers["ins_1"]["schedules"]] == [body["id"]]

    report = client.post(f"{BASE}/sync/reconcile").json()
    assert report == {"retried": 1, "settled": 1, "failed": []}
    assert api_store.subject_copy_ids("su1") == [body["id"]]


def test_update_and_check(client):
    sid = client.post(f"{BASE}/instructors/ins_1/schedules", json=_slot()).json()["id"]
    moved = _slot(start_time="08:30", end_time="09:30")

    check = client.post(f"{BASE}/instructors/ins_1/schedules/check", json=moved).json()
    assert check["has_conflict"] is True
    check = client.post(f"{BASE}/instructors/ins_1/schedules/check", params={"exclude_id": sid}, json=moved).json()
    assert check["has_conflict"] is False

    r = client.put(f"{BASE}/instructors/ins_1/schedules/{sid}", json=moved)
    assert r.status_code == 200
    assert r.json()["id"] == sid
    assert r.json()["data"]["start_time"] == "08:30"


def test_unknown_instructor_and_schedule_return_404(client):
    assert client.get(f"{BASE}/instructors/nobody/schedules").status_code == 404
    assert client.post(f"{BASE}/instructors/nobody/schedules", json=_slot()).status_code == 404
    assert client.put(f"{BASE}/instructors/ins_1/schedules/nope", json=_slot()).status_code == 404


def test_section_of_other_instructor_returns_422(client, api_store):
    api_store.add_section("se9", instructor_id="ins_other")
    r = client.post(f"{BASE}/instructors/ins_1/schedules", json=_slot(section_id="se9"))
    assert r.status_code == 422
    assert r.json()["details"]["reason"] == "section_instructor_mismatch"


def test_reassign_and_resync(client, api_store):
    api_store.add_teacher("ins_2")
    client.post(f"{BASE}/instructors/ins_2/schedules", json=_slot(subject_id="su1"))
    client.post(f"{BASE}/instructors/ins_1/schedules", json=_slot(subject_id="su1", section_id="se1"))

    r = client.post(f"{BASE}/subjects/su1/reassign", json={"old_instructor_id": "ins_1", "new_instructor_id": "ins_2"})
    assert r.status_code == 200
    assert {c["instructor_id"] for c in r.json()["schedules"]} == {"ins_2"}
    assert api_store.subjects["su1"]["instructor_ids"] == ["ins_2"]

    r = client.post(f"{BASE}/instructors/ins_1/resync")
    assert r.json() == {"instructor_id": "ins_1", "copies_written": 2}

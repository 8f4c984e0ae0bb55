import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

import main
from database import get_session
from exceptions import PersistenceError


@pytest.fixture
def client(engine):
    def override_session():
        with Session(engine) as session:
            yield session

    main.app.dependency_overrides[get_session] = override_session
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def numbers(payload):
    return [s["enrollment_number"] for s in payload["currentStudents"]]


def test_queue_status_when_idle(client):
    resp = client.get("/api/queue-status")

    assert resp.status_code == 200
    body = resp.json()
    assert body["queueStarted"] is False
    assert body["studentsToShow"] == 5
    assert body["currentBatchStart"] == 1
    assert body["totalStudents"] == 0
    assert body["currentStudents"] == []
    assert "timestamp" in body


def test_admin_flow_over_http(client):
    resp = client.post("/admin/upload", json={"enrollment_list": "A\nB\nC\nD\nE"})
    assert resp.json()["message"] == "Successfully uploaded 5 students"

    client.post("/admin/students-to-show", json={"students_to_show": 2})
    client.post("/admin/start")

    status = client.get("/api/queue-status").json()
    assert status["queueStarted"] is True
    assert status["totalStudents"] == 5
    assert numbers(status) == ["A", "B"]
    assert set(status["currentStudents"][0]) == {
        "id", "enrollment_number", "queue_position", "status", "created_at", "updated_at",
    }

    assert client.post("/admin/next").json()["message"] == "Moved to next batch"
    status = client.get("/api/queue-status").json()
    assert numbers(status) == ["C", "D"]
    assert [s["queue_position"] for s in status["currentStudents"]] == [1, 2]

    client.post("/admin/warn")
    moved = client.post("/admin/move-to-end").json()
    assert moved["message"] == "Student C moved to end of queue"
    assert numbers(client.get("/api/queue-status").json()) == ["D", "E"]

    state = client.get("/admin/state").json()
    assert state["total_students"] == 3
    assert state["warning_student_id"] is None


def test_announcements_feed_drains(client):
    client.post("/admin/upload", json={"enrollment_list": ["A", "B"]})
    client.post("/admin/start")
    client.post("/admin/warn")

    events = client.get("/api/announcements").json()["announcements"]

    assert [e["type"] for e in events] == ["student", "warning"]
    assert client.get("/api/announcements").json()["announcements"] == []


def test_start_without_list_reports_message(client):
    resp = client.post("/admin/start")

    assert resp.status_code == 409
    assert resp.json() == {
        "message": "Please upload student list first",
        "type": "EmptyQueueError",
    }


def test_next_before_start_reports_message(client):
    client.post("/admin/upload", json={"enrollment_list": "A"})

    resp = client.post("/admin/next")

    assert resp.status_code == 409
    assert resp.json()["message"] == "Please start the queue first"


def test_students_to_show_must_be_positive(client):
    resp = client.post("/admin/students-to-show", json={"students_to_show": 0})

    assert resp.status_code == 422


def test_queue_status_storage_failure(client, monkeypatch):
    def failing_status(session):
        raise PersistenceError("Failed to fetch queue status")

    monkeypatch.setattr(main, "get_status", failing_status)

    resp = client.get("/api/queue-status")

    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to fetch queue status"}


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["database"] == "connected"
    assert resp.json()["redis"] == "not configured"
    assert resp.json()["pending_announcements"] == 0

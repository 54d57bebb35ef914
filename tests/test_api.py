"""Tests for the HTTP and WebSocket surface."""

import asyncio

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.main import app, build_services, push_latest

from tests.conftest import HR_ID, JOB_ID, SCREENING_ID, TECHNICAL_ID, seed_candidate


@pytest.fixture
def client(fake_db, monkeypatch):
    monkeypatch.setenv("AUTO_PROGRESS_STAGE_DELAY", "0")
    app.state.services = build_services(fake_db)
    yield TestClient(app)
    del app.state.services


SCHEDULE_BODY = {
    "stage_id": SCREENING_ID,
    "scheduled_at": "2026-02-02T10:30:00Z",
    "meeting_link": "https://meet.example.com/abc",
    "attendees": ["lead@example.com"],
}


def test_health(client):
    assert client.get("/").json() == {"status": "ok"}


def test_list_stages(client, stages):
    response = client.get("/pipeline/stages", params={"job_id": JOB_ID})

    assert response.status_code == 200
    assert [stage["name"] for stage in response.json()["stages"]] == ["Screening", "Technical", "HR"]
    assert len(response.json()["human_facing"]) == 3


def test_schedule_then_advance(client, candidate):
    scheduled = client.post("/pipeline/candidates/cand-1/schedule", json=SCHEDULE_BODY)
    assert scheduled.status_code == 200
    assert scheduled.json()["notification_sent"] is True
    assert scheduled.json()["event"]["status"] == "pending"

    advanced = client.post("/pipeline/candidates/cand-1/advance")
    assert advanced.status_code == 200
    assert advanced.json()["current_stage"]["id"] == TECHNICAL_ID

    progress = client.get("/pipeline/candidates/cand-1/progress")
    assert progress.json() == {"candidate_id": "cand-1", "progress": 33}

    view = client.get("/pipeline/candidates/cand-1")
    assert [step["status"] for step in view.json()["steps"]] == ["completed", "current", "pending"]


def test_schedule_notification_failure_still_succeeds(client, fake_db, candidate):
    fake_db.functions.script("send-interview-invitation", RuntimeError("mail down"))

    response = client.post("/pipeline/candidates/cand-1/schedule", json=SCHEDULE_BODY)

    assert response.status_code == 200
    assert response.json()["notification_sent"] is False
    assert "mail down" in response.json()["notification_error"]


def test_schedule_without_link_is_bad_request(client, candidate):
    body = {**SCHEDULE_BODY, "meeting_link": None}

    response = client.post("/pipeline/candidates/cand-1/schedule", json=body)

    assert response.status_code == 400
    assert response.json()["error_type"] == "ValidationFailure"


def test_unknown_candidate_is_not_found(client, stages):
    response = client.post("/pipeline/candidates/ghost/advance")

    assert response.status_code == 404
    assert response.json()["error_type"] == "NotFound"


def test_final_stage_advance_is_ok_and_not_advanced(client, fake_db, stages):
    seed_candidate(fake_db, "cand-1", current_stage_id=HR_ID)

    response = client.post("/pipeline/candidates/cand-1/advance")

    assert response.status_code == 200
    assert response.json()["advanced"] is False


def test_illegal_status_change_is_bad_request(client, fake_db, candidate):
    fake_db.seed("interview_events", {"interview_candidate_id": "cand-1", "stage_id": SCREENING_ID, "status": "passed"})

    response = client.put(
        f"/pipeline/candidates/cand-1/stages/{SCREENING_ID}/status",
        json={"status": "in_progress"}
    )

    assert response.status_code == 400
    assert response.json()["error_type"] == "InvalidTransition"


def test_unknown_status_value_is_rejected_by_schema(client, candidate):
    response = client.put(f"/pipeline/candidates/cand-1/stages/{SCREENING_ID}/status", json={"status": "hired"})

    assert response.status_code == 422


def test_bulk_move_multi_status(client, fake_db, stages):
    seed_candidate(fake_db, "cand-a")
    seed_candidate(fake_db, "cand-b")
    fake_db.fail("interview_candidates", "update", id="cand-b")

    response = client.post("/pipeline/bulk-move", json={"candidate_ids": ["cand-a", "cand-b"], "stage_id": HR_ID})

    assert response.status_code == 207
    items = response.json()["items"]
    assert [item["success"] for item in items] == [True, False]


def test_bulk_move_all_succeeded(client, fake_db, stages):
    seed_candidate(fake_db, "cand-a")

    response = client.post("/pipeline/bulk-move", json={"candidate_ids": ["cand-a"], "stage_id": HR_ID})

    assert response.status_code == 200


def test_remove_candidate_cascade_failure(client, fake_db, candidate):
    fake_db.seed("interview_events", {"interview_candidate_id": "cand-1", "stage_id": SCREENING_ID, "status": "pending"})
    fake_db.fail("interview_events", "delete")

    response = client.delete("/pipeline/candidates/cand-1")

    assert response.status_code == 500
    body = response.json()
    assert body["requires_manual_cleanup"] is True
    assert body["completed_steps"] == ["responses", "invitations"]
    assert body["failed_step"] == "events"


def test_remove_candidate_first_step_failure_is_retryable(client, fake_db, candidate):
    fake_db.seed("interview_events", {"interview_candidate_id": "cand-1", "stage_id": SCREENING_ID, "status": "pending"})
    fake_db.fail("interview_responses", "delete")

    response = client.delete("/pipeline/candidates/cand-1")

    assert response.status_code == 500
    body = response.json()
    assert body["error_type"] == "PersistenceError"
    assert body["requires_manual_cleanup"] is False
    assert "completed_steps" not in body
    assert len(fake_db.rows("interview_candidates", id="cand-1")) == 1


def test_remove_candidate(client, fake_db, candidate):
    response = client.delete("/pipeline/candidates/cand-1")

    assert response.status_code == 200
    assert response.json()["completed_steps"][-1] == "candidate"
    assert fake_db.rows("interview_candidates") == []


def test_scoring_failure_is_bad_gateway(client, fake_db, candidate):
    fake_db.functions.script("analyze-resume", RuntimeError("model unavailable"))

    response = client.post("/pipeline/candidates/cand-1/score", json={"candidate_profile": {}, "job_details": {}})

    assert response.status_code == 502


def test_auto_progress_endpoint(client, fake_db, candidate):
    fake_db.functions.script("evaluate-interview-stage", {"score": 80, "passed": True, "feedback": "Good"})

    response = client.post("/pipeline/candidates/cand-1/auto-progress", json={"auto_progress_all": False})

    assert response.status_code == 200
    assert response.json()["status"] == "progressed"
    assert response.json()["current_stage"] == "Technical"


def test_pipeline_snapshot(client, fake_db, candidate):
    response = client.get(f"/pipeline/jobs/{JOB_ID}")

    assert response.status_code == 200
    assert [len(entry["candidates"]) for entry in response.json()] == [1, 0, 0]


def test_event_socket_sends_snapshot(client, fake_db, candidate):
    fake_db.seed("interview_events", {"interview_candidate_id": "cand-1", "stage_id": SCREENING_ID, "status": "scheduled"})

    with client.websocket_connect("/ws/candidates/cand-1/events") as websocket:
        snapshot = websocket.receive_json()

    assert snapshot["candidate_id"] == "cand-1"
    assert snapshot["stale"] is False
    assert [event["status"] for event in snapshot["events"]] == ["scheduled"]


def test_event_socket_unknown_candidate(client, stages):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/candidates/ghost/events") as websocket:
            websocket.receive_json()


async def test_push_latest_drops_oldest_snapshot_when_full():
    queue = asyncio.Queue(maxsize=2)

    for snapshot in ("first", "second", "third"):
        push_latest(queue, snapshot)

    assert queue.qsize() == 2
    assert [queue.get_nowait(), queue.get_nowait()] == ["second", "third"]

from datetime import date

import pytest

from app.models.scheduled_session import ScheduledSession
from app.models.scheduling_batch import TimetableKind
from app.services import batch_control, batch_orchestrator
from factories import seed_two_units_one_class

EXAM_BODY = {
    "kind": "exam_timetable",
    "start_date": "2026-11-02",
    "end_date": "2026-11-02",
    "start_time": "09:00",
    "exam_duration_hours": 2,
    "break_minutes": 30,
    "slots_per_day": 1,
}
OPERATOR = {"X-Operator": "registrar"}


@pytest.fixture
def semester_id(db_session):
    seeded = seed_two_units_one_class(db_session)
    semester_id = seeded["semester"].id
    db_session.close()
    return semester_id


def _run(client, semester_id, body=None):
    response = client.post(f"/api/semesters/{semester_id}/batches", json=body or EXAM_BODY, headers=OPERATOR)
    assert response.status_code == 201, response.text
    return response.json()


def test_run_batch_and_summary(client, semester_id):
    payload = _run(client, semester_id)

    assert payload["batch"]["status"] == "completed"
    assert payload["batch"]["triggered_by"] == "registrar"
    assert [row["unit_code"] for row in payload["placements"]] == ["UNITA"]
    failure = payload["failures"][0]
    assert failure["failure_kind"] == "VenueConflict"
    assert failure["attempted_date"] == "2026-11-02"
    assert failure["conflict_details"][0]["kind"] == "VenueConflict"

    batch_id = payload["batch"]["id"]
    summary = client.get(f"/api/batches/{batch_id}/summary")
    assert summary.status_code == 200
    assert summary.json()["by_status"]["pending"] == 1

    placements = client.get(f"/api/semesters/{semester_id}/placements", params={"batch_id": batch_id})
    assert [row["venue_code"] for row in placements.json()] == ["EX1"]


def test_exam_batch_requires_dates(client, semester_id):
    body = {key: value for key, value in EXAM_BODY.items() if key != "end_date"}
    response = client.post(f"/api/semesters/{semester_id}/batches", json=body)
    assert response.status_code == 422


def test_held_lock_returns_conflict(client, db_session, semester_id):
    with batch_control.semester_lock(db_session, semester_id):
        response = client.post(f"/api/semesters/{semester_id}/batches", json=EXAM_BODY)

    assert response.status_code == 409
    assert response.json()["details"] == {"semester_id": semester_id}


def test_resolve_requires_notes_then_reopen(client, semester_id):
    failure_id = _run(client, semester_id)["failures"][0]["id"]

    missing = client.post(f"/api/failures/{failure_id}/resolve", json={"status": "resolved"}, headers=OPERATOR)
    assert missing.status_code == 400
    assert missing.json()["message"] == "Resolution notes are required"
    assert client.get(f"/api/failures/{failure_id}").json()["status"] == "pending"

    resolved = client.post(
        f"/api/failures/{failure_id}/resolve",
        json={"status": "resolved", "notes": "Moved to the Saturday sitting"},
        headers=OPERATOR,
    )
    assert resolved.status_code == 200
    assert resolved.json()["status"] == "resolved"
    assert resolved.json()["resolved_by"] == "registrar"

    again = client.post(
        f"/api/failures/{failure_id}/resolve",
        json={"status": "ignored", "notes": "duplicate"},
        headers=OPERATOR,
    )
    assert again.status_code == 409

    reopened = client.post(f"/api/failures/{failure_id}/reopen", json={}, headers=OPERATOR)
    assert reopened.status_code == 200
    assert reopened.json()["status"] == "pending"


def test_resolve_without_operator_is_rejected(client, semester_id):
    failure_id = _run(client, semester_id)["failures"][0]["id"]

    response = client.post(f"/api/failures/{failure_id}/resolve", json={"notes": "fixed"})
    assert response.status_code == 400


def test_program_projection(client, semester_id):
    failure_id = _run(client, semester_id)["failures"][0]["id"]

    row = client.get(f"/api/failures/{failure_id}/projection", params={"shape": "program"}).json()
    assert row["class_name"] == "BSCS 1.1"
    assert row["section"] == "A"
    assert row["failure_reasons"][0]["type"] == "VenueConflict"

    exam_row = client.get(f"/api/failures/{failure_id}/projection").json()
    assert exam_row["assigned_slot_number"] == 1


def test_retry_endpoint_keeps_source_pending_when_still_blocked(client, semester_id):
    first = _run(client, semester_id)
    failure_id = first["failures"][0]["id"]

    retry = client.post("/api/batches/retry", json={"failure_ids": [failure_id]}, headers=OPERATOR)

    assert retry.status_code == 201
    body = retry.json()
    assert body["batch"]["retried_from_batch_id"] == first["batch"]["id"]
    assert body["failures"][0]["retry_of_id"] == failure_id
    assert client.get(f"/api/failures/{failure_id}").json()["status"] == "pending"


def test_failure_listing_and_statistics(client, semester_id):
    _run(client, semester_id)

    listed = client.get("/api/failures", params={"semester_id": semester_id, "search": "unitb"})
    assert [row["unit_code"] for row in listed.json()] == ["UNITB"]
    stats = client.get("/api/failures/statistics", params={"semester_id": semester_id}).json()
    assert stats["total"] == 1
    assert stats["pending"] == 1


def test_worklist_endpoint(client, semester_id):
    response = client.get(f"/api/semesters/{semester_id}/worklist")

    assert response.status_code == 200
    assert [(row["unit_code"], row["student_count"]) for row in response.json()] == [("UNITA", 40), ("UNITB", 40)]


def test_unknown_resources_return_404(client):
    assert client.get("/api/batches/missing").status_code == 404
    assert client.get("/api/batches/missing/summary").status_code == 404
    assert client.get("/api/failures/missing").status_code == 404
    assert client.post("/api/batches/missing/cancel").status_code == 404
    assert client.post("/api/semesters/999/batches", json=EXAM_BODY).status_code == 404


def test_cancel_finished_batch_conflicts(client, semester_id):
    batch_id = _run(client, semester_id)["batch"]["id"]

    response = client.post(f"/api/batches/{batch_id}/cancel")
    assert response.status_code == 409


def test_cancel_running_batch_by_client_batch_id(client, semester_id, monkeypatch):
    seen: dict = {}
    real_plan_batch = batch_orchestrator.plan_batch

    def plan_after_cancel(*args, **kwargs):
        seen["active"] = client.get(f"/api/semesters/{semester_id}/batches/active").json()
        seen["cancel"] = client.post("/api/batches/nightly-1/cancel", headers=OPERATOR)
        return real_plan_batch(*args, **kwargs)

    monkeypatch.setattr(batch_orchestrator, "plan_batch", plan_after_cancel)

    payload = _run(client, semester_id, {**EXAM_BODY, "batch_id": "nightly-1"})

    assert seen["active"] == {"semester_id": semester_id, "batch_ids": ["nightly-1"]}
    assert seen["cancel"].status_code == 202
    assert seen["cancel"].json() == {"batch_id": "nightly-1", "cancel_requested": True}
    assert payload["batch"]["id"] == "nightly-1"
    assert payload["batch"]["status"] == "cancelled"
    assert payload["placements"] == []
    assert {row["failure_kind"] for row in payload["failures"]} == {"BatchCancelled"}
    assert client.get(f"/api/semesters/{semester_id}/batches/active").json()["batch_ids"] == []


def test_client_batch_id_cannot_be_reused(client, semester_id):
    _run(client, semester_id, {**EXAM_BODY, "batch_id": "nightly-1"})

    response = client.post(
        f"/api/semesters/{semester_id}/batches",
        json={**EXAM_BODY, "batch_id": "nightly-1"},
    )
    assert response.status_code == 409
    assert response.json()["details"] == {"batch_id": "nightly-1"}


def test_active_batches_unknown_semester(client):
    assert client.get("/api/semesters/999/batches/active").status_code == 404


def test_conflict_audit_reports_manual_double_booking(client, db_session, semester_id):
    placed = _run(client, semester_id)["placements"][0]
    assert client.get(f"/api/semesters/{semester_id}/conflicts").json() == []

    db_session.add(
        ScheduledSession(
            batch_id="manual-edit",
            semester_id=semester_id,
            kind=TimetableKind.exam_timetable,
            unit_id=999,
            unit_code="MANUAL1",
            class_ids=[999],
            day=placed["day"],
            session_date=date.fromisoformat(placed["session_date"]),
            start_time=placed["start_time"],
            end_time=placed["end_time"],
            venue_id=placed["venue_id"],
            venue_code=placed["venue_code"],
            lecturer_code="L777",
            student_count=10,
        )
    )
    db_session.commit()

    response = client.get(f"/api/semesters/{semester_id}/conflicts", params={"kind": "exam_timetable"})
    assert response.status_code == 200
    assert [row["kind"] for row in response.json()] == ["VenueConflict"]
    assert client.get("/api/semesters/999/conflicts").status_code == 404


def test_timetable_websocket_reports_connections(client, semester_id):
    with client.websocket_connect(f"/api/ws/timetable/{semester_id}") as websocket:
        assert websocket.receive_json() == {"event": "connected", "semester_id": semester_id, "connections": 1}
        websocket.send_text("ping")
        assert websocket.receive_json() == {"event": "pong"}

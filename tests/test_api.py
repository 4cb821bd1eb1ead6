from __future__ import annotations

import pytest

from src.attendance_sync.attendance_sync.main import create_app

from tests.fakes import learner, make_container, staff

HEADERS = {"X-Tenant-ID": "t1", "X-User-ID": "admin-1"}


@pytest.fixture
def container():
    return make_container([learner("L1"), learner("L2"), staff("S1")])


@pytest.fixture
def client(monkeypatch, container):
    monkeypatch.setenv("APP_ENV", "testing")
    app = create_app(container=container)
    return app.test_client()


def _register_gate(client) -> int:
    res = client.post("/attendance/kiosk/devices", json={"branch_id": "b1", "device_code": "gate-1"}, headers=HEADERS)
    assert res.status_code == 200
    return res.get_json()["device"]["device_id"]


def _push_check_in(client, key="k1", user_id="L1"):
    item = {
        "idempotency_key": key,
        "tenant_id": "t1",
        "branch_id": "b1",
        "subject_type": "LEARNER",
        "subject_user_id": user_id,
        "event_type": "CHECK_IN",
        "source": "KIOSK_SCAN",
        "captured_at_device": "2026-03-02T07:35:00",
    }
    return client.post("/sync/push", json={"events": [item]}, headers=HEADERS)


def test_missing_tenant_header_is_refused(client):
    res = client.get("/attendance/policy")

    assert res.status_code == 400
    assert res.get_json() == {"status": "error", "message": "Missing X-Tenant-ID header"}


def test_non_object_body_is_a_validation_error(client):
    res = client.post("/sync/push", data="[]", content_type="application/json", headers=HEADERS)

    assert res.status_code == 400
    assert res.get_json()["status"] == "error"


def test_kiosk_scan_records_and_answers_with_subject(client, container):
    device_id = _register_gate(client)
    token = container.tokens.issue("L1", tenant_id="t1")

    res = client.post(
        "/attendance/kiosk/scan",
        json={"qr_token": token, "device_id": device_id, "idempotency_key": "gate-1-a", "captured_at": "2026-03-02T07:35:00"},
        headers=HEADERS,
    )

    body = res.get_json()
    assert res.status_code == 200
    assert body["status"] == "success"
    assert body["event_type"] == "CHECK_IN"
    assert body["learner_name"] == "Learner L1"
    assert "gate-1-a" in container.events_repo.by_key


def test_kiosk_scan_unknown_device_is_404(client, container):
    token = container.tokens.issue("L1", tenant_id="t1")

    res = client.post("/attendance/kiosk/scan", json={"qr_token": token, "device_id": 999}, headers=HEADERS)

    assert res.status_code == 404


def test_push_then_pull(client):
    _register_gate(client)

    pushed = _push_check_in(client)
    replay = _push_check_in(client)
    pulled = client.get("/sync/pull?branch_id=b1", headers=HEADERS)

    assert pushed.get_json()["results"] == [{"idempotency_key": "k1", "status": "created"}]
    assert replay.get_json()["results"] == [{"idempotency_key": "k1", "status": "duplicate"}]
    data = pulled.get_json()
    assert [d["device_code"] for d in data["devices"]] == ["gate-1"]
    assert "server_time" in data


def test_exception_review_round_trip(client):
    _push_check_in(client)

    listed = client.get("/attendance/exceptions?branch_id=b1", headers=HEADERS).get_json()["exceptions"]
    assert [row["subject_user_id"] for row in listed] == ["L1"]
    assert listed[0]["flags"]["missing_checkout"] is True

    summary_id = listed[0]["id"]
    res = client.patch(
        f"/attendance/exceptions/{summary_id}/resolve",
        json={"reason": "Left with parent, scanner was off", "new_status": "PRESENT"},
        headers=HEADERS,
    )
    assert res.status_code == 200
    assert res.get_json()["summary"]["overridden_by"] == "admin-1"

    again = client.patch(
        f"/attendance/exceptions/{summary_id}/resolve", json={"reason": "again", "new_status": "ABSENT"}, headers=HEADERS
    )
    assert again.status_code == 409
    assert client.get("/attendance/exceptions", headers=HEADERS).get_json()["exceptions"] == []


def test_resolve_unknown_summary_is_404(client):
    res = client.patch("/attendance/exceptions/42/resolve", json={"reason": "x", "new_status": "PRESENT"}, headers=HEADERS)

    assert res.status_code == 404


def test_event_override_keeps_raw_event(client, container):
    _push_check_in(client)
    event = container.events_repo.by_key["k1"]

    res = client.patch(
        f"/attendance/override/event/{event.event_id}",
        json={"reason": "Was leaving, not arriving", "new_event_type": "CHECK_OUT"},
        headers=HEADERS,
    )
    missing_reason = client.patch(f"/attendance/override/event/{event.event_id}", json={}, headers=HEADERS)

    body = res.get_json()
    assert res.status_code == 200
    assert body["override"]["overridden_by"] == "admin-1"
    assert body["override"]["new_event_type"] == "CHECK_OUT"
    assert body["summary"]["earliest_check_in"] is None
    assert container.events_repo.by_key["k1"].event_type.value == "CHECK_IN"
    assert missing_reason.status_code == 400
    assert client.patch("/attendance/override/event/999", json={"reason": "x"}, headers=HEADERS).status_code == 404


def test_class_register_submit_read_and_finalize(client, container):
    body = {
        "branch_id": "b1",
        "class_id": "3A",
        "date": "2026-03-02",
        "marks": [{"learner_user_id": "L1", "status": "PRESENT"}, {"learner_user_id": "L2", "status": "ABSENT"}],
    }

    submitted = client.post("/attendance/register", json=body, headers=HEADERS)
    fetched = client.get("/attendance/register/3A/2026-03-02", headers=HEADERS)
    final = client.post("/attendance/register/3A/2026-03-02/finalize", headers=HEADERS)
    locked = client.post("/attendance/register", json=body, headers=HEADERS)

    assert submitted.status_code == 200
    assert submitted.get_json()["register"]["teacher_user_id"] == "admin-1"
    assert [m["status"] for m in fetched.get_json()["register"]["marks"]] == ["PRESENT", "ABSENT"]
    assert final.get_json()["register"]["is_final"] is True
    assert locked.status_code == 409
    assert "register-3A-2026-03-02-L2-r1" in container.events_repo.by_key
    assert client.get("/attendance/register/4B/2026-03-02", headers=HEADERS).status_code == 404


def test_policy_get_default_then_save(client):
    res = client.get("/attendance/policy?branch_id=b1", headers=HEADERS)
    assert res.get_json()["is_default"] is True

    saved = client.put(
        "/attendance/policy", json={"branch_id": "b1", "grace_minutes": 10, "anti_passback_minutes": 2}, headers=HEADERS
    )
    assert saved.status_code == 200
    assert saved.get_json()["regraded"] == 0

    res = client.get("/attendance/policy?branch_id=b1", headers=HEADERS)
    assert res.get_json()["is_default"] is False
    assert res.get_json()["policy"]["grace_minutes"] == 10


def test_learner_badge_is_png(client):
    res = client.get("/attendance/learners/L1/qr.png", headers=HEADERS)

    assert res.status_code == 200
    assert res.mimetype == "image/png"
    assert res.data.startswith(b"\x89PNG")


def test_unknown_learner_badge_is_404(client):
    assert client.get("/attendance/learners/nobody/qr.png", headers=HEADERS).status_code == 404


def test_early_leave_request_then_approval(client, container):
    res = client.post(
        "/attendance/early-leave",
        json={"learner_user_id": "L1", "date": "2026-03-02", "pickup_person_name": "An", "pickup_person_relation": "Aunt"},
        headers=HEADERS,
    )
    assert res.status_code == 201
    request_id = res.get_json()["request"]["request_id"]
    assert res.get_json()["request"]["status"] == "PENDING"

    approved = client.patch(f"/attendance/early-leave/{request_id}/approve", headers=HEADERS)
    again = client.patch(f"/attendance/early-leave/{request_id}/reject", json={"reason": "no"}, headers=HEADERS)
    listed = client.get("/attendance/early-leave?status=APPROVED&date=2026-03-02", headers=HEADERS)

    assert approved.status_code == 200
    assert approved.get_json()["request"]["approved_by"] == "admin-1"
    assert container.early_leave_repo.requests[request_id].approved_by == "admin-1"
    assert again.status_code == 409
    assert [r["request_id"] for r in listed.get_json()["requests"]] == [request_id]


def test_unknown_early_leave_request_is_404(client):
    assert client.patch("/attendance/early-leave/42/approve", headers=HEADERS).status_code == 404


def test_rollup_and_learner_branch_view(client):
    _push_check_in(client)

    rollup = client.post("/attendance/rollup", json={"branch_id": "b1", "date": "2026-03-02"}, headers=HEADERS)
    view = client.get("/attendance/learner/branch?branch_id=b1&date=2026-03-02", headers=HEADERS).get_json()

    assert rollup.get_json()["computed"] == 3
    assert [row["learner_id"] for row in view["learners"]] == ["L1", "L2"]
    assert view["learners"][0]["earliest_check_in"] == "2026-03-02T07:35:00"


def test_weekly_rollup_totals_the_week(client):
    _push_check_in(client)
    client.post("/attendance/rollup", json={"branch_id": "b1", "date": "2026-03-02"}, headers=HEADERS)

    res = client.get("/attendance/rollup/weekly?branch_id=b1&week_of=2026-03-05", headers=HEADERS)

    rows = {row["subject_user_id"]: row for row in res.get_json()["subjects"]}
    assert res.status_code == 200
    assert rows["L1"]["week_start"] == "2026-03-02"
    assert rows["L1"]["days_present"] == 1
    assert rows["L2"]["days_absent"] == 1


def test_staff_today_lists_branch_staff(client):
    data = client.get("/attendance/staff/today?branch_id=b1", headers=HEADERS).get_json()

    assert [row["user_id"] for row in data["staff"]] == ["S1"]
    assert data["staff"][0]["checked_in"] is False


def test_branch_views_require_branch(client):
    assert client.get("/attendance/staff/today", headers=HEADERS).status_code == 400

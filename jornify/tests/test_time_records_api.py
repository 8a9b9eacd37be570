from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from jornify.database import SessionLocal
from jornify.main import app
from jornify.models.time_record import TimeRecord
from jornify.services.hash_chain import ChainRecord, amend_record, append_record, compute_row_hash, record_to_dict

client = TestClient(app)

T0 = datetime(2024, 5, 6, 8, 0, tzinfo=timezone.utc)


def _auth_headers(company_id: int, user_id: str = "test", role: str = "company") -> dict:
    r = client.post("/auth/token", json={"user_id": user_id, "company_id": company_id, "role": role})
    assert r.status_code == 200, r.text
    token = r.json()["access_token"]
    return {"X-Company-Id": str(company_id), "Authorization": f"Bearer {token}"}


def _clock_in(headers: dict, employee_id: str, at: datetime, **extra):
    return client.post(
        "/time_records/clock_in",
        json={"employee_id": employee_id, "started_at": at.isoformat(), **extra},
        headers=headers,
    )


def _clock_out(headers: dict, employee_id: str, at: datetime):
    return client.post(
        "/time_records/clock_out",
        json={"employee_id": employee_id, "ended_at": at.isoformat()},
        headers=headers,
    )


def test_clock_in_active_clock_out_flow(employee_factory):
    company_id = 51001
    headers = _auth_headers(company_id)
    e = employee_factory(company_id=company_id)

    pre = client.get("/time_records/active", params={"employee_id": e.id}, headers=headers)
    assert pre.status_code == 404

    r = _clock_in(headers, e.id, T0, notes="site A")
    assert r.status_code == 200, r.text
    opened = r.json()
    assert opened["end_time"] is None
    assert opened["parent_hash"] == ""
    assert opened["notes"] == "site A"

    active = client.get("/time_records/active", params={"employee_id": e.id}, headers=headers)
    assert active.status_code == 200
    assert active.json()["id"] == opened["id"]

    again = _clock_in(headers, e.id, T0 + timedelta(minutes=1))
    assert again.status_code == 409

    closed = _clock_out(headers, e.id, T0 + timedelta(hours=8))
    assert closed.status_code == 200, closed.text
    body = closed.json()
    assert body["duration_minutes"] == 480
    assert body["row_hash"] != opened["row_hash"]

    latest = client.get("/time_records/latest", params={"employee_id": e.id}, headers=headers)
    assert latest.status_code == 200
    assert latest.json()["row_hash"] == body["row_hash"]

    no_open = _clock_out(headers, e.id, T0 + timedelta(hours=9))
    assert no_open.status_code == 409


def test_clock_in_for_unknown_employee_404():
    headers = _auth_headers(51002)
    r = _clock_in(headers, "nobody", T0)
    assert r.status_code == 404


def test_toggle_break_endpoint(employee_factory):
    company_id = 51003
    headers = _auth_headers(company_id)
    e = employee_factory(company_id=company_id)

    assert _clock_in(headers, e.id, T0).status_code == 200

    r = client.post(
        "/time_records/toggle_break",
        json={"employee_id": e.id, "at": (T0 + timedelta(hours=4)).isoformat()},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["type"] == "break"

    listing = client.get("/time_records", params={"employee_id": e.id}, headers=headers)
    assert [row["type"] for row in listing.json()] == ["break", "work"]


def test_client_finalized_insert_and_stale_parent_conflict(employee_factory):
    company_id = 51004
    headers = _auth_headers(company_id)
    e = employee_factory(company_id=company_id)

    first = append_record(ChainRecord(id="rec-1", employee_id=e.id, start_time=T0, end_time=T0 + timedelta(hours=1)), [])
    r = client.post("/time_records", json=record_to_dict(first), headers=headers)
    assert r.status_code == 201, r.text
    assert r.json()["row_hash"] == first.row_hash

    stale = append_record(ChainRecord(id="rec-2", employee_id=e.id, start_time=T0 + timedelta(hours=2)), [])
    conflict = client.post("/time_records", json=record_to_dict(stale), headers=headers)
    assert conflict.status_code == 409
    assert "Chain tail moved" in conflict.json()["detail"]

    fresh = append_record(ChainRecord(id="rec-2", employee_id=e.id, start_time=T0 + timedelta(hours=2)), [first])
    ok = client.post("/time_records", json=record_to_dict(fresh), headers=headers)
    assert ok.status_code == 201, ok.text
    assert ok.json()["parent_hash"] == first.row_hash


def test_insert_with_wrong_row_hash_422(employee_factory):
    company_id = 51005
    headers = _auth_headers(company_id)
    e = employee_factory(company_id=company_id)

    record = append_record(ChainRecord(id="rec-1", employee_id=e.id, start_time=T0), [])
    payload = record_to_dict(record)
    payload["notes"] = "not what was hashed"

    r = client.post("/time_records", json=payload, headers=headers)
    assert r.status_code == 422


def test_insert_with_end_before_start_409(employee_factory):
    company_id = 51013
    headers = _auth_headers(company_id)
    e = employee_factory(company_id=company_id)

    record = ChainRecord(id="rec-1", employee_id=e.id, start_time=T0, end_time=T0 - timedelta(hours=1))
    payload = record_to_dict(record)
    payload["row_hash"] = compute_row_hash(record, "")

    r = client.post("/time_records", json=payload, headers=headers)
    assert r.status_code == 409
    assert r.json()["detail"] == "end_time must not be before start_time"

    listing = client.get("/time_records", params={"employee_id": e.id}, headers=headers)
    assert listing.json() == []


def test_amend_with_expected_hash(employee_factory):
    company_id = 51006
    headers = _auth_headers(company_id)
    e = employee_factory(company_id=company_id)

    opened = _clock_in(headers, e.id, T0).json()
    expected = amend_record(ChainRecord.from_row(opened), notes="lunch with client")

    r = client.patch(
        f"/time_records/{opened['id']}",
        json={"notes": "lunch with client", "expected_row_hash": opened["row_hash"], "row_hash": expected.row_hash},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["row_hash"] == expected.row_hash

    stale = client.patch(
        f"/time_records/{opened['id']}",
        json={"notes": "again", "expected_row_hash": opened["row_hash"]},
        headers=headers,
    )
    assert stale.status_code == 409

    empty = client.patch(f"/time_records/{opened['id']}", json={"expected_row_hash": "x"}, headers=headers)
    assert empty.status_code == 422

    missing = client.patch("/time_records/nope", json={"notes": "x"}, headers=headers)
    assert missing.status_code == 404


def test_verify_reports_first_broken_record(employee_factory):
    company_id = 51007
    headers = _auth_headers(company_id)
    e = employee_factory(company_id=company_id)

    for i in range(3):
        start = T0 + timedelta(hours=2 * i)
        assert _clock_in(headers, e.id, start).status_code == 200
        assert _clock_out(headers, e.id, start + timedelta(hours=1)).status_code == 200

    ok = client.get("/time_records/verify", params={"employee_id": e.id}, headers=headers)
    assert ok.status_code == 200
    assert ok.json() == {
        "employee_id": e.id,
        "is_valid": True,
        "broken_index": None,
        "broken_record_id": None,
        "record_count": 3,
    }

    # Edit the middle row directly in the database, bypassing the ledger.
    db = SessionLocal()
    try:
        rows = (
            db.query(TimeRecord)
            .filter(TimeRecord.employee_id == e.id)
            .order_by(TimeRecord.start_time.asc())
            .all()
        )
        rows[1].notes = "edited"
        tampered_id = rows[1].id
        db.commit()
    finally:
        db.close()

    broken = client.get("/time_records/verify", params={"employee_id": e.id}, headers=headers)
    assert broken.json()["is_valid"] is False
    assert broken.json()["broken_index"] == 1
    assert broken.json()["broken_record_id"] == tampered_id


def test_list_time_records_scoped_filtered_and_paginated(employee_factory):
    c1 = 51008
    c2 = 51009
    h1 = _auth_headers(c1)
    h2 = _auth_headers(c2)

    e1 = employee_factory(company_id=c1, name="E1")
    e2 = employee_factory(company_id=c1, name="E2")
    other = employee_factory(company_id=c2)

    for i in range(3):
        start = T0 + timedelta(hours=2 * i)
        _clock_in(h1, e1.id, start)
        _clock_out(h1, e1.id, start + timedelta(hours=1))
    _clock_in(h1, e2.id, T0)
    _clock_in(h2, other.id, T0)

    all_c1 = client.get("/time_records", headers=h1).json()
    assert len(all_c1) == 4
    assert all(row["company_id"] == c1 for row in all_c1)

    only_e1 = client.get("/time_records", params={"employee_id": e1.id}, headers=h1).json()
    assert len(only_e1) == 3
    assert only_e1[0]["start_time"] > only_e1[-1]["start_time"]

    page = client.get("/time_records", params={"employee_id": e1.id, "limit": 2, "offset": 2}, headers=h1).json()
    assert len(page) == 1

    ranged = client.get(
        "/time_records",
        params={"started_at_from": (T0 + timedelta(hours=1)).isoformat(), "employee_id": e1.id},
        headers=h1,
    ).json()
    assert len(ranged) == 2

    too_big = client.get("/time_records", params={"limit": 101}, headers=h1)
    assert too_big.status_code == 422

    c2_rows = client.get("/time_records", headers=h2).json()
    assert [row["employee_id"] for row in c2_rows] == [other.id]


def test_employee_role_sees_only_own_records(employee_factory):
    company_id = 51010
    company_headers = _auth_headers(company_id)
    alice = employee_factory(company_id=company_id, name="Alice")
    bob = employee_factory(company_id=company_id, name="Bob")

    _clock_in(company_headers, alice.id, T0)
    _clock_in(company_headers, bob.id, T0)

    alice_headers = _auth_headers(company_id, user_id=alice.id, role="employee")

    own = client.get("/time_records", headers=alice_headers)
    assert own.status_code == 200
    assert {row["employee_id"] for row in own.json()} == {alice.id}

    forbidden = client.get("/time_records", params={"employee_id": bob.id}, headers=alice_headers)
    assert forbidden.status_code == 403

    r = _clock_out(alice_headers, alice.id, T0 + timedelta(hours=1))
    assert r.status_code == 200


def test_change_feed_lists_events_in_order(employee_factory):
    company_id = 51011
    headers = _auth_headers(company_id)
    e = employee_factory(company_id=company_id)

    opened = _clock_in(headers, e.id, T0).json()
    closed = _clock_out(headers, e.id, T0 + timedelta(hours=1)).json()

    feed = client.get("/time_records/changes", params={"employee_id": e.id}, headers=headers)
    assert feed.status_code == 200
    events = feed.json()
    assert [ev["event_type"] for ev in events] == ["RECORD_CREATED", "RECORD_AMENDED"]
    assert [ev["row_hash"] for ev in events] == [opened["row_hash"], closed["row_hash"]]

    after = client.get(
        "/time_records/changes",
        params={"employee_id": e.id, "after_id": events[0]["id"]},
        headers=headers,
    ).json()
    assert [ev["id"] for ev in after] == [events[1]["id"]]


def test_get_time_record_by_id(employee_factory):
    company_id = 51012
    headers = _auth_headers(company_id)
    e = employee_factory(company_id=company_id)

    opened = _clock_in(headers, e.id, T0).json()

    r = client.get(f"/time_records/{opened['id']}", headers=headers)
    assert r.status_code == 200
    assert r.json()["row_hash"] == opened["row_hash"]

    other_company = client.get(f"/time_records/{opened['id']}", headers=_auth_headers(company_id + 100))
    assert other_company.status_code == 404

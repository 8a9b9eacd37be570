import os
from fastapi.testclient import TestClient
from jornify.main import app

client = TestClient(app)

def _mint_token(user_id="dev-user", company_id=1, role="company") -> str:
    # /auth/token requires JWT_SECRET
    os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-pytest-only-0000000000000000")
    r = client.post("/auth/token", json={"user_id": user_id, "company_id": company_id, "role": role})
    assert r.status_code == 200, r.text
    return r.json()["access_token"]

def _headers(token: str, company_id=1) -> dict:
    return {"Authorization": f"Bearer {token}", "X-Company-Id": str(company_id)}

def test_missing_authorization_header_401():
    r = client.post(
        "/time_records/clock_in",
        json={"employee_id": "emp-101"},
        headers={"X-Company-Id": "1"},
    )
    assert r.status_code == 401

def test_wrong_scheme_401():
    token = _mint_token()
    r = client.post(
        "/time_records/clock_in",
        json={"employee_id": "emp-101"},
        headers={"Authorization": f"Basic {token}", "X-Company-Id": "1"},
    )
    assert r.status_code == 401

def test_garbled_bearer_token_401():
    r = client.post(
        "/time_records/clock_in",
        json={"employee_id": "emp-101"},
        headers={"Authorization": "Bearer not-a-real-token", "X-Company-Id": "1"},
    )
    assert r.status_code == 401

def test_missing_company_header_403():
    token = _mint_token()
    r = client.post(
        "/time_records/clock_in",
        json={"employee_id": "emp-101"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert r.status_code == 403
    assert "X-Company-Id" in r.text

def test_company_mismatch_403():
    token = _mint_token(company_id=1)
    r = client.post(
        "/time_records/clock_in",
        json={"employee_id": "emp-101"},
        headers=_headers(token, company_id=2),
    )
    assert r.status_code == 403
    assert "Company mismatch" in r.text

def test_unknown_role_rejected_at_issue():
    r = client.post("/auth/token", json={"user_id": "x", "company_id": 1, "role": "admin"})
    assert r.status_code == 400

def test_employee_cannot_clock_in_someone_else_403():
    token = _mint_token(user_id="emp-1", role="employee")
    r = client.post(
        "/time_records/clock_in",
        json={"employee_id": "emp-2"},
        headers=_headers(token),
    )
    assert r.status_code == 403

def test_employee_cannot_verify_chain_403():
    token = _mint_token(user_id="emp-1", role="employee")
    r = client.get("/time_records/verify", params={"employee_id": "emp-1"}, headers=_headers(token))
    assert r.status_code == 403

def test_token_endpoint_hidden_outside_dev(monkeypatch):
    monkeypatch.setenv("ENV", "production")
    r = client.post("/auth/token", json={"user_id": "x", "company_id": 1})
    assert r.status_code == 404

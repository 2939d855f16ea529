#!/usr/bin/env python3
"""
End-to-end tests of the HTTP surface against the fake sheet endpoint.
"""

import sys
import os
import httpx
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import main
from utils.session_registry import session_registry
from fake_sheet import FakeSheet


@pytest.fixture
def sheet():
    fake = FakeSheet()
    main.gateway = fake.gateway()
    session_registry.clear()
    yield fake
    session_registry.clear()
    main.gateway = None


@pytest.fixture
def client(sheet):
    with TestClient(main.app) as c:
        yield c


def _login(client, email):
    r = client.post("/login", json={"email": email, "password": "secret"})
    assert r.status_code == 200, r.text
    return r.json(), {"X-Session-Id": r.json()["session_id"]}


def test_login_returns_user_and_users(client):
    body, _ = _login(client, "eva@example.com")
    assert body["user"]["email"] == "eva@example.com"
    assert body["user"]["annualLeave"] == {"total": 22, "used": 5, "available": 17}
    assert len(body["users"]) == 3


def test_bad_credentials_are_unauthorized(client):
    r = client.post("/login", json={"email": "eva@example.com", "password": "nope"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid email or password."
    assert len(session_registry) == 0


def test_routes_require_a_session(client):
    assert client.get("/requests").status_code == 401
    assert client.get("/requests", headers={"X-Session-Id": "missing"}).status_code == 401


def test_employee_submits_and_approver_approves(client, sheet):
    _, eva = _login(client, "eva@example.com")
    r = client.post("/requests", headers=eva, json={"start_date": "10/06/2024", "end_date": "11/06/2024"})
    assert r.status_code == 201, r.text
    created = r.json()
    assert created["days"] == 2
    assert created["status"] == "Pendiente"

    _, ana = _login(client, "ana@example.com")
    r = client.post(f"/requests/{created['id']}/status", headers=ana, json={"status": "Aprobada"})
    assert r.status_code == 200, r.text
    assert r.json()["approvedBy"] == {"id": 1, "name": "Ana Approver"}
    assert sheet.user(2)["annualLeave"] == {"total": 22, "used": 7, "available": 15}


def test_employee_dashboard(client):
    _, eva = _login(client, "eva@example.com")
    body = client.get("/dashboard/employee", headers=eva).json()
    assert body["balance"]["available"] == 17
    assert [r["id"] for r in body["requests"]] == [102, 101]


def test_approver_only_routes(client):
    _, eva = _login(client, "eva@example.com")
    assert client.get("/dashboard/approver", headers=eva).status_code == 403
    assert client.post("/requests/101/status", headers=eva, json={"status": "Aprobada"}).status_code == 403
    assert client.get("/users", headers=eva).status_code == 403


def test_approver_dashboard_filters(client):
    _, ana = _login(client, "ana@example.com")
    body = client.get("/dashboard/approver", headers=ana, params={"status": "Rechazada"}).json()
    assert [r["id"] for r in body["pending"]] == [101, 105]
    assert [r["id"] for r in body["requests"]] == [106]


def test_employee_cannot_delete_approved_request(client):
    _, eva = _login(client, "eva@example.com")
    assert client.delete("/requests/102", headers=eva).status_code == 403
    assert client.delete("/requests/999", headers=eva).status_code == 404


def test_failed_remote_delete_maps_to_bad_gateway(client, sheet):
    _, ana = _login(client, "ana@example.com")
    sheet.fail_actions["deleteRequest"] = "Row locked"
    r = client.delete("/requests/103", headers=ana)
    assert r.status_code == 502
    assert r.json()["detail"] == "Row locked"
    assert len(client.get("/requests", headers=ana).json()) == 6


def test_unreadable_delete_response_keeps_request(client, sheet):
    _, ana = _login(client, "ana@example.com")
    sheet.fail_actions["deleteRequest"] = httpx.Response(200, text="<html>Service unavailable</html>")
    r = client.delete("/requests/103", headers=ana)
    assert r.status_code == 502
    assert 103 in [req["id"] for req in client.get("/requests", headers=ana).json()]


def test_delete_user_removes_their_requests(client, sheet):
    _, ana = _login(client, "ana@example.com")
    assert client.delete("/users/3", headers=ana).status_code == 204
    assert sheet.actions()[-2:] == ["deleteUser", "removeRequestsByUser"]
    remaining = client.get("/requests", headers=ana).json()
    assert all(r["userId"] != 3 for r in remaining)


def test_add_and_edit_user(client, sheet):
    _, ana = _login(client, "ana@example.com")
    r = client.post("/users", headers=ana, json={"name": "Nia", "email": "nia@example.com", "password": "pw", "total_leave": 20})
    assert r.status_code == 201, r.text
    assert client.post("/users", headers=ana, json={"name": "Nopass", "email": "x@example.com"}).status_code == 400

    r = client.put("/users/2", headers=ana, json={"name": "Eva", "email": "eva@example.com", "role": "Empleado", "total_leave": 30})
    assert r.status_code == 200, r.text
    assert r.json()["annualLeave"] == {"total": 30, "used": 5, "available": 25}


def test_calendar_groups_absences_by_day(client):
    _, eva = _login(client, "eva@example.com")
    body = client.get("/calendar", headers=eva, params={"year": 2024, "month": 7}).json()
    assert sorted(int(d) for d in body["days"]) == [1, 2, 3, 4, 5]
    assert body["days"]["1"][0]["title"] == "Eva Employee"


def test_unconfigured_endpoint_is_a_server_error(client):
    main.gateway.url = ""
    r = client.post("/login", json={"email": "eva@example.com", "password": "secret"})
    assert r.status_code == 500
    assert "not configured" in r.json()["detail"]


def test_logout_drops_session(client):
    _, eva = _login(client, "eva@example.com")
    assert client.post("/logout", headers=eva).status_code == 204
    assert client.get("/requests", headers=eva).status_code == 401


def test_calendar_rejects_out_of_range_dates(client):
    _, eva = _login(client, "eva@example.com")
    assert client.get("/calendar", headers=eva, params={"year": 999, "month": 1}).status_code == 200
    assert client.get("/calendar", headers=eva, params={"year": 10000, "month": 1}).status_code == 400
    assert client.get("/calendar", headers=eva, params={"year": 2024, "month": 13}).status_code == 400

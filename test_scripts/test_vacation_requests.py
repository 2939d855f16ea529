#!/usr/bin/env python3
"""
Tests for request state: submission, approval, edits, deletes and the
leave-balance arithmetic that follows each of them.
"""

import sys
import os
import json
import asyncio
import httpx
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from utils.api_gateway import NetworkError, ServerError
from utils.models import RequestDraft, RequestStatus, RequestType
from utils.session_registry import Session
from fake_sheet import FakeSheet


def _session(sheet, email="ana@example.com"):
    alerts = []
    session = Session("test", sheet.gateway(), alert=alerts.append)
    asyncio.run(session.login(email, "secret"))
    return session, alerts


def _balance(session, user_id):
    return session.auth.find_user(user_id).annual_leave


def test_login_loads_requests_once():
    sheet = FakeSheet()
    session, _ = _session(sheet)
    assert sheet.actions() == ["login", "getRequests"]
    assert len(session.requests.requests) == 6
    # approvedBy arrives JSON-encoded from the sheet
    assert session.requests.get(102).approved_by.name == "Ana Approver"


def test_load_failure_keeps_existing_list():
    sheet = FakeSheet()
    session, _ = _session(sheet)
    before = list(session.requests.requests)
    sheet.fail_actions["getRequests"] = "Quota exceeded"

    asyncio.run(session.requests.load())
    assert session.requests.requests == before


def test_submit_request_counts_business_days():
    sheet = FakeSheet()
    session, _ = _session(sheet, "eva@example.com")

    created = asyncio.run(session.requests.submit_request("10/06/2024", "11/06/2024", RequestType.VACATION, "Trip"))

    assert created.days == 2
    assert created.status == RequestStatus.PENDING
    assert created.user_id == 2
    assert created.user_name == "Eva Employee"
    assert created.created_at.endswith("Z")
    assert session.requests.requests[0] == created
    _, payload = sheet.calls[-1]
    assert payload["request"]["startDate"] == "10/06/2024"
    assert payload["request"]["status"] == "Pendiente"


def test_submit_request_accepts_form_dates():
    sheet = FakeSheet()
    session, _ = _session(sheet, "eva@example.com")
    created = asyncio.run(session.requests.submit_request("2024-06-14", "2024-06-17"))
    assert created.start_date == "14/06/2024"
    assert created.end_date == "17/06/2024"
    assert created.days == 2


def test_submit_request_rejects_empty_range():
    sheet = FakeSheet()
    session, _ = _session(sheet, "eva@example.com")
    with pytest.raises(ValueError):
        asyncio.run(session.requests.submit_request("15/06/2024", "16/06/2024"))
    assert "addRequest" not in sheet.actions()


def test_add_request_failure_alerts_without_inserting():
    sheet = FakeSheet()
    session, alerts = _session(sheet, "eva@example.com")
    before = list(session.requests.requests)
    sheet.fail_actions["addRequest"] = "Sheet is read-only"

    draft = RequestDraft(start_date="10/06/2024", end_date="11/06/2024", days=2)
    with pytest.raises(ServerError):
        asyncio.run(session.requests.add_request(draft))

    assert session.requests.requests == before
    assert len(alerts) == 1 and "Sheet is read-only" in alerts[0]


def test_add_request_alerts_on_unreadable_response():
    sheet = FakeSheet()
    session, alerts = _session(sheet, "eva@example.com")
    before = list(session.requests.requests)
    sheet.fail_actions["addRequest"] = httpx.Response(502, text="Bad Gateway")

    draft = RequestDraft(start_date="10/06/2024", end_date="11/06/2024", days=2)
    with pytest.raises(json.JSONDecodeError):
        asyncio.run(session.requests.add_request(draft))

    assert session.requests.requests == before
    assert len(alerts) == 1


def test_user_requests_are_own_and_newest_first():
    sheet = FakeSheet()
    session, _ = _session(sheet, "eva@example.com")
    assert [r.id for r in session.requests.user_requests] == [102, 101]


def test_pending_and_status_filter():
    session, _ = _session(FakeSheet())
    assert [r.id for r in session.requests.pending_requests] == [101, 105]
    assert [r.id for r in session.requests.filter_by_status(RequestStatus.REJECTED)] == [106]
    assert len(session.requests.filter_by_status(None)) == 6


def test_approving_pending_request_consumes_balance():
    sheet = FakeSheet()
    session, _ = _session(sheet)
    before = _balance(session, 3)

    updated = asyncio.run(session.requests.update_request(105, RequestStatus.APPROVED, "Enjoy"))

    after = _balance(session, 3)
    assert updated.status == RequestStatus.APPROVED
    assert updated.approved_by.id == 1
    assert updated.approver_comment == "Enjoy"
    assert after.used == before.used + 4
    assert after.available == after.total - after.used
    assert sheet.actions()[-2:] == ["updateRequest", "updateUser"]
    assert sheet.user(3)["annualLeave"]["used"] == 7


def test_rejecting_does_not_touch_balance():
    sheet = FakeSheet()
    session, _ = _session(sheet)
    before = _balance(session, 3)

    asyncio.run(session.requests.update_request(105, RequestStatus.REJECTED))

    assert _balance(session, 3) == before
    assert sheet.actions()[-1] == "updateRequest"


def test_reapproving_a_rejected_request_does_not_adjust_balance():
    sheet = FakeSheet()
    session, _ = _session(sheet)
    before = _balance(session, 3)
    asyncio.run(session.requests.update_request(106, RequestStatus.APPROVED))
    assert session.requests.get(106).status == RequestStatus.APPROVED
    assert _balance(session, 3) == before


def test_approval_keeps_previous_comment_when_none_given():
    session, _ = _session(FakeSheet())
    updated = asyncio.run(session.requests.update_request(104, RequestStatus.APPROVED))
    assert updated.approver_comment == "Modified by Ana Approver."


def test_balance_update_failure_leaves_request_updated():
    sheet = FakeSheet()
    session, _ = _session(sheet)
    before = _balance(session, 3)
    sheet.fail_actions["updateUser"] = "Timeout writing row"

    with pytest.raises(ServerError):
        asyncio.run(session.requests.update_request(105, RequestStatus.APPROVED))

    assert session.requests.get(105).status == RequestStatus.APPROVED
    assert _balance(session, 3) == before


@pytest.mark.parametrize("new_days,expected_delta", [(5, 3), (1, -1)])
def test_editing_approved_request_shifts_used_by_delta(new_days, expected_delta):
    sheet = FakeSheet()
    session, _ = _session(sheet)
    before = _balance(session, 3)
    original = session.requests.get(103)

    asyncio.run(session.requests.edit_request(original.model_copy(update={"days": new_days})))

    after = _balance(session, 3)
    assert after.used - before.used == expected_delta
    assert after.available == after.total - after.used


def test_editing_pending_request_leaves_balance():
    sheet = FakeSheet()
    session, _ = _session(sheet)
    before = _balance(session, 3)
    original = session.requests.get(105)
    asyncio.run(session.requests.edit_request(original.model_copy(update={"days": 1})))
    assert _balance(session, 3) == before
    assert sheet.actions()[-1] == "editRequest"


def test_approver_revision_marks_request_modified():
    sheet = FakeSheet()
    session, _ = _session(sheet)
    before = _balance(session, 2)

    # 01/07-05/07 (5 days) shortened to 01/07-03/07 (3 days)
    revised = asyncio.run(session.requests.revise_request(102, "2024-07-01", "2024-07-03", RequestType.VACATION))

    assert revised.status == RequestStatus.MODIFIED
    assert revised.approver_comment == "Modified by Ana Approver."
    assert revised.days == 3
    assert _balance(session, 2).used == before.used - 2


def test_employee_revision_keeps_status():
    sheet = FakeSheet()
    session, _ = _session(sheet, "eva@example.com")
    revised = asyncio.run(session.requests.revise_request(101, "03/06/2024", "04/06/2024", RequestType.PERSONAL, "Shorter"))
    assert revised.status == RequestStatus.PENDING
    assert revised.days == 2
    assert revised.employee_comment == "Shorter"


def _html_error_page():
    return httpx.Response(200, text="<html><body>Script function not found</body></html>")


def _connection_refused():
    return httpx.ConnectError("Connection refused")


@pytest.mark.parametrize("failure,expected", [
    ("Row locked", ServerError),
    (_connection_refused, NetworkError),
    (_html_error_page, json.JSONDecodeError),
])
def test_failed_delete_restores_exact_snapshot(failure, expected):
    sheet = FakeSheet()
    session, alerts = _session(sheet)
    snapshot = list(session.requests.requests)
    sheet.fail_actions["deleteRequest"] = failure if isinstance(failure, str) else failure()

    with pytest.raises(expected):
        asyncio.run(session.requests.delete_request(103))

    assert session.requests.requests == snapshot
    assert len(alerts) == 1
    assert "updateUser" not in sheet.actions()


def test_deleting_approved_request_credits_days_back():
    sheet = FakeSheet()
    session, _ = _session(sheet)
    before = _balance(session, 3)

    asyncio.run(session.requests.delete_request(103))

    assert all(r.id != 103 for r in session.requests.requests)
    assert _balance(session, 3).used == before.used - 2
    assert _balance(session, 3).available == before.available + 2


def test_deleting_pending_request_leaves_balance():
    sheet = FakeSheet()
    session, _ = _session(sheet, "eva@example.com")
    asyncio.run(session.requests.delete_request(101))
    assert sheet.actions()[-1] == "deleteRequest"
    assert all(r.id != 101 for r in session.requests.requests)


def test_employee_cannot_delete_approved_request():
    sheet = FakeSheet()
    session, _ = _session(sheet, "eva@example.com")
    with pytest.raises(PermissionError):
        asyncio.run(session.requests.delete_request(102))
    assert "deleteRequest" not in sheet.actions()


def test_unknown_request_raises_lookup_error():
    session, _ = _session(FakeSheet())
    with pytest.raises(LookupError):
        asyncio.run(session.requests.update_request(999, RequestStatus.APPROVED))


def test_remove_requests_by_user_credits_only_approved_and_modified():
    sheet = FakeSheet()
    session, _ = _session(sheet)
    before = _balance(session, 3)

    credited = asyncio.run(session.requests.remove_requests_by_user(3))

    # 103 approved (2) + 104 modified (1); 105 pending and 106 rejected excluded
    assert credited == 3
    assert all(r.user_id != 3 for r in session.requests.requests)
    assert _balance(session, 3).used == before.used - 3
    assert sheet.calls[-2] == ("removeRequestsByUser", {"userId": 3})


def test_remove_requests_without_balance_days_skips_user_update():
    sheet = FakeSheet()
    session, _ = _session(sheet)
    asyncio.run(session.requests.delete_request(102))
    calls_before = len(sheet.calls)

    credited = asyncio.run(session.requests.remove_requests_by_user(2))

    assert credited == 0
    assert sheet.actions()[calls_before:] == ["removeRequestsByUser"]

"""
In-memory stand-in for the Apps Script endpoint, served through httpx.MockTransport.

Rows are stored the way the sheet returns them: annualLeave and approvedBy
cells come back as JSON strings.
"""

import copy
import json
import os
import sys
import httpx

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from utils.api_gateway import ApiGateway

SCRIPT_URL = "https://script.google.com/macros/s/TEST-DEPLOYMENT/exec"


class SheetError(Exception):
    pass


SEED_USERS = [
    {"id": 1, "name": "Ana Approver", "email": "ana@example.com", "password": "secret", "role": "Aprobador",
     "annualLeave": {"total": 22, "used": 0, "available": 22}},
    {"id": 2, "name": "Eva Employee", "email": "eva@example.com", "password": "secret", "role": "Empleado",
     "annualLeave": {"total": 22, "used": 5, "available": 17}},
    {"id": 3, "name": "Leo Employee", "email": "leo@example.com", "password": "secret", "role": "Empleado",
     "annualLeave": {"total": 25, "used": 3, "available": 22}},
]

APPROVER_SNAPSHOT = {"id": 1, "name": "Ana Approver"}

SEED_REQUESTS = [
    {"id": 101, "userId": 2, "userName": "Eva Employee", "startDate": "03/06/2024", "endDate": "05/06/2024",
     "days": 3, "type": "Vacaciones", "status": "Pendiente", "employeeComment": "Beach",
     "createdAt": "2024-05-01T10:00:00.000Z"},
    {"id": 102, "userId": 2, "userName": "Eva Employee", "startDate": "01/07/2024", "endDate": "05/07/2024",
     "days": 5, "type": "Vacaciones", "status": "Aprobada", "approvedBy": APPROVER_SNAPSHOT,
     "createdAt": "2024-05-02T10:00:00.000Z"},
    {"id": 103, "userId": 3, "userName": "Leo Employee", "startDate": "30/05/2024", "endDate": "31/05/2024",
     "days": 2, "type": "Vacaciones", "status": "Aprobada", "approvedBy": APPROVER_SNAPSHOT,
     "createdAt": "2024-04-20T08:00:00.000Z"},
    {"id": 104, "userId": 3, "userName": "Leo Employee", "startDate": "12/06/2024", "endDate": "12/06/2024",
     "days": 1, "type": "Asuntos Propios", "status": "Modificada", "approvedBy": APPROVER_SNAPSHOT,
     "approverComment": "Modified by Ana Approver.", "createdAt": "2024-04-21T08:00:00.000Z"},
    {"id": 105, "userId": 3, "userName": "Leo Employee", "startDate": "17/06/2024", "endDate": "20/06/2024",
     "days": 4, "type": "Vacaciones", "status": "Pendiente", "createdAt": "2024-04-22T08:00:00.000Z"},
    {"id": 106, "userId": 3, "userName": "Leo Employee", "startDate": "24/06/2024", "endDate": "25/06/2024",
     "days": 2, "type": "Vacaciones", "status": "Rechazada", "approvedBy": APPROVER_SNAPSHOT,
     "createdAt": "2024-04-23T08:00:00.000Z"},
]


class FakeSheet:
    def __init__(self):
        self.users = copy.deepcopy(SEED_USERS)
        self.requests = copy.deepcopy(SEED_REQUESTS)
        self.calls = []
        self.fail_actions = {}
        self.content_types = []

    # --- sheet row encoding ---

    @staticmethod
    def _user_row(user):
        row = {k: v for k, v in user.items() if k != "password"}
        if not isinstance(user["annualLeave"], str):
            row["annualLeave"] = json.dumps(user["annualLeave"])
        return row

    @staticmethod
    def _request_row(request):
        row = dict(request)
        if isinstance(row.get("approvedBy"), dict):
            row["approvedBy"] = json.dumps(row["approvedBy"])
        return row

    def user(self, user_id):
        return next(u for u in self.users if u["id"] == user_id)

    def actions(self):
        return [action for action, _ in self.calls]

    # --- transport ---

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.content_types.append(request.headers.get("content-type"))
        body = json.loads(request.content)
        action = body["action"]
        payload = body.get("payload")
        self.calls.append((action, payload))

        # a string is sent back as an error envelope; responses and exceptions are used as-is
        failure = self.fail_actions.get(action)
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, httpx.Response):
            return failure
        if failure is not None:
            return httpx.Response(200, json={"status": "error", "message": failure})

        try:
            data = getattr(self, f"_do_{action}")(payload)
        except SheetError as e:
            return httpx.Response(200, json={"status": "error", "message": str(e)})
        return httpx.Response(200, json={"status": "ok", "data": data})

    def gateway(self) -> ApiGateway:
        return ApiGateway(SCRIPT_URL, client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)))

    # --- actions ---

    def _do_login(self, payload):
        for u in self.users:
            if u["email"] == payload["email"] and u["password"] == payload["password"]:
                return {"user": self._user_row(u), "users": [self._user_row(x) for x in self.users]}
        raise SheetError("Invalid email or password.")

    def _do_addUser(self, payload):
        total = payload["totalLeave"]
        new_user = {
            "id": max(u["id"] for u in self.users) + 1,
            "name": payload["user"]["name"],
            "email": payload["user"]["email"],
            "password": payload["user"]["password"],
            "role": payload["user"]["role"],
            "annualLeave": {"total": total, "used": 0, "available": total},
        }
        self.users.append(new_user)
        return self._user_row(new_user)

    def _do_updateUser(self, payload):
        incoming = payload["user"]
        stored = self.user(incoming["id"])
        stored.update({k: v for k, v in incoming.items()})
        return self._user_row(stored)

    def _do_deleteUser(self, payload):
        self.users = [u for u in self.users if u["id"] != payload["userId"]]
        return None

    def _do_getRequests(self, payload):
        return [self._request_row(r) for r in self.requests]

    def _do_addRequest(self, payload):
        new_request = dict(payload["request"])
        new_request["id"] = max(r["id"] for r in self.requests) + 1
        self.requests.append(new_request)
        return self._request_row(new_request)

    def _do_updateRequest(self, payload):
        incoming = payload["request"]
        self.requests = [incoming if r["id"] == incoming["id"] else r for r in self.requests]
        return self._request_row(incoming)

    _do_editRequest = _do_updateRequest

    def _do_deleteRequest(self, payload):
        self.requests = [r for r in self.requests if r["id"] != payload["requestId"]]
        return None

    def _do_removeRequestsByUser(self, payload):
        self.requests = [r for r in self.requests if r["userId"] != payload["userId"]]
        return None

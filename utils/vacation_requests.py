"""Vacation request state and leave-balance reconciliation.

Holds the in-memory copy of every request and mirrors each mutation to the
sheet endpoint. Balance changes are plain arithmetic on the owning user's
``annualLeave`` followed by a second ``updateUser`` call:

  * Pending -> Approved adds the request's days to ``used``.
  * Editing an Approved/Modified request shifts ``used`` by the day delta.
  * Deleting an Approved/Modified request credits its days back.
  * Removing all of a user's requests credits back the Approved/Modified sum.

The two calls are sequential and not atomic; if the second one fails the
request is updated but the balance is not.
"""

import json
import logging
from typing import Any, Callable, List, Optional

from auth.session_auth import AuthState
from utils.api_gateway import ApiGateway, GatewayError
from utils.date_utils import business_days, timestamp_sort_key, to_api_format, utc_timestamp
from utils.models import (
    ApprovedBy,
    RequestDraft,
    RequestStatus,
    RequestType,
    Role,
    VacationRequest,
    to_wire,
)

logger = logging.getLogger(__name__)


def parse_request_item(item: Any) -> VacationRequest:
    """Build a VacationRequest from a sheet row; approvedBy may arrive JSON-encoded."""
    if isinstance(item, dict) and isinstance(item.get("approvedBy"), str):
        item = dict(item)
        try:
            item["approvedBy"] = json.loads(item["approvedBy"]) if item["approvedBy"] else None
        except json.JSONDecodeError:
            item["approvedBy"] = None
    return VacationRequest.model_validate(item)


def _api_date(value: str) -> str:
    """Accept form input ("yyyy-mm-dd") or display format and return "dd/mm/yyyy"."""
    if value and "-" in value:
        return to_api_format(value)
    return value


def _log_alert(message: str) -> None:
    logger.error("ALERT: %s", message)


class RequestState:
    def __init__(
        self,
        gateway: ApiGateway,
        auth: AuthState,
        alert: Optional[Callable[[str], None]] = None,
    ):
        self.gateway = gateway
        self.auth = auth
        self.alert = alert or _log_alert
        self.requests: List[VacationRequest] = []

    async def load(self) -> None:
        """Fetch every request once; failures are logged and leave the list as it was."""
        if not self.auth.is_authenticated:
            return
        try:
            data = await self.gateway.call("getRequests")
            self.requests = [parse_request_item(r) for r in data] if isinstance(data, list) else []
            logger.debug("Loaded %d requests", len(self.requests))
        except (GatewayError, ValueError) as e:
            logger.error("Failed to fetch requests: %s", e)

    # --- views over the list ---

    def get(self, request_id: int) -> VacationRequest:
        for r in self.requests:
            if r.id == request_id:
                return r
        raise LookupError(f"Request {request_id} not found")

    @property
    def user_requests(self) -> List[VacationRequest]:
        user = self.auth.user
        if user is None:
            return []
        own = [r for r in self.requests if r.user_id == user.id]
        return sorted(own, key=lambda r: timestamp_sort_key(r.created_at), reverse=True)

    @property
    def pending_requests(self) -> List[VacationRequest]:
        return self.filter_by_status(RequestStatus.PENDING)

    def filter_by_status(self, status: Optional[RequestStatus] = None) -> List[VacationRequest]:
        if status is None:
            return list(self.requests)
        return [r for r in self.requests if r.status == status]

    def _replace(self, request_id: int, returned: Any) -> VacationRequest:
        parsed = parse_request_item(returned)
        self.requests = [parsed if r.id == request_id else r for r in self.requests]
        return parsed

    # --- balance ---

    async def _adjust_balance(self, user_id: int, delta: int) -> None:
        owner = self.auth.find_user(user_id)
        if owner is None:
            logger.warning("Balance change of %+d skipped: user %s not loaded", delta, user_id)
            return
        balance = owner.annual_leave.adjusted(delta)
        logger.info(
            "Adjusting leave for user %s by %+d (used=%d available=%d)",
            user_id, delta, balance.used, balance.available,
        )
        await self.auth.update_user(owner.model_copy(update={"annual_leave": balance}))

    # --- mutations ---

    async def add_request(self, draft: RequestDraft) -> Optional[VacationRequest]:
        user = self.auth.user
        if user is None:
            return None

        new_request_data = {
            "userId": user.id,
            "userName": user.name,
            "createdAt": utc_timestamp(),
            **to_wire(draft),
        }
        try:
            returned = await self.gateway.call("addRequest", {"request": new_request_data})
        except Exception as e:
            self.alert(f"Could not create the request: {e}")
            raise

        created = parse_request_item(returned)
        self.requests = [created, *self.requests]
        return created

    async def submit_request(
        self,
        start_date: str,
        end_date: str,
        type: RequestType = RequestType.VACATION,
        comment: Optional[str] = None,
    ) -> Optional[VacationRequest]:
        """Create a Pending request from form dates, counting business days in the range."""
        start = _api_date(start_date)
        end = _api_date(end_date)
        days = business_days(start, end)
        if days <= 0:
            raise ValueError("The end date must be on or after the start date and include a working day.")

        draft = RequestDraft(
            start_date=start,
            end_date=end,
            days=days,
            type=type,
            status=RequestStatus.PENDING,
            employee_comment=comment or "",
        )
        return await self.add_request(draft)

    async def update_request(
        self,
        request_id: int,
        status: RequestStatus,
        approver_comment: Optional[str] = None,
    ) -> Optional[VacationRequest]:
        approver = self.auth.user
        if approver is None:
            return None
        original = self.get(request_id)

        updated = original.model_copy(update={
            "status": status,
            "approver_comment": approver_comment or original.approver_comment,
            "approved_by": ApprovedBy(id=approver.id, name=approver.name),
        })
        returned = await self.gateway.call("updateRequest", {"request": to_wire(updated)})
        result = self._replace(request_id, returned)

        if status == RequestStatus.APPROVED and original.status == RequestStatus.PENDING:
            await self._adjust_balance(original.user_id, original.days)
        return result

    async def edit_request(self, updated: VacationRequest) -> VacationRequest:
        original = self.get(updated.id)

        returned = await self.gateway.call("editRequest", {"request": to_wire(updated)})
        result = self._replace(updated.id, returned)

        if original.counts_against_balance:
            days_difference = updated.days - original.days
            if days_difference != 0:
                await self._adjust_balance(original.user_id, days_difference)
        return result

    async def revise_request(
        self,
        request_id: int,
        start_date: str,
        end_date: str,
        type: RequestType,
        comment: Optional[str] = None,
    ) -> VacationRequest:
        """
        Apply the edit form to an existing request.

        Approver edits mark the request Modified and sign the approver comment.
        """
        original = self.get(request_id)
        start = _api_date(start_date)
        end = _api_date(end_date)
        days = business_days(start, end)
        if days <= 0:
            raise ValueError("The end date must be on or after the start date and include a working day.")

        changes = {
            "start_date": start,
            "end_date": end,
            "days": days,
            "type": type,
            "employee_comment": comment if comment is not None else original.employee_comment,
        }
        editor = self.auth.user
        if editor is not None and editor.role == Role.APPROVER:
            changes["status"] = RequestStatus.MODIFIED
            changes["approver_comment"] = f"Modified by {editor.name}."
        return await self.edit_request(original.model_copy(update=changes))

    async def delete_request(self, request_id: int) -> None:
        original = self.get(request_id)
        user = self.auth.user
        if user is not None and user.role != Role.APPROVER:
            if original.user_id != user.id or original.status != RequestStatus.PENDING:
                raise PermissionError("Employees can only delete their own pending requests.")

        snapshot = list(self.requests)
        self.requests = [r for r in self.requests if r.id != request_id]
        try:
            await self.gateway.call("deleteRequest", {"requestId": request_id})
        except Exception as e:
            self.requests = snapshot
            self.alert(f"Could not delete the request: {e}")
            raise

        if original.counts_against_balance:
            await self._adjust_balance(original.user_id, -original.days)

    async def remove_requests_by_user(self, user_id: int) -> int:
        """Delete every request of a user and return the days credited back."""
        credited = sum(r.days for r in self.requests if r.user_id == user_id and r.counts_against_balance)

        await self.gateway.call("removeRequestsByUser", {"userId": user_id})
        self.requests = [r for r in self.requests if r.user_id != user_id]

        if credited > 0:
            await self._adjust_balance(user_id, -credited)
        return credited


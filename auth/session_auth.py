# Session Authentication and User Management

import json
import logging
from typing import Any, Dict, List, Optional
from pydantic import ValidationError

from utils.api_gateway import ApiGateway, ServerError
from utils.environment import get_default_total_leave
from utils.models import Role, User, to_wire
from utils.session_storage import SessionStorage, USER_KEY, USERS_KEY

logger = logging.getLogger(__name__)


def decode_user(raw: Any) -> User:
    """
    Build a User from a sheet row.

    Apps Script returns the annualLeave cell as a JSON string; already-decoded
    objects are accepted as-is. A malformed string is logged and the user
    gets an empty balance.
    """
    if isinstance(raw, dict) and isinstance(raw.get("annualLeave"), str):
        raw = dict(raw)
        try:
            raw["annualLeave"] = json.loads(raw["annualLeave"])
        except json.JSONDecodeError as e:
            logger.error("Failed to parse annualLeave for user %r: %s", raw.get("id"), e)
            del raw["annualLeave"]
    return User.model_validate(raw)


class AuthState:
    """
    Current user, the full user list and their session-storage mirror.

    The local list is only changed after the gateway call succeeds, so a
    failed mutation needs no rollback.
    """

    def __init__(self, gateway: ApiGateway, storage: Optional[SessionStorage] = None):
        self.gateway = gateway
        self.storage = storage if storage is not None else SessionStorage()
        self.user: Optional[User] = None
        self.users: List[User] = []
        self.is_authenticated = False
        self.is_loading = True
        self.error: Optional[str] = None

    # --- session persistence ---

    def restore(self) -> bool:
        """Reload user and user list from storage; clears storage if they cannot be decoded."""
        try:
            saved_user = self.storage.get_item(USER_KEY)
            saved_users = self.storage.get_item(USERS_KEY)
            if saved_user and saved_users:
                self.user = User.model_validate_json(saved_user)
                self.users = [User.model_validate(u) for u in json.loads(saved_users)]
                self.is_authenticated = True
        except (ValueError, ValidationError) as e:
            logger.error("Failed to load session: %s", e)
            self.user = None
            self.users = []
            self.is_authenticated = False
            self.storage.clear()
        finally:
            self.is_loading = False
        return self.is_authenticated

    def _persist_user(self) -> None:
        self.storage.set_item(USER_KEY, json.dumps(to_wire(self.user)))

    def _persist_users(self) -> None:
        self.storage.set_item(USERS_KEY, json.dumps([to_wire(u) for u in self.users]))

    # --- login / logout ---

    async def login(self, email: str, password: str) -> User:
        self.is_loading = True
        self.error = None
        try:
            data = await self.gateway.call("login", {"email": email, "password": password})
            if not isinstance(data, dict) or not data.get("user") or data.get("users") is None:
                raise ServerError("Invalid login response from server.")

            user = decode_user(data["user"])
            users = [decode_user(u) for u in data["users"]]

            self.user = user
            self.users = users
            self.is_authenticated = True
            self._persist_user()
            self._persist_users()
            logger.info("User %s logged in (%s)", user.email, user.role.value)
            return user
        except Exception as e:
            logger.error("Login failed for %s: %s", email, e)
            self.error = str(e) or "Login failed."
            self.logout()
            raise
        finally:
            self.is_loading = False

    def logout(self) -> None:
        self.user = None
        self.users = []
        self.is_authenticated = False
        self.storage.clear()

    # --- user management ---

    def find_user(self, user_id: int) -> Optional[User]:
        return next((u for u in self.users if u.id == user_id), None)

    @property
    def is_approver(self) -> bool:
        return self.user is not None and self.user.role == Role.APPROVER

    async def add_user(
        self,
        name: str,
        email: str,
        role: Role = Role.EMPLOYEE,
        password: Optional[str] = None,
        total_leave: Optional[int] = None,
    ) -> User:
        if not password or not password.strip():
            raise ValueError("A password is required for new employees.")
        if total_leave is None:
            total_leave = get_default_total_leave()

        user_data: Dict[str, Any] = {
            "name": name,
            "email": email,
            "role": Role(role).value,
            "password": password,
            "totalLeave": total_leave,
        }
        returned = await self.gateway.call("addUser", {"user": user_data, "totalLeave": total_leave})
        new_user = decode_user(returned)
        self.users = [*self.users, new_user]
        self._persist_users()
        return new_user

    async def update_user(self, updated_user: User) -> User:
        returned = await self.gateway.call("updateUser", {"user": to_wire(updated_user)})
        returned_user = decode_user(returned)
        self.users = [returned_user if u.id == returned_user.id else u for u in self.users]
        self._persist_users()

        if self.user is not None and self.user.id == returned_user.id:
            self.user = returned_user
            self._persist_user()
        return returned_user

    async def edit_user(self, user_id: int, name: str, email: str, role: Role, total_leave: int) -> User:
        """Apply the management form: keep used days, recompute available from the new total."""
        existing = self.find_user(user_id)
        if existing is None:
            raise LookupError(f"User {user_id} not found")
        updated = existing.model_copy(update={
            "name": name,
            "email": email,
            "role": Role(role),
            "annual_leave": existing.annual_leave.with_total(total_leave),
        })
        return await self.update_user(updated)

    async def delete_user(self, user_id: int) -> None:
        await self.gateway.call("deleteUser", {"userId": user_id})
        self.users = [u for u in self.users if u.id != user_id]
        self._persist_users()

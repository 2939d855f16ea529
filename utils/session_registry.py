# Session Registry for managing per-login state across the application
import logging
import uuid
from typing import Callable, Dict, Optional

from auth.session_auth import AuthState
from utils.api_gateway import ApiGateway
from utils.models import User
from utils.session_storage import SessionStorage
from utils.vacation_requests import RequestState

logger = logging.getLogger(__name__)


class Session:
    """Storage, auth state and request state of one logged-in browser tab."""

    def __init__(self, session_id: str, gateway: ApiGateway, alert: Optional[Callable[[str], None]] = None):
        self.id = session_id
        self.storage = SessionStorage()
        self.auth = AuthState(gateway, self.storage)
        self.requests = RequestState(gateway, self.auth, alert=alert)

    async def login(self, email: str, password: str) -> User:
        """Authenticate, then fetch the request list once."""
        user = await self.auth.login(email, password)
        await self.requests.load()
        return user

    def logout(self) -> None:
        self.auth.logout()
        self.requests.requests = []


class SessionRegistry:
    """
    Keeps live sessions by id so every HTTP call of a login reuses the
    same in-memory copies of users and requests.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def create(self, gateway: ApiGateway, alert: Optional[Callable[[str], None]] = None) -> Session:
        session_id = uuid.uuid4().hex
        session = Session(session_id, gateway, alert=alert)
        self._sessions[session_id] = session
        logger.debug(f"Created session {session_id[:8]}")
        return session

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def drop(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.logout()
            logger.debug(f"Dropped session {session_id[:8]}")

    def clear(self) -> None:
        for session in self._sessions.values():
            session.logout()
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


# Global registry instance
session_registry = SessionRegistry()

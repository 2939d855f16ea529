# Per-session key/value store mirroring the browser's sessionStorage API
from typing import Dict, Iterator, Optional

USER_KEY = "vacationManagerUser"
USERS_KEY = "vacationManagerUsers"


class SessionStorage:
    """
    String-only key/value store scoped to one login session.

    Values are JSON documents written by the auth state; nothing here
    interprets them.
    """

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))

"""
Per-login session state.

A SessionContext is created at login and thrown away at logout, or when the
same user logs in again. The HTTP
layer keeps live contexts in a SessionRegistry owned by the application.
"""

import secrets
from typing import Any, Dict, Optional

from videoclub.schemas import UserResponse

SELECTED_MOVIE = "selected_movie"


class SessionContext:
    def __init__(self, user: UserResponse):
        self.user = user
        self._scratch: Dict[str, Any] = {}

    @property
    def is_admin(self) -> bool:
        return self.user.is_admin

    def set(self, key: str, value: Any) -> None:
        if value is None:
            self._scratch.pop(key, None)
        else:
            self._scratch[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._scratch.get(key, default)

    def pop(self, key: str, default: Any = None) -> Any:
        return self._scratch.pop(key, default)

    def clear(self) -> None:
        self._scratch.clear()


class SessionRegistry:
    def __init__(self):
        self._sessions: Dict[str, SessionContext] = {}

    def open(self, user: UserResponse) -> tuple[str, SessionContext]:
        """Start a session for the user, ending any session the user already had."""
        for stale in [t for t, c in self._sessions.items() if c.user.id == user.id]:
            self.close(stale)
        token = secrets.token_urlsafe(32)
        context = SessionContext(user)
        self._sessions[token] = context
        return token, context

    def get(self, token: Optional[str]) -> Optional[SessionContext]:
        if not token:
            return None
        return self._sessions.get(token)

    def close(self, token: str) -> bool:
        context = self._sessions.pop(token, None)
        if context is None:
            return False
        context.clear()
        return True

    def __len__(self) -> int:
        return len(self._sessions)

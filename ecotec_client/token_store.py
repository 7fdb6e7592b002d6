"""
Holder of the current session credentials.

The access token lives in memory only. The refresh token and the last known
user are written to the session-data namespace so a restarted process can
restore the session. ``TokenStore`` is the only writer of those fields.
"""

from typing import Callable, List, Optional

from pydantic import ValidationError

from .cache.persistent_cache import SessionDataStore
from .logging_config import get_logger
from .models import User

logger = get_logger(__name__)

REFRESH_TOKEN_KEY = "refresh_token"
CACHED_USER_KEY = "user"

TokenListener = Callable[[Optional[str]], None]


class TokenStore:
    """
    Access token, refresh token and cached user for this process.

    Attributes:
        session_data: Durable store for the refresh token and cached user
    """

    def __init__(self, session_data: Optional[SessionDataStore] = None) -> None:
        self.session_data = session_data
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._cached_user: Optional[User] = None
        self._listeners: List[TokenListener] = []

        if session_data is not None:
            self._refresh_token = session_data.get(REFRESH_TOKEN_KEY)
            self._cached_user = self._load_user()

    def _load_user(self) -> Optional[User]:
        raw = self.session_data.get(CACHED_USER_KEY)
        if raw is None:
            return None
        try:
            return User.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding unreadable cached user")
            self.session_data.delete(CACHED_USER_KEY)
            return None

    def on_token_change(self, listener: TokenListener) -> None:
        """Call ``listener`` with the new access token whenever it changes."""
        self._listeners.append(listener)

    def get_access_token(self) -> Optional[str]:
        return self._access_token

    def set_access_token(self, token: Optional[str]) -> None:
        self._access_token = token
        for listener in list(self._listeners):
            listener(token)
        if token is None:
            logger.debug("Access token cleared")

    def get_refresh_token(self) -> Optional[str]:
        return self._refresh_token

    def set_refresh_token(self, token: Optional[str]) -> None:
        self._refresh_token = token
        if self.session_data is None:
            return
        if token:
            self.session_data.save(REFRESH_TOKEN_KEY, token)
        else:
            self.session_data.delete(REFRESH_TOKEN_KEY)

    def get_cached_user(self) -> Optional[User]:
        return self._cached_user

    def set_cached_user(self, user: Optional[User]) -> None:
        self._cached_user = user
        if self.session_data is None:
            return
        if user is not None:
            self.session_data.save(CACHED_USER_KEY, user.model_dump(mode="json"))
        else:
            self.session_data.delete(CACHED_USER_KEY)

    def is_authenticated(self) -> bool:
        return self._access_token is not None

    def has_possible_session(self) -> bool:
        """True when a restart could restore the session without logging in."""
        return bool(self._refresh_token) or self._cached_user is not None

    def clear(self) -> None:
        """Drop every credential (used by logout)."""
        self.set_access_token(None)
        self.set_refresh_token(None)
        self.set_cached_user(None)

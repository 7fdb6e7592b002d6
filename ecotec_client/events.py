"""
Process-wide logout notification.

Forced logout is the only cross-component signal the data layer emits.
Session-dependent observers (login screen, view state) subscribe here.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .logging_config import get_logger

logger = get_logger(__name__)

SESSION_EXPIRED = "session_expired"
TOKEN_REFRESH_FAILED = "token_refresh_failed"


@dataclass(frozen=True)
class LogoutEvent:
    """Payload delivered to logout observers."""

    reason: str
    occurred_at: float = field(default_factory=time.time)


LogoutCallback = Callable[[LogoutEvent], None]


class LogoutNotifier:
    """
    Synchronous fan-out of logout events.

    Observers are called in subscription order. A failing observer is
    logged and skipped so the remaining observers still hear about the
    logout.
    """

    def __init__(self) -> None:
        self._subscribers: List[LogoutCallback] = []

    def subscribe(self, callback: LogoutCallback) -> Callable[[], None]:
        """
        Register an observer.

        Returns:
            A function that removes the observer again
        """
        self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: LogoutCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, reason: str) -> LogoutEvent:
        event = LogoutEvent(reason=reason)
        logger.info(
            "Emitting logout event",
            extra={
                "extra_fields": {
                    "reason": reason,
                    "subscribers": len(self._subscribers),
                }
            },
        )
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Logout observer failed",
                    extra={"extra_fields": {"observer": repr(callback)}},
                )
        return event


# Global notifier instance
_logout_notifier: Optional[LogoutNotifier] = None


def get_logout_notifier() -> LogoutNotifier:
    """Get or create the process-wide logout notifier."""
    global _logout_notifier

    if _logout_notifier is None:
        _logout_notifier = LogoutNotifier()

    return _logout_notifier

"""
Custom exception classes for the data client.

Auth, network and API errors are surfaced to the calling UI action.
Storage and corruption errors are raised by the cache layer internally and
absorbed there; callers never see them.
"""

from typing import Any, Dict, Optional


class DataClientException(Exception):
    """
    Base exception for all data client errors.

    All custom exceptions inherit from this class
    for consistent error handling.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize data client exception.

        Args:
            message: Human-readable error message
            details: Additional context about the error
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NetworkError(DataClientException):
    """
    Raised when the transport fails before any response is received.

    Used for connection errors, timeouts and other httpx transport failures.
    """

    def __init__(
        self,
        url: str,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize network error.

        Args:
            url: The URL that could not be reached
            message: Optional custom error message
            details: Additional context about the error
        """
        self.url = url
        default_message = f"Network error while requesting {url}"
        super().__init__(message or default_message, details)


class ApiError(DataClientException):
    """Raised when the backend answers with a non-2xx status other than 401."""

    def __init__(
        self,
        status_code: int,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message or f"HTTP error! status: {status_code}", details)


class AuthExpiredError(ApiError):
    """
    Raised when a 401 reaches the caller.

    The gateway only lets a 401 through after its refresh attempt failed or
    after the retried request was rejected again.
    """

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(401, message or "Access token has expired", details)


class RefreshFailureError(DataClientException):
    """
    Raised when the access token could not be renewed.

    Terminal for the session: tokens are cleared, the persisted cache is
    purged and a logout notification is emitted by the refreshing caller.
    """

    def __init__(
        self,
        reason: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.reason = reason
        self.status_code = status_code
        message = "Token refresh failed"
        if reason:
            message += f": {reason}"
        super().__init__(message, details)


class StorageError(DataClientException):
    """Raised by a key/value backend when a read, write or delete fails."""


class StorageQuotaExceededError(StorageError):
    """Raised by a key/value backend when a write does not fit its quota."""

    def __init__(
        self,
        key: str,
        size: int,
        quota: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.key = key
        self.size = size
        self.quota = quota
        message = f"Storage quota exceeded writing {size} bytes to '{key}'"
        if quota is not None:
            message += f" (quota {quota} bytes)"
        super().__init__(message, details)


class CacheCorruptionError(DataClientException):
    """Raised when a persisted cache entry cannot be decoded."""

    def __init__(
        self,
        key: str,
        reason: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Corrupted cache entry '{key}': {reason}", details)

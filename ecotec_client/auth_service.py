"""
Authentication service.

Login, registration, logout and session restore on top of the
``AuthGateway``. Credentials returned by the backend are written to the
``TokenStore`` through the gateway so there is a single writer.
"""

from typing import Any, Dict, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .api_client import AuthGateway, handle_auth_response
from .config import settings
from .exceptions import NetworkError, RefreshFailureError
from .logging_config import get_logger
from .models import AuthPayload, User

logger = get_logger(__name__)

# Statuses returned while the backend is cold-starting
RETRYABLE_STATUSES = frozenset({502, 503})


def is_retryable_refresh_error(error: BaseException) -> bool:
    """A refresh is worth retrying on cold-start statuses and network errors."""
    if not isinstance(error, RefreshFailureError):
        return False
    if error.status_code in RETRYABLE_STATUSES:
        return True
    return error.status_code is None and isinstance(error.__cause__, NetworkError)


class AuthService:
    """
    Session lifecycle operations.

    Attributes:
        gateway: Gateway used for every call
        max_retries: Retries of the refresh call in ``restore_session``
        base_delay: First backoff delay in seconds (doubles each retry)
    """

    def __init__(
        self,
        gateway: AuthGateway,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> None:
        self.gateway = gateway
        self.max_retries = settings.RESTORE_MAX_RETRIES if max_retries is None else max_retries
        self.base_delay = settings.RESTORE_BASE_DELAY if base_delay is None else base_delay

    @property
    def token_store(self):
        return self.gateway.token_store

    async def _authenticate(self, path: str, body: Dict[str, Any]) -> AuthPayload:
        response = await self.gateway.post(path, json=body)
        result = handle_auth_response(response)
        payload = AuthPayload.model_validate(result["data"])
        self.gateway.store_session(payload)
        return payload

    async def login(self, email: str, password: str) -> User:
        """
        Log in with email and password.

        Raises:
            AuthExpiredError: On rejected credentials
            ApiError: On any other error status
            NetworkError: On transport failure
        """
        payload = await self._authenticate(
            self.gateway.login_path, {"email": email, "password": password}
        )
        logger.info(f"Login successful for user {payload.user.id if payload.user else '?'}")
        return payload.user

    async def register(
        self,
        email: str,
        password: str,
        name: str,
        shop_slug: Optional[str] = None,
    ) -> User:
        body: Dict[str, Any] = {"email": email, "password": password, "name": name}
        if shop_slug:
            body["shopSlug"] = shop_slug
        payload = await self._authenticate("/auth/register", body)
        logger.info("Registration successful")
        return payload.user

    async def refresh(self) -> AuthPayload:
        """Renew the access token once (no single-flight, no retry)."""
        return await self.gateway.refresh_session()

    async def _end_session(self, path: str) -> None:
        try:
            await self.gateway.post(path)
        finally:
            self.token_store.set_access_token(None)
            self.token_store.set_refresh_token(None)
            self.token_store.set_cached_user(None)

    async def logout(self) -> None:
        """Revoke the refresh token on the server; local tokens always cleared."""
        await self._end_session("/auth/logout")

    async def logout_all(self) -> None:
        """Revoke every refresh token of the user (all devices)."""
        await self._end_session("/auth/logout-all")

    async def get_me(self) -> User:
        response = await self.gateway.get("/auth/me")
        result = handle_auth_response(response)
        user = User.model_validate(result["data"]["user"])
        self.token_store.set_cached_user(user)
        return user

    def is_authenticated(self) -> bool:
        return self.token_store.is_authenticated()

    async def restore_session(self) -> Optional[User]:
        """
        Try to resume a session on startup using the stored refresh token.

        The refresh is retried with exponential backoff (2s, 4s, 8s by
        default) on 502/503 and network errors, which the backend returns
        while it is waking up. Any other failure ends the attempt.

        Returns:
            The restored user, or None when there is no valid session
        """
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(is_retryable_refresh_error),
                stop=stop_after_attempt(self.max_retries + 1),
                wait=wait_exponential(multiplier=self.base_delay, min=self.base_delay),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.info(
                            "Server waking up, retrying session restore",
                            extra={
                                "extra_fields": {
                                    "attempt": attempt.retry_state.attempt_number,
                                    "max_retries": self.max_retries,
                                }
                            },
                        )
                    payload = await self.gateway.refresh_session()
        except (RefreshFailureError, RetryError) as error:
            logger.info(f"No active session: {error}")
            return None

        user = payload.user or self.token_store.get_cached_user()
        if user is not None:
            logger.info(f"Session restored for user {user.id}")
        return user

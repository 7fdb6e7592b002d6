"""
Authenticated HTTP gateway for the shop backend API.

Every outbound call goes through ``AuthGateway.request``. The gateway injects
the bearer token, detects ``401`` responses, renews the access token once per
contention window through the ``RefreshCoordinator`` and retries the original
request. When renewal fails the session is terminated with a forced logout.
"""

import time
from typing import Any, Dict, Mapping, Optional

import httpx
from pydantic import ValidationError

from .cache.persistent_cache import PersistentCache
from .config import settings
from .events import TOKEN_REFRESH_FAILED, SESSION_EXPIRED, LogoutNotifier, get_logout_notifier
from .exceptions import ApiError, AuthExpiredError, NetworkError, RefreshFailureError
from .logging_config import get_logger, get_request_id
from .metrics import (
    forced_logouts_total,
    gateway_network_errors_total,
    gateway_request_duration_seconds,
    gateway_requests_total,
)
from .models import AuthPayload
from .refresh import RefreshCoordinator
from .token_store import TokenStore

logger = get_logger(__name__)


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or fallback
    return fallback


def handle_auth_response(response: httpx.Response) -> Any:
    """
    Decode a gateway response, raising on any non-2xx status.

    A 401 here means recovery already failed (or the retried request was
    rejected again), so it is reported as ``AuthExpiredError``.

    Args:
        response: Response returned by ``AuthGateway.request``

    Returns:
        Parsed JSON body

    Raises:
        AuthExpiredError: On 401
        ApiError: On any other non-2xx status or an unreadable body
    """
    if response.status_code == 401:
        raise AuthExpiredError(_error_message(response, "Access token has expired"))

    if not response.is_success:
        raise ApiError(
            response.status_code,
            _error_message(response, f"HTTP error! status: {response.status_code}"),
        )

    try:
        return response.json()
    except ValueError as e:
        raise ApiError(response.status_code, "Invalid JSON in response body") from e


class AuthGateway:
    """
    Wrapper around ``httpx.AsyncClient`` that handles bearer authentication.

    Non-401 responses, including every 4xx/5xx business error, are returned
    untouched. A 401 from the refresh or login endpoint is also returned
    untouched so renewal can never recurse.

    Attributes:
        base_url: Base URL joined to relative request paths
        token_store: Source of the access and refresh tokens
        persistent_cache: Purged on forced logout
        notifier: Receives the logout event
        refresh_path, login_path: Endpoints exempt from token renewal
        refresh_coordinator: Single-flight lock around token renewal
    """

    def __init__(
        self,
        token_store: TokenStore,
        persistent_cache: Optional[PersistentCache] = None,
        notifier: Optional[LogoutNotifier] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        refresh_path: Optional[str] = None,
        login_path: Optional[str] = None,
    ) -> None:
        self.token_store = token_store
        self.persistent_cache = persistent_cache
        self.notifier = notifier or get_logout_notifier()
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.REQUEST_TIMEOUT
        self.refresh_path = refresh_path or settings.AUTH_REFRESH_PATH
        self.login_path = login_path or settings.AUTH_LOGIN_PATH
        self.refresh_coordinator = RefreshCoordinator()
        self._client = client

        logger.info(
            f"Initialized AuthGateway: base_url={self.base_url}, timeout={self.timeout}s"
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """
        Get or create the persistent HTTP client with connection pooling.

        Returns:
            Configured httpx.AsyncClient instance
        """
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=httpx.Limits(
                    max_keepalive_connections=20,
                    max_connections=100,
                    keepalive_expiry=30.0,
                ),
            )
            logger.debug("Created new HTTP client with connection pooling")
        return self._client

    async def close(self) -> None:
        """
        Close the HTTP client and release connections.

        Should be called during application shutdown.
        """
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.debug("Closed HTTP client")

    def build_url(self, url: str) -> str:
        if url.startswith("http://") or url.startswith("https://"):
            return url
        return f"{self.base_url}/{url.lstrip('/')}"

    def is_auth_endpoint(self, url: str) -> bool:
        return self.refresh_path in url or self.login_path in url

    def get_auth_headers(self) -> Dict[str, str]:
        """Headers for callers that build their own requests."""
        headers = {"Content-Type": "application/json"}
        token = self.token_store.get_access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _prepare_headers(
        self,
        headers: Optional[Mapping[str, str]],
        has_form_body: bool,
    ) -> Dict[str, str]:
        prepared = dict(headers or {})
        names = {name.lower() for name in prepared}

        if "content-type" not in names and not has_form_body:
            prepared["Content-Type"] = "application/json"

        prepared.setdefault("Accept", "application/json")

        request_id = get_request_id()
        if request_id:
            prepared["X-Request-ID"] = request_id

        token = self.token_store.get_access_token()
        if token:
            prepared["Authorization"] = f"Bearer {token}"

        return prepared

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        **kwargs: Any,
    ) -> httpx.Response:
        client = await self._get_client()
        start_time = time.perf_counter()
        try:
            response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as error:
            duration_ms = (time.perf_counter() - start_time) * 1000
            gateway_network_errors_total.labels(error_type=type(error).__name__).inc()
            logger.error(
                "Transport error calling backend",
                extra={
                    "extra_fields": {
                        "method": method,
                        "url": url,
                        "duration_ms": duration_ms,
                        "error_type": type(error).__name__,
                        "error_message": str(error),
                    }
                },
            )
            raise NetworkError(
                url,
                details={"error_type": type(error).__name__, "error_message": str(error)},
            ) from error

        duration = time.perf_counter() - start_time
        gateway_requests_total.labels(method=method, status=str(response.status_code)).inc()
        gateway_request_duration_seconds.labels(method=method).observe(duration)
        logger.debug(
            "Received response from backend",
            extra={
                "extra_fields": {
                    "method": method,
                    "url": url,
                    "status_code": response.status_code,
                    "duration_ms": duration * 1000,
                }
            },
        )
        return response

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        data: Optional[Mapping[str, Any]] = None,
        files: Any = None,
        content: Optional[bytes] = None,
    ) -> httpx.Response:
        """
        Send an authenticated request, renewing the token on 401.

        Args:
            method: HTTP method
            url: Absolute URL or path relative to the API base URL
            headers: Extra headers; an explicit Content-Type is kept
            params: Query parameters
            json: JSON body
            data: Form body (no JSON Content-Type is added)
            files: Multipart files (no JSON Content-Type is added)
            content: Raw bytes body (no JSON Content-Type is added)

        Returns:
            The backend response. After a failed renewal the refreshing
            caller gets the original 401 back.

        Raises:
            NetworkError: On transport failure
            RefreshFailureError: When this call waited on a renewal that failed
        """
        method = method.upper()
        full_url = self.build_url(url)
        has_form_body = data is not None or files is not None or content is not None
        request_headers = self._prepare_headers(headers, has_form_body)
        send_kwargs: Dict[str, Any] = {
            "params": params,
            "json": json,
            "data": data,
            "files": files,
            "content": content,
        }

        response = await self._send(method, full_url, request_headers, **send_kwargs)

        if response.status_code != 401:
            return response

        if self.is_auth_endpoint(full_url):
            return response

        is_refresher = not self.refresh_coordinator.is_refreshing
        logger.info(
            "Access token rejected, renewing",
            extra={
                "extra_fields": {
                    "method": method,
                    "url": full_url,
                    "role": "refresher" if is_refresher else "waiter",
                }
            },
        )

        try:
            new_token = await self.refresh_coordinator.run_exclusive(
                self.refresh_access_token
            )
        except RefreshFailureError as error:
            if not is_refresher:
                raise
            logger.warning(
                "Token renewal failed, ending session",
                extra={"extra_fields": {"reason": error.reason}},
            )
            self.force_logout(TOKEN_REFRESH_FAILED)
            return response

        request_headers["Authorization"] = f"Bearer {new_token}"
        retry_response = await self._send(method, full_url, request_headers, **send_kwargs)
        if retry_response.status_code == 401:
            logger.warning(
                "Request rejected again after token renewal",
                extra={"extra_fields": {"method": method, "url": full_url}},
            )
        return retry_response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    def store_session(self, payload: AuthPayload) -> None:
        """Save the tokens and user returned by login, register or refresh."""
        self.token_store.set_access_token(payload.access_token)
        if payload.refresh_token:
            self.token_store.set_refresh_token(payload.refresh_token)
        if payload.user is not None:
            self.token_store.set_cached_user(payload.user)

    async def refresh_session(self) -> AuthPayload:
        """
        Call the refresh endpoint once and store the renewed credentials.

        The stored refresh token is sent in the body as a fallback for
        deployments where the refresh cookie is not delivered.

        Raises:
            RefreshFailureError: On transport failure, non-2xx status or an
                unreadable response
        """
        refresh_url = self.build_url(self.refresh_path)
        headers = self._prepare_headers(None, has_form_body=False)
        try:
            response = await self._send(
                "POST",
                refresh_url,
                headers,
                json={"refreshToken": self.token_store.get_refresh_token()},
            )
        except NetworkError as e:
            raise RefreshFailureError(reason=e.message) from e

        if not response.is_success:
            raise RefreshFailureError(
                reason=_error_message(response, "refresh rejected"),
                status_code=response.status_code,
            )

        try:
            payload = AuthPayload.model_validate(response.json()["data"])
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise RefreshFailureError(
                reason="malformed refresh response",
                status_code=response.status_code,
            ) from e

        self.store_session(payload)
        return payload

    async def refresh_access_token(self) -> str:
        payload = await self.refresh_session()
        return payload.access_token

    def force_logout(self, reason: str = SESSION_EXPIRED) -> None:
        """
        Terminate the session immediately.

        Clears every credential, purges the persisted collections and tells
        session-dependent observers through the logout notifier.
        """
        forced_logouts_total.labels(reason=reason).inc()
        self.token_store.clear()
        if self.persistent_cache is not None:
            self.persistent_cache.clear_all()
        self.notifier.emit(reason)

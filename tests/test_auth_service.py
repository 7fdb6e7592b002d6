"""
Data client tests - authentication service.
"""

import httpx
import pytest

from ecotec_client.auth_service import AuthService, is_retryable_refresh_error
from ecotec_client.exceptions import AuthExpiredError, NetworkError, RefreshFailureError
from ecotec_client.models import User, UserRole

from .conftest import ADMIN_USER


@pytest.fixture
def auth(gateway) -> AuthService:
    """Auth service with instant backoff."""
    return AuthService(gateway, max_retries=3, base_delay=0)


class TestLogin:
    """Test login and registration."""

    @pytest.mark.asyncio
    async def test_login_stores_session(self, auth, backend, token_store):
        """Test a successful login stores tokens and the user."""
        token_store.clear()

        user = await auth.login("admin@example.com", "secret")

        assert user.id == "user-1"
        assert user.role == UserRole.ADMIN
        assert token_store.get_access_token() == "T2"
        assert token_store.get_refresh_token() == "R2"
        assert token_store.get_cached_user().email == "admin@example.com"

    @pytest.mark.asyncio
    async def test_login_rejected(self, auth, backend, token_store):
        """Test rejected credentials raise without touching the session."""
        token_store.clear()
        backend.login_status = 401

        with pytest.raises(AuthExpiredError):
            await auth.login("admin@example.com", "wrong")

        assert backend.refresh_calls == 0
        assert token_store.get_access_token() is None

    @pytest.mark.asyncio
    async def test_register_sends_shop_slug(self, auth, backend):
        """Test registration passes the optional shop slug."""
        await auth.register("new@example.com", "secret", "New User", shop_slug="harbour")

        body = backend.requests_to("/auth/register")[0].read()
        assert b"harbour" in body


class TestLogout:
    """Test logout variants."""

    @pytest.mark.asyncio
    async def test_logout_clears_tokens(self, auth, backend, token_store):
        """Test logout revokes on the server and clears local tokens."""
        token_store.set_access_token("T2")
        token_store.set_cached_user(User.model_validate(ADMIN_USER))

        await auth.logout()

        assert len(backend.requests_to("/auth/logout")) == 1
        assert token_store.get_access_token() is None
        assert token_store.get_refresh_token() is None
        assert token_store.get_cached_user() is None

    @pytest.mark.asyncio
    async def test_logout_clears_tokens_when_offline(self, auth, backend, token_store):
        """Test local tokens are cleared even if the server is unreachable."""
        backend.transport_error = lambda request: httpx.ConnectError("down", request=request)

        with pytest.raises(NetworkError):
            await auth.logout_all()

        assert token_store.get_access_token() is None
        assert token_store.get_refresh_token() is None


class TestGetMe:
    """Test the current-user lookup."""

    @pytest.mark.asyncio
    async def test_get_me_caches_user(self, auth, token_store):
        """Test the returned user is cached, renewing the token on the way."""
        user = await auth.get_me()

        assert user.shop.id == "shop-1"
        assert token_store.get_cached_user() == user


class TestRestoreSession:
    """Test session restore with cold-start retries."""

    @pytest.mark.asyncio
    async def test_restore_succeeds(self, auth, backend, token_store):
        """Test a stored refresh token restores the session."""
        token_store.set_access_token(None)

        user = await auth.restore_session()

        assert user is not None and user.id == "user-1"
        assert auth.is_authenticated() is True

    @pytest.mark.asyncio
    async def test_restore_retries_while_server_wakes_up(self, auth, backend):
        """Test 503 and 502 responses are retried."""
        backend.refresh_statuses = [503, 502]

        user = await auth.restore_session()

        assert user is not None
        assert backend.refresh_calls == 3

    @pytest.mark.asyncio
    async def test_restore_gives_up_after_max_retries(self, auth, backend, token_store):
        """Test the attempt ends after the configured retries."""
        token_store.set_access_token(None)
        backend.refresh_statuses = [503] * 10

        assert await auth.restore_session() is None
        assert backend.refresh_calls == 4
        assert auth.is_authenticated() is False

    @pytest.mark.asyncio
    async def test_restore_does_not_retry_rejection(self, auth, backend):
        """Test an invalid refresh token is not retried."""
        backend.refresh_statuses = [401]

        assert await auth.restore_session() is None
        assert backend.refresh_calls == 1

    @pytest.mark.asyncio
    async def test_restore_falls_back_to_cached_user(self, auth, backend, token_store):
        """Test the cached user is returned when refresh omits it."""
        await auth.login("admin@example.com", "secret")
        backend.refresh_user = None

        user = await auth.restore_session()

        assert user is not None and user.id == "user-1"


class TestRetryPredicate:
    """Test which refresh failures are worth retrying."""

    def test_cold_start_statuses(self):
        assert is_retryable_refresh_error(RefreshFailureError(status_code=503))
        assert is_retryable_refresh_error(RefreshFailureError(status_code=502))
        assert not is_retryable_refresh_error(RefreshFailureError(status_code=401))

    def test_network_cause(self):
        error = RefreshFailureError(reason="down")
        error.__cause__ = NetworkError("http://api.test")

        assert is_retryable_refresh_error(error)
        assert not is_retryable_refresh_error(RefreshFailureError(reason="malformed"))
        assert not is_retryable_refresh_error(ValueError("x"))

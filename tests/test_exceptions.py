"""
Data client tests - exception hierarchy.
"""

import pytest

from ecotec_client.exceptions import (
    ApiError,
    AuthExpiredError,
    CacheCorruptionError,
    DataClientException,
    NetworkError,
    RefreshFailureError,
    StorageError,
    StorageQuotaExceededError,
)


class TestExceptionHierarchy:
    """Test every error derives from the base exception."""

    @pytest.mark.parametrize(
        "error",
        [
            NetworkError("http://api.test/customers"),
            ApiError(500),
            AuthExpiredError(),
            RefreshFailureError(),
            StorageError("disk gone"),
            StorageQuotaExceededError("key", 10),
            CacheCorruptionError("key", "bad json"),
        ],
    )
    def test_base_class(self, error):
        assert isinstance(error, DataClientException)
        assert str(error) == error.message

    def test_auth_expired_is_api_error(self):
        error = AuthExpiredError()

        assert isinstance(error, ApiError)
        assert error.status_code == 401
        assert error.message == "Access token has expired"

    def test_quota_is_storage_error(self):
        assert isinstance(StorageQuotaExceededError("k", 1), StorageError)


class TestMessages:
    """Test default messages and details."""

    def test_network_error(self):
        error = NetworkError("http://api.test/x", details={"error_type": "ConnectError"})

        assert error.message == "Network error while requesting http://api.test/x"
        assert error.details == {"error_type": "ConnectError"}

    def test_api_error_default_message(self):
        assert ApiError(502).message == "HTTP error! status: 502"

    def test_refresh_failure(self):
        error = RefreshFailureError(reason="Invalid refresh token", status_code=401)

        assert error.message == "Token refresh failed: Invalid refresh token"
        assert error.status_code == 401
        assert RefreshFailureError().message == "Token refresh failed"

    def test_quota_message(self):
        error = StorageQuotaExceededError("ecotec_cache_products", 900, quota=700)

        assert "900 bytes" in error.message
        assert "quota 700 bytes" in error.message

    def test_default_details(self):
        assert StorageError("x").details == {}

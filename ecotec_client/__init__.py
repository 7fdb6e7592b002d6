"""
ECOTEC data client.

Authenticated API gateway with single-flight token refresh and a
tenant-scoped two-tier cache of shop collections.
"""

from .api_client import AuthGateway, handle_auth_response
from .auth_service import AuthService
from .cache import CacheKey, DataCache, PersistentCache
from .client import EcotecClient, get_data_client
from .events import LogoutEvent, LogoutNotifier, get_logout_notifier
from .refresh import RefreshCoordinator
from .tenant import TenantScopeTracker, effective_tenant_id
from .token_store import TokenStore

__version__ = "1.0.0"

__all__ = [
    "AuthGateway",
    "AuthService",
    "CacheKey",
    "DataCache",
    "EcotecClient",
    "LogoutEvent",
    "LogoutNotifier",
    "PersistentCache",
    "RefreshCoordinator",
    "TenantScopeTracker",
    "TokenStore",
    "effective_tenant_id",
    "get_data_client",
    "get_logout_notifier",
    "handle_auth_response",
]

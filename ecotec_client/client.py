"""
Wiring of the data-access layer.

``EcotecClient`` builds the process-wide objects once (token store, gateway,
caches, tenant tracker, domain services) and connects them. A shop switch
resets the in-memory cache. Every logout forgets the viewed shop; a forced
logout also purges the persisted cache.
"""

from typing import Optional

import httpx

from .api_client import AuthGateway
from .auth_service import AuthService
from .cache.memory_cache import DataCache
from .cache.persistent_cache import CacheKey, PersistentCache, SessionDataStore
from .cache.storage import KeyValueStore, build_store
from .config import Settings, settings
from .events import LogoutEvent, LogoutNotifier, get_logout_notifier
from .logging_config import get_logger, setup_logging
from .models import Customer, Invoice, Product, Supplier, User
from .services import CustomerService, InvoiceService, ProductService, SupplierService
from .tenant import TenantScopeTracker
from .token_store import TokenStore

logger = get_logger(__name__)


class EcotecClient:
    """
    Application-lifetime container for the data layer.

    Attributes:
        token_store: Session credentials
        persistent_cache: Durable collection cache
        gateway: Authenticated HTTP gateway
        auth: Login, logout and session restore
        tenant: Active shop tracker
        data_cache: In-memory collections for views
        customers, products, invoices, suppliers: Domain services
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        config: Optional[Settings] = None,
        notifier: Optional[LogoutNotifier] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        config = config or settings
        self.store = store or build_store(config)
        self.notifier = notifier or get_logout_notifier()

        self.session_data = SessionDataStore(
            self.store,
            prefix=config.SESSION_PREFIX,
            ttl_seconds=config.SESSION_TTL_SECONDS,
        )
        self.persistent_cache = PersistentCache(
            self.store,
            prefix=config.CACHE_PREFIX,
            version=config.CACHE_DATA_VERSION,
        )
        self.token_store = TokenStore(self.session_data)
        self.gateway = AuthGateway(
            self.token_store,
            persistent_cache=self.persistent_cache,
            notifier=self.notifier,
            base_url=config.API_BASE_URL,
            timeout=config.REQUEST_TIMEOUT,
            client=http_client,
            refresh_path=config.AUTH_REFRESH_PATH,
            login_path=config.AUTH_LOGIN_PATH,
        )
        self.auth = AuthService(
            self.gateway,
            max_retries=config.RESTORE_MAX_RETRIES,
            base_delay=config.RESTORE_BASE_DELAY,
        )

        self.customers = CustomerService(self.gateway)
        self.products = ProductService(self.gateway)
        self.invoices = InvoiceService(self.gateway)
        self.suppliers = SupplierService(self.gateway)

        self.tenant = TenantScopeTracker(self.session_data)
        self.data_cache = DataCache(
            self.persistent_cache,
            tenant_provider=lambda: self.tenant.current_tenant_id,
        )
        self.data_cache.register(
            CacheKey.CUSTOMERS, self.customers.fetch_collection,
            keep_on_empty=True, item_type=Customer,
        )
        self.data_cache.register(
            CacheKey.PRODUCTS, self.products.fetch_collection,
            keep_on_empty=True, item_type=Product,
        )
        # Invoices are written even when the response is empty
        self.data_cache.register(
            CacheKey.INVOICES, self.invoices.fetch_collection,
            keep_on_empty=False, item_type=Invoice,
        )
        self.data_cache.register(
            CacheKey.SUPPLIERS, self.suppliers.fetch_collection,
            keep_on_empty=False, item_type=Supplier,
        )

        self.tenant.on_reset(lambda previous, new: self.data_cache.reset_all())
        self._unsubscribe_logout = self.notifier.subscribe(self._on_logout)

    def _clear_session_state(self) -> None:
        self.tenant.exit_viewing_shop()
        self.token_store.set_cached_user(None)
        self.data_cache.reset_all()

    def _on_logout(self, event: LogoutEvent) -> None:
        logger.info(f"Session ended ({event.reason}), clearing in-memory collections")
        self._clear_session_state()

    async def logout(self, all_devices: bool = False) -> None:
        """
        End the session on the server and drop everything scoped to it.

        Local session state is cleared even when the server cannot be
        reached.

        Args:
            all_devices: Revoke every refresh token of the user
        """
        try:
            if all_devices:
                await self.auth.logout_all()
            else:
                await self.auth.logout()
        finally:
            self._clear_session_state()

    async def start(self) -> Optional[User]:
        """
        Restore the previous session, if any, and scope the caches to it.

        Returns:
            The restored user or None
        """
        user = await self.auth.restore_session()
        if user is not None:
            self.tenant.restore_viewing_shop(user)
            self.tenant.observe_user(user)
            self.data_cache.hydrate()
        return user

    async def close(self) -> None:
        self._unsubscribe_logout()
        await self.gateway.close()


# Global client instance
_data_client: Optional[EcotecClient] = None


def get_data_client() -> EcotecClient:
    """Get or create the process-wide client."""
    global _data_client

    if _data_client is None:
        setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)
        _data_client = EcotecClient()

    return _data_client

"""
Tracking of the shop (tenant) whose data is being viewed.

A SUPER_ADMIN can switch between shops. When the effective shop changes
every in-memory collection must be dropped before the next load so nothing
from the previous shop is shown. Persisted entries stay on disk; they are
keyed by shop id and can be reused after switching back.
"""

from typing import Callable, List, Optional

from pydantic import ValidationError

from .cache.persistent_cache import SessionDataStore
from .logging_config import get_logger, set_shop_id
from .models import Shop, User, UserRole

logger = get_logger(__name__)

VIEWING_SHOP_KEY = "viewing_shop"

ResetCallback = Callable[[Optional[str], Optional[str]], None]


def effective_tenant_id(user: Optional[User], viewing_shop: Optional[Shop] = None) -> Optional[str]:
    """
    Shop whose data should be loaded.

    A viewed shop only applies to super admins; everyone else is scoped
    to their own shop.
    """
    if user is None:
        return None
    if viewing_shop is not None and user.role == UserRole.SUPER_ADMIN:
        return viewing_shop.id
    if user.shop is not None:
        return user.shop.id
    return None


class TenantScopeTracker:
    """
    Observes the active shop id and triggers resets on a switch.

    ``observe`` is called by the host whenever it learns the active shop
    (on every render tick in a UI). A transition only happens when the
    previous id was known and differs; the first observation never resets.

    Attributes:
        current_tenant_id: Last observed shop id
        viewing_shop: Shop a SUPER_ADMIN is currently viewing, if any
    """

    def __init__(self, session_data: Optional[SessionDataStore] = None) -> None:
        self.session_data = session_data
        self.current_tenant_id: Optional[str] = None
        self.viewing_shop: Optional[Shop] = None
        self._on_reset: List[ResetCallback] = []

    def on_reset(self, callback: ResetCallback) -> None:
        """Register ``callback(previous_id, new_id)`` to run on every switch."""
        self._on_reset.append(callback)

    def observe(self, tenant_id: Optional[str]) -> bool:
        """
        Record the active shop id.

        Returns:
            True if this observation was a shop switch
        """
        previous = self.current_tenant_id
        switched = previous is not None and previous != tenant_id

        if switched:
            logger.info(
                "Shop changed, clearing data cache",
                extra={"extra_fields": {"previous_shop": previous, "new_shop": tenant_id}},
            )
            for callback in list(self._on_reset):
                callback(previous, tenant_id)

        self.current_tenant_id = tenant_id
        set_shop_id(tenant_id)
        return switched

    def observe_user(self, user: Optional[User]) -> bool:
        """Observe the effective shop for ``user`` and the viewed shop."""
        return self.observe(effective_tenant_id(user, self.viewing_shop))

    def enter_viewing_shop(self, shop: Shop) -> None:
        self.viewing_shop = shop
        if self.session_data is not None:
            self.session_data.save(VIEWING_SHOP_KEY, shop.model_dump(mode="json"))

    def exit_viewing_shop(self) -> None:
        self.viewing_shop = None
        if self.session_data is not None:
            self.session_data.delete(VIEWING_SHOP_KEY)

    def restore_viewing_shop(self, user: Optional[User]) -> Optional[Shop]:
        """
        Bring back the shop a SUPER_ADMIN was viewing before a restart.

        Other roles never view foreign shops, so nothing is restored for them.
        """
        if user is None or user.role != UserRole.SUPER_ADMIN or self.session_data is None:
            return None

        saved = self.session_data.get(VIEWING_SHOP_KEY)
        if saved is None:
            return None

        try:
            self.viewing_shop = Shop.model_validate(saved)
        except ValidationError:
            logger.warning("Discarding unreadable viewing shop")
            self.session_data.delete(VIEWING_SHOP_KEY)
            return None

        logger.info(f"Viewing shop restored: {self.viewing_shop.id}")
        return self.viewing_shop

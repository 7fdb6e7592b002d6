"""
Tests for active shop tracking.
"""

from unittest.mock import MagicMock

from ecotec_client.models import Shop, User
from ecotec_client.tenant import VIEWING_SHOP_KEY, TenantScopeTracker, effective_tenant_id

from .conftest import ADMIN_USER, SHOP_2, SUPER_ADMIN_USER


class TestEffectiveTenant:
    """Test which shop's data is loaded."""

    def test_own_shop(self):
        assert effective_tenant_id(User.model_validate(ADMIN_USER)) == "shop-1"

    def test_viewing_shop_wins(self):
        user = User.model_validate(SUPER_ADMIN_USER)

        assert effective_tenant_id(user, Shop.model_validate(SHOP_2)) == "shop-2"

    def test_viewing_shop_ignored_for_other_roles(self):
        """Test an admin with a viewed shop still loads their own shop."""
        user = User.model_validate(ADMIN_USER)

        assert effective_tenant_id(user, Shop.model_validate(SHOP_2)) == "shop-1"

    def test_no_user(self):
        assert effective_tenant_id(None) is None


class TestObserve:
    """Test switch detection."""

    def test_first_observation_is_not_a_switch(self):
        tracker = TenantScopeTracker()
        callback = MagicMock()
        tracker.on_reset(callback)

        assert tracker.observe("shop-1") is False
        callback.assert_not_called()

    def test_same_tenant_is_not_a_switch(self):
        tracker = TenantScopeTracker()
        callback = MagicMock()
        tracker.on_reset(callback)

        tracker.observe("shop-1")
        assert tracker.observe("shop-1") is False
        callback.assert_not_called()

    def test_switch_runs_reset_callbacks(self):
        """Test a change between two known shops resets once."""
        tracker = TenantScopeTracker()
        callback = MagicMock()
        tracker.on_reset(callback)

        tracker.observe("shop-1")
        assert tracker.observe("shop-2") is True

        callback.assert_called_once_with("shop-1", "shop-2")
        assert tracker.current_tenant_id == "shop-2"

    def test_observe_admin_ignores_viewing_shop(self):
        tracker = TenantScopeTracker()
        tracker.enter_viewing_shop(Shop.model_validate(SHOP_2))

        tracker.observe_user(User.model_validate(ADMIN_USER))

        assert tracker.current_tenant_id == "shop-1"

    def test_switch_to_none(self):
        """Test leaving a shop view back to no shop is a switch."""
        tracker = TenantScopeTracker()
        callback = MagicMock()
        tracker.on_reset(callback)

        tracker.observe("shop-1")
        assert tracker.observe(None) is True
        assert tracker.observe("shop-1") is False

    def test_observe_user_with_viewing_shop(self):
        tracker = TenantScopeTracker()
        user = User.model_validate(SUPER_ADMIN_USER)

        tracker.observe_user(user)
        tracker.enter_viewing_shop(Shop.model_validate(SHOP_2))

        assert tracker.observe_user(user) is True
        assert tracker.current_tenant_id == "shop-2"


class TestViewingShop:
    """Test persistence of the shop a SUPER_ADMIN is viewing."""

    def test_restore_for_super_admin(self, session_data):
        TenantScopeTracker(session_data).enter_viewing_shop(Shop.model_validate(SHOP_2))

        tracker = TenantScopeTracker(session_data)
        restored = tracker.restore_viewing_shop(User.model_validate(SUPER_ADMIN_USER))

        assert restored.id == "shop-2"
        assert tracker.viewing_shop == restored

    def test_not_restored_for_other_roles(self, session_data):
        TenantScopeTracker(session_data).enter_viewing_shop(Shop.model_validate(SHOP_2))

        tracker = TenantScopeTracker(session_data)

        assert tracker.restore_viewing_shop(User.model_validate(ADMIN_USER)) is None
        assert tracker.viewing_shop is None

    def test_exit_forgets_shop(self, session_data):
        tracker = TenantScopeTracker(session_data)
        tracker.enter_viewing_shop(Shop.model_validate(SHOP_2))

        tracker.exit_viewing_shop()

        assert tracker.viewing_shop is None
        assert session_data.get(VIEWING_SHOP_KEY) is None

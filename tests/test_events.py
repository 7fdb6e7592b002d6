"""
Tests for the logout notifier.
"""

from ecotec_client.events import (
    SESSION_EXPIRED,
    TOKEN_REFRESH_FAILED,
    LogoutEvent,
    LogoutNotifier,
    get_logout_notifier,
)


class TestLogoutNotifier:
    """Test subscription and delivery."""

    def test_emit_reaches_subscribers_in_order(self):
        notifier = LogoutNotifier()
        seen = []
        notifier.subscribe(lambda event: seen.append(("first", event.reason)))
        notifier.subscribe(lambda event: seen.append(("second", event.reason)))

        event = notifier.emit(TOKEN_REFRESH_FAILED)

        assert isinstance(event, LogoutEvent)
        assert seen == [("first", TOKEN_REFRESH_FAILED), ("second", TOKEN_REFRESH_FAILED)]

    def test_unsubscribe(self):
        """Test the returned function removes the observer."""
        notifier = LogoutNotifier()
        seen = []
        unsubscribe = notifier.subscribe(seen.append)

        unsubscribe()
        unsubscribe()
        notifier.emit(SESSION_EXPIRED)

        assert seen == []

    def test_failing_observer_does_not_block_others(self):
        """Test one observer raising does not stop delivery."""
        notifier = LogoutNotifier()
        seen = []

        def broken(event):
            raise RuntimeError("view already gone")

        notifier.subscribe(broken)
        notifier.subscribe(seen.append)

        notifier.emit(SESSION_EXPIRED)

        assert [event.reason for event in seen] == [SESSION_EXPIRED]

    def test_singleton(self):
        assert get_logout_notifier() is get_logout_notifier()

"""
Tests for the single-flight refresh coordinator.
"""

import asyncio

import pytest

from ecotec_client.exceptions import RefreshFailureError
from ecotec_client.refresh import RefreshCoordinator


async def _wait_for_waiters(coordinator: RefreshCoordinator, count: int) -> None:
    while coordinator.pending < count:
        await asyncio.sleep(0)


class TestRunExclusive:
    """Test run_exclusive with one or many callers."""

    @pytest.mark.asyncio
    async def test_single_caller_runs_refresh(self):
        """Test a lone caller runs the refresh and gets its token."""
        coordinator = RefreshCoordinator()

        async def refresh():
            assert coordinator.is_refreshing is True
            return "T2"

        assert await coordinator.run_exclusive(refresh) == "T2"
        assert coordinator.is_refreshing is False
        assert coordinator.pending == 0

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self):
        """Test callers arriving during a refresh wait for its result."""
        coordinator = RefreshCoordinator()
        gate = asyncio.Event()
        calls = 0

        async def refresh():
            nonlocal calls
            calls += 1
            await gate.wait()
            return "T2"

        tasks = [asyncio.ensure_future(coordinator.run_exclusive(refresh)) for _ in range(5)]
        await asyncio.wait_for(_wait_for_waiters(coordinator, 4), timeout=1)
        gate.set()
        results = await asyncio.gather(*tasks)

        assert calls == 1
        assert results == ["T2"] * 5
        assert coordinator.is_refreshing is False
        assert coordinator.pending == 0

    @pytest.mark.asyncio
    async def test_failure_rejects_every_waiter(self):
        """Test a failed refresh raises to the refresher and all waiters."""
        coordinator = RefreshCoordinator()
        gate = asyncio.Event()

        async def refresh():
            await gate.wait()
            raise RefreshFailureError(reason="rejected", status_code=401)

        tasks = [asyncio.ensure_future(coordinator.run_exclusive(refresh)) for _ in range(3)]
        await asyncio.wait_for(_wait_for_waiters(coordinator, 2), timeout=1)
        gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(result, RefreshFailureError) for result in results)
        assert all(result.reason == "rejected" for result in results)
        assert coordinator.is_refreshing is False

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped(self):
        """Test non-refresh errors are reported as RefreshFailureError."""
        coordinator = RefreshCoordinator()

        async def refresh():
            raise KeyError("data")

        with pytest.raises(RefreshFailureError) as exc_info:
            await coordinator.run_exclusive(refresh)

        assert isinstance(exc_info.value.__cause__, KeyError)
        assert coordinator.is_refreshing is False

    @pytest.mark.asyncio
    async def test_next_contention_window_refreshes_again(self):
        """Test the flag is released so a later 401 triggers a new refresh."""
        coordinator = RefreshCoordinator()
        tokens = iter(["T2", "T3"])

        async def refresh():
            return next(tokens)

        assert await coordinator.run_exclusive(refresh) == "T2"
        assert await coordinator.run_exclusive(refresh) == "T3"

    @pytest.mark.asyncio
    async def test_cancelled_refresh_releases_waiters(self):
        """Test cancelling the refresher fails the waiters instead of hanging them."""
        coordinator = RefreshCoordinator()
        gate = asyncio.Event()

        async def refresh():
            await gate.wait()
            return "never"

        leader = asyncio.ensure_future(coordinator.run_exclusive(refresh))
        await asyncio.sleep(0)
        waiter = asyncio.ensure_future(coordinator.run_exclusive(refresh))
        await asyncio.wait_for(_wait_for_waiters(coordinator, 1), timeout=1)

        leader.cancel()

        with pytest.raises(RefreshFailureError):
            await waiter
        with pytest.raises(asyncio.CancelledError):
            await leader
        assert coordinator.is_refreshing is False

"""
Single-flight coordination of access token renewal.

When several requests hit a 401 at the same time only one of them calls the
refresh endpoint. The others wait in a FIFO queue and are all settled with
the same outcome: the new token, or the refresh error.
"""

import asyncio
from collections import deque
from typing import Awaitable, Callable, Deque, Optional

from .exceptions import RefreshFailureError
from .logging_config import get_logger
from .metrics import refresh_queue_waiters_total, token_refreshes_total

logger = get_logger(__name__)

RefreshFunc = Callable[[], Awaitable[str]]


class RefreshCoordinator:
    """
    Process-wide critical section around the token refresh call.

    The state is a flag plus a queue of futures. Everything runs on one
    event loop, so checking the flag and enqueuing happen without an await
    in between and need no further locking.
    """

    def __init__(self) -> None:
        self._is_refreshing = False
        self._queue: Deque["asyncio.Future[str]"] = deque()

    @property
    def is_refreshing(self) -> bool:
        return self._is_refreshing

    @property
    def pending(self) -> int:
        """Number of callers waiting on the in-flight refresh."""
        return len(self._queue)

    def _enqueue(self) -> "asyncio.Future[str]":
        future: "asyncio.Future[str]" = asyncio.get_running_loop().create_future()
        self._queue.append(future)
        refresh_queue_waiters_total.inc()
        return future

    def _settle(
        self,
        token: Optional[str] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        """Resolve or reject every waiter, then empty the queue."""
        queue, self._queue = self._queue, deque()
        for future in queue:
            if future.done():
                continue
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(token)

    async def run_exclusive(self, refresh: RefreshFunc) -> str:
        """
        Run ``refresh`` unless a refresh is already in flight.

        The first caller becomes the refresher. Callers arriving while it
        runs wait for its result instead of starting their own.

        Args:
            refresh: Coroutine function returning the new access token

        Returns:
            The new access token

        Raises:
            RefreshFailureError: If the refresh failed (raised to the
                refresher and to every waiter alike)
        """
        if self._is_refreshing:
            logger.debug(
                "Refresh in flight, queueing caller",
                extra={"extra_fields": {"queue_length": len(self._queue) + 1}},
            )
            return await self._enqueue()

        self._is_refreshing = True
        try:
            try:
                token = await refresh()
            except asyncio.CancelledError:
                self._settle(error=RefreshFailureError(reason="refresh cancelled"))
                raise
            except RefreshFailureError as error:
                token_refreshes_total.labels(outcome="failure").inc()
                self._settle(error=error)
                raise
            except Exception as error:
                token_refreshes_total.labels(outcome="failure").inc()
                failure = RefreshFailureError(reason=str(error) or type(error).__name__)
                self._settle(error=failure)
                raise failure from error

            token_refreshes_total.labels(outcome="success").inc()
            logger.info(
                "Access token refreshed",
                extra={"extra_fields": {"waiters": len(self._queue)}},
            )
            self._settle(token=token)
            return token
        finally:
            self._is_refreshing = False

"""
Admission control toward the provider as a whole.

Bounds concurrency (`max_concurrent` operations in flight) and throughput
(`min_interval` seconds between operation starts). Callers that cannot
start immediately wait in a FIFO queue; once `max_queue` callers are
waiting, new callers are rejected with RATE_LIMITED instead of queueing.
"""

import asyncio
import inspect
from collections import deque
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from resilient_llm.errors.exceptions import create_rate_limited_error
from resilient_llm.monitoring.metrics import (
    rate_limiter_queue_depth,
    rate_limiter_rejections_total,
)
from resilient_llm.resilience.cancellation import (
    CancellationToken,
    run_with_deadline,
    sleep_cancellable,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RateLimiter:
    """
    FIFO concurrency and pacing limiter.

    A released slot is handed directly to the oldest waiter, so a late
    arrival can never overtake a queued caller.

    Attributes:
        max_concurrent: Maximum operations running at once
        min_interval: Minimum seconds between two operation starts
        max_queue: Maximum callers waiting for a slot before shedding load
    """

    def __init__(self, max_concurrent: int = 5, min_interval: float = 0.0, max_queue: int = 100):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        if max_queue < 0:
            raise ValueError("max_queue must be >= 0")
        self.max_concurrent = max_concurrent
        self.min_interval = min_interval
        self.max_queue = max_queue
        self._running = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._next_start = 0.0

    @classmethod
    def from_settings(cls, settings: Any) -> "RateLimiter":
        return cls(
            max_concurrent=settings.RATE_LIMIT_MAX_CONCURRENT,
            min_interval=settings.rate_limit_min_interval,
            max_queue=settings.RATE_LIMIT_MAX_QUEUE,
        )

    @property
    def running(self) -> int:
        return self._running

    @property
    def queued(self) -> int:
        return len(self._waiters)

    def _update_depth(self) -> None:
        rate_limiter_queue_depth.set(len(self._waiters))

    async def _acquire(self, token: CancellationToken | None, request_id: str | None) -> None:
        if self._running < self.max_concurrent and not self._waiters:
            self._running += 1
            return

        if len(self._waiters) >= self.max_queue:
            rate_limiter_rejections_total.inc()
            logger.warning(
                "Rate limiter queue full, rejecting operation",
                queued=len(self._waiters),
                max_queue=self.max_queue,
                request_id=request_id,
            )
            raise create_rate_limited_error(
                "Rate limiter queue is full",
                {"queued": len(self._waiters), "max_queue": self.max_queue},
                request_id,
            )

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        self._update_depth()
        logger.debug("Operation queued for admission", queued=len(self._waiters), request_id=request_id)
        try:
            await run_with_deadline(asyncio.shield(waiter), token=token, request_id=request_id)
        except BaseException:
            if waiter.done() and not waiter.cancelled():
                # Slot was granted while we were being cancelled: pass it on.
                self._release()
            else:
                waiter.cancel()
                if waiter in self._waiters:
                    self._waiters.remove(waiter)
                self._update_depth()
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Slot ownership moves to the waiter; _running stays unchanged.
                waiter.set_result(None)
                self._update_depth()
                return
        self._update_depth()
        self._running -= 1

    async def _pace(self, token: CancellationToken | None, request_id: str | None) -> None:
        if self.min_interval <= 0:
            return
        loop = asyncio.get_running_loop()
        now = loop.time()
        start = max(now, self._next_start)
        self._next_start = start + self.min_interval
        if start > now:
            await sleep_cancellable(start - now, token, request_id)

    async def schedule(
        self,
        func: Callable[[], Awaitable[T] | T],
        *,
        token: CancellationToken | None = None,
        request_id: str | None = None,
    ) -> T:
        """
        Run `func` once a slot is free and the pacing interval has passed.

        Raises:
            ApiError: RATE_LIMITED when the queue is full, or the token's code
                when cancelled while waiting
        """
        await self._acquire(token, request_id)
        try:
            await self._pace(token, request_id)
            result = func()
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            self._release()

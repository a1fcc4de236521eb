"""
Unit tests for the rate limiter: concurrency bound, FIFO admission,
pacing, load shedding and cancellation while queued.
"""

import asyncio

import pytest

from resilient_llm.errors import ApiError, ErrorCode
from resilient_llm.resilience.cancellation import CancellationToken
from resilient_llm.resilience.rate_limiter import RateLimiter


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_limit():
    limiter = RateLimiter(max_concurrent=2, max_queue=10)
    running = 0
    peak = 0

    async def work():
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return "done"

    results = await asyncio.gather(*(limiter.schedule(work) for _ in range(6)))

    assert results == ["done"] * 6
    assert peak == 2
    assert limiter.running == 0
    assert limiter.queued == 0


@pytest.mark.asyncio
async def test_admission_is_fifo():
    limiter = RateLimiter(max_concurrent=1, max_queue=10)
    order = []
    gate = asyncio.Event()

    async def first():
        await gate.wait()
        order.append("first")

    def make(name):
        async def work():
            order.append(name)

        return work

    tasks = [asyncio.create_task(limiter.schedule(first))]
    await asyncio.sleep(0)
    for name in ("a", "b", "c"):
        tasks.append(asyncio.create_task(limiter.schedule(make(name))))
        await asyncio.sleep(0)
    assert limiter.queued == 3

    gate.set()
    await asyncio.gather(*tasks)
    assert order == ["first", "a", "b", "c"]


@pytest.mark.asyncio
async def test_full_queue_rejects_with_rate_limited():
    limiter = RateLimiter(max_concurrent=1, max_queue=1)
    gate = asyncio.Event()

    async def blocked():
        await gate.wait()

    running = asyncio.create_task(limiter.schedule(blocked))
    await asyncio.sleep(0)
    queued = asyncio.create_task(limiter.schedule(blocked))
    await asyncio.sleep(0)

    with pytest.raises(ApiError) as exc_info:
        await limiter.schedule(blocked)

    assert exc_info.value.code == ErrorCode.RATE_LIMITED
    assert exc_info.value.retryable is True

    gate.set()
    await asyncio.gather(running, queued)


@pytest.mark.asyncio
async def test_min_interval_spaces_starts():
    limiter = RateLimiter(max_concurrent=5, min_interval=0.05, max_queue=10)
    loop = asyncio.get_running_loop()
    starts = []

    async def work():
        starts.append(loop.time())

    await asyncio.gather(*(limiter.schedule(work) for _ in range(3)))

    gaps = [b - a for a, b in zip(starts, starts[1:])]
    assert all(gap >= 0.045 for gap in gaps)


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_queue():
    limiter = RateLimiter(max_concurrent=1, max_queue=10)
    gate = asyncio.Event()
    token = CancellationToken()

    async def blocked():
        await gate.wait()
        return "first"

    async def never():
        return "never"

    running = asyncio.create_task(limiter.schedule(blocked))
    await asyncio.sleep(0)
    waiting = asyncio.create_task(limiter.schedule(never, token=token))
    await asyncio.sleep(0)
    assert limiter.queued == 1

    token.cancel("caller gave up")
    with pytest.raises(ApiError) as exc_info:
        await waiting
    assert exc_info.value.code == ErrorCode.TIMEOUT
    assert limiter.queued == 0

    gate.set()
    assert await running == "first"
    assert limiter.running == 0


@pytest.mark.asyncio
async def test_task_cancellation_releases_slot():
    limiter = RateLimiter(max_concurrent=1, max_queue=10)

    async def forever():
        await asyncio.sleep(10)

    task = asyncio.create_task(limiter.schedule(forever))
    await asyncio.sleep(0.01)
    assert limiter.running == 1
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert limiter.running == 0

    assert await limiter.schedule(lambda: "sync ok") == "sync ok"


def test_from_settings(test_settings):
    test_settings.RATE_LIMIT_REQUESTS_PER_MINUTE = 30
    limiter = RateLimiter.from_settings(test_settings)
    assert limiter.max_concurrent == test_settings.RATE_LIMIT_MAX_CONCURRENT
    assert limiter.min_interval == pytest.approx(2.0)
    assert limiter.max_queue == test_settings.RATE_LIMIT_MAX_QUEUE

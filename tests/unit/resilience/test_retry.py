"""
Unit tests for the retry executor.

Covers backoff bounds, attempt counting, non-retryable propagation,
circuit-breaker gating and deadline handling.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from resilient_llm.errors import ApiError, ErrorCode
from resilient_llm.resilience.cancellation import CancellationToken
from resilient_llm.resilience.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitStatus,
)
from resilient_llm.resilience.retry import (
    AttemptStats,
    RetryConfig,
    RetryExecutor,
    compute_backoff_delay,
    should_retry,
)

SERVICE = "anthropic-claude-3-haiku-20240307"


class ServerError(Exception):
    def __init__(self, message: str = "Internal server error", status: int = 500):
        super().__init__(message)
        self.status = status


def create_executor(threshold: int = 100) -> RetryExecutor:
    return RetryExecutor(CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=threshold)))


# ============================================================================
# Backoff arithmetic
# ============================================================================


@pytest.mark.parametrize("attempt", [0, 1, 2])
@pytest.mark.parametrize("rand", [0.0, 0.5, 1.0])
def test_backoff_delay_within_jitter_bounds(attempt, rand):
    config = RetryConfig(initial_delay=1.0, backoff_factor=2.0, max_delay=30.0, jitter_factor=0.3)
    base = 1.0 * 2.0**attempt
    delay = compute_backoff_delay(attempt, config, rand=lambda: rand)
    assert base <= delay <= base * 1.3
    assert delay == pytest.approx(base + base * 0.3 * rand)


def test_backoff_delay_capped_before_jitter():
    config = RetryConfig(initial_delay=1.0, backoff_factor=2.0, max_delay=5.0, jitter_factor=0.5)
    assert compute_backoff_delay(10, config, rand=lambda: 0.0) == 5.0
    assert compute_backoff_delay(10, config, rand=lambda: 1.0) == 7.5


def test_backoff_strictly_increasing_until_cap():
    config = RetryConfig(initial_delay=0.5, backoff_factor=3.0, max_delay=100.0, jitter_factor=0.0)
    delays = [compute_backoff_delay(a, config) for a in range(4)]
    assert delays == sorted(delays)
    assert len(set(delays)) == 4


def test_retry_config_validation():
    with pytest.raises(ValueError):
        RetryConfig(jitter_factor=1.5)
    with pytest.raises(ValueError):
        RetryConfig(max_retries=-1)
    with pytest.raises(ValueError):
        RetryConfig().with_overrides(max_attempts=3)


def test_with_overrides_replaces_fields():
    config = RetryConfig().with_overrides(max_retries=1, retryable_codes=["TIMEOUT"])
    assert config.max_retries == 1
    assert config.retryable_codes == frozenset({ErrorCode.TIMEOUT})


def test_should_retry_respects_retryable_codes():
    timeout = ApiError(ErrorCode.TIMEOUT, "slow", retryable=True)
    quota = ApiError(ErrorCode.AI_QUOTA_EXCEEDED, "429", retryable=True)
    config = RetryConfig(retryable_codes=frozenset({ErrorCode.TIMEOUT}))
    assert should_retry(timeout, config) is True
    assert should_retry(quota, config) is False
    assert should_retry(quota, RetryConfig()) is True


def test_non_retryable_codes_never_retried():
    parsing = ApiError(ErrorCode.AI_PARSING_ERROR, "bad json", retryable=True)
    config = RetryConfig(retryable_codes=frozenset({ErrorCode.AI_PARSING_ERROR}))
    assert should_retry(parsing, config) is False


# ============================================================================
# Execution
# ============================================================================


@pytest.mark.asyncio
async def test_success_first_attempt_records_success(fast_retry_config):
    executor = create_executor()
    operation = AsyncMock(return_value="value")
    stats = AttemptStats()

    result = await executor.execute(operation, SERVICE, fast_retry_config, stats=stats)

    assert result == "value"
    assert stats.attempts == 1
    operation.assert_awaited_once()


@pytest.mark.asyncio
async def test_sync_operation_supported(fast_retry_config):
    executor = create_executor()
    result = await executor.execute(lambda: 42, SERVICE, fast_retry_config)
    assert result == 42


@pytest.mark.asyncio
async def test_always_failing_operation_attempted_max_retries_plus_one(fast_retry_config):
    executor = create_executor()
    operation = AsyncMock(side_effect=ServerError())
    on_retry = MagicMock()
    config = fast_retry_config.with_overrides(max_retries=3, on_retry=on_retry)

    with pytest.raises(ApiError) as exc_info:
        await executor.execute(operation, SERVICE, config)

    assert operation.await_count == 4
    assert exc_info.value.code == ErrorCode.RETRY_EXHAUSTED
    assert exc_info.value.cause.code == ErrorCode.AI_UNAVAILABLE
    assert [c.args[1] for c in on_retry.call_args_list] == [1, 2, 3]
    # Delays passed to the hook grow with the attempt
    delays = [c.args[2] for c in on_retry.call_args_list]
    assert delays == sorted(delays)


@pytest.mark.asyncio
async def test_recovers_after_transient_failures(fast_retry_config):
    executor = create_executor()
    operation = AsyncMock(side_effect=[ServerError(), ServerError(), "ok"])
    stats = AttemptStats()

    result = await executor.execute(operation, SERVICE, fast_retry_config, stats=stats)

    assert result == "ok"
    assert stats.attempts == 3
    assert stats.last_error.code == ErrorCode.AI_UNAVAILABLE


@pytest.mark.asyncio
async def test_non_retryable_error_propagates_on_first_occurrence(fast_retry_config):
    executor = create_executor()
    operation = AsyncMock(side_effect=Exception("Request violates our content policy"))

    with pytest.raises(ApiError) as exc_info:
        await executor.execute(operation, SERVICE, fast_retry_config)

    assert exc_info.value.code == ErrorCode.CONTENT_FILTERED
    operation.assert_awaited_once()


@pytest.mark.asyncio
async def test_zero_retries_wraps_in_retry_exhausted(fast_retry_config):
    executor = create_executor()
    operation = AsyncMock(side_effect=ServerError())

    with pytest.raises(ApiError) as exc_info:
        await executor.execute(operation, SERVICE, fast_retry_config.with_overrides(max_retries=0))

    assert exc_info.value.code == ErrorCode.RETRY_EXHAUSTED
    operation.assert_awaited_once()


@pytest.mark.asyncio
async def test_open_circuit_refuses_without_calling(fast_retry_config):
    breakers = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=1))
    breakers.record_failure(SERVICE)
    executor = RetryExecutor(breakers)
    operation = AsyncMock(return_value="never")

    with pytest.raises(ApiError) as exc_info:
        await executor.execute(operation, SERVICE, fast_retry_config)

    assert exc_info.value.code == ErrorCode.CIRCUIT_OPEN
    operation.assert_not_awaited()


@pytest.mark.asyncio
async def test_failures_open_the_circuit_mid_retry(fast_retry_config):
    breakers = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=2))
    executor = RetryExecutor(breakers)
    operation = AsyncMock(side_effect=ServerError())

    with pytest.raises(ApiError) as exc_info:
        await executor.execute(operation, SERVICE, fast_retry_config.with_overrides(max_retries=5))

    assert exc_info.value.code == ErrorCode.CIRCUIT_OPEN
    assert operation.await_count == 2
    assert breakers.get_state(SERVICE).status == CircuitStatus.OPEN


@pytest.mark.asyncio
async def test_overall_timeout_cuts_slow_operation(fast_retry_config):
    executor = create_executor()

    async def slow():
        await asyncio.sleep(5)

    with pytest.raises(ApiError) as exc_info:
        await executor.execute(slow, SERVICE, fast_retry_config.with_overrides(overall_timeout=0.05))

    assert exc_info.value.code == ErrorCode.TIMEOUT
    assert executor.breakers.get_state(SERVICE).failure_count == 1


@pytest.mark.asyncio
async def test_backoff_that_would_overshoot_deadline_fails_with_timeout():
    executor = create_executor()
    operation = AsyncMock(side_effect=ServerError())
    config = RetryConfig(max_retries=3, initial_delay=10.0, max_delay=10.0, jitter_factor=0.0, overall_timeout=1.0)

    loop = asyncio.get_running_loop()
    started = loop.time()
    with pytest.raises(ApiError) as exc_info:
        await executor.execute(operation, SERVICE, config)

    assert exc_info.value.code == ErrorCode.TIMEOUT
    assert loop.time() - started < 1.0
    operation.assert_awaited_once()


@pytest.mark.asyncio
async def test_cancellation_during_backoff_sleep():
    executor = create_executor()
    operation = AsyncMock(side_effect=ServerError())
    config = RetryConfig(max_retries=3, initial_delay=10.0, max_delay=10.0, jitter_factor=0.0, overall_timeout=None)
    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.05, token.cancel, "caller gave up")

    with pytest.raises(ApiError) as exc_info:
        await executor.execute(operation, SERVICE, config, token=token)

    assert exc_info.value.code == ErrorCode.TIMEOUT
    assert exc_info.value.retryable is False
    operation.assert_awaited_once()


@pytest.mark.asyncio
async def test_cancelled_token_does_not_record_breaker_failure(fast_retry_config):
    executor = create_executor()
    token = CancellationToken(code=ErrorCode.BAD_REQUEST)

    async def slow():
        await asyncio.sleep(5)

    asyncio.get_running_loop().call_later(0.02, token.cancel)

    with pytest.raises(ApiError) as exc_info:
        await executor.execute(slow, SERVICE, fast_retry_config, token=token)

    assert exc_info.value.code == ErrorCode.BAD_REQUEST
    assert executor.breakers.get_state(SERVICE).failure_count == 0

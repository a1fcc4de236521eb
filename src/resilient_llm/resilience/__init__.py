"""
Resilience primitives: cancellation, circuit breakers, retries, rate limiting.
"""

from resilient_llm.resilience.cancellation import (
    CancellationToken,
    compute_dynamic_timeout,
    run_with_deadline,
    sleep_cancellable,
)
from resilient_llm.resilience.circuit_breaker import (
    DEFAULT_CIRCUIT_BREAKER_CONFIG,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitBreakerState,
    CircuitStatus,
)
from resilient_llm.resilience.rate_limiter import RateLimiter
from resilient_llm.resilience.retry import (
    DEFAULT_RETRY_CONFIG,
    AttemptStats,
    OnRetry,
    RetryConfig,
    RetryExecutor,
    compute_backoff_delay,
    should_retry,
)

__all__ = [
    "CancellationToken",
    "run_with_deadline",
    "sleep_cancellable",
    "compute_dynamic_timeout",
    "CircuitStatus",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "CircuitBreakerRegistry",
    "DEFAULT_CIRCUIT_BREAKER_CONFIG",
    "RateLimiter",
    "RetryConfig",
    "DEFAULT_RETRY_CONFIG",
    "OnRetry",
    "AttemptStats",
    "RetryExecutor",
    "compute_backoff_delay",
    "should_retry",
]

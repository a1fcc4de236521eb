"""
Retry executor with exponential backoff, jitter and circuit-breaker gating.

Policy per call:
    1. Refuse the attempt if the target's circuit is open (CIRCUIT_OPEN)
    2. Invoke the operation, racing the overall deadline
    3. On failure: record it on the breaker, classify it, and either
       propagate (non-retryable), wrap in RETRY_EXHAUSTED (out of attempts),
       or back off and try again

Usage:
    executor = RetryExecutor(breakers)
    value = await executor.execute(operation, "anthropic-claude-3-haiku-20240307")
"""

import asyncio
import inspect
import random
from dataclasses import dataclass, fields, replace
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from resilient_llm.errors.classifier import classify
from resilient_llm.errors.codes import NON_RETRYABLE_CODES, ErrorCode
from resilient_llm.errors.exceptions import (
    ApiError,
    DeadlineExceeded,
    OperationCancelled,
    create_circuit_open_error,
    create_retry_exhausted_error,
)
from resilient_llm.monitoring.metrics import retries_total
from resilient_llm.resilience.cancellation import (
    CancellationToken,
    run_with_deadline,
    sleep_cancellable,
)
from resilient_llm.resilience.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

OnRetry = Callable[[ApiError, int, float], None]
"""Hook called before each backoff sleep with (error, next attempt number, delay)."""


@dataclass(frozen=True)
class RetryConfig:
    """
    Retry tuning for one call.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1)
        initial_delay: Backoff base in seconds
        max_delay: Cap on the pre-jitter delay in seconds
        backoff_factor: Multiplier applied per attempt
        jitter_factor: Extra random delay as a fraction of the base (0..1)
        overall_timeout: Budget in seconds for all attempts and sleeps (None = unbounded)
        retryable_codes: When set, only these codes are retried
        on_retry: Synchronous hook called before each backoff sleep
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter_factor: float = 0.3
    overall_timeout: float | None = 60.0
    retryable_codes: frozenset[ErrorCode] | None = None
    on_retry: OnRetry | None = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be within [0, 1]")
        if self.overall_timeout is not None and self.overall_timeout <= 0:
            raise ValueError("overall_timeout must be > 0 or None")
        if self.retryable_codes is not None and not isinstance(self.retryable_codes, frozenset):
            object.__setattr__(
                self, "retryable_codes", frozenset(ErrorCode(c) for c in self.retryable_codes)
            )

    def with_overrides(self, **overrides: Any) -> "RetryConfig":
        """Copy with some fields replaced; unknown names raise ValueError."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown retry setting(s): {', '.join(sorted(unknown))}")
        return replace(self, **overrides)


DEFAULT_RETRY_CONFIG = RetryConfig()


def compute_backoff_delay(
    attempt: int,
    config: RetryConfig,
    rand: Callable[[], float] = random.random,
) -> float:
    """
    Delay before retry number `attempt + 1`.

    base = min(initial_delay * backoff_factor ** attempt, max_delay), then
    jitter adds up to `base * jitter_factor`. Jitter never subtracts.
    """
    base = min(config.initial_delay * (config.backoff_factor ** attempt), config.max_delay)
    return base + base * config.jitter_factor * rand()


def should_retry(error: ApiError, config: RetryConfig) -> bool:
    """Retry decision for one classified error, ignoring the attempt budget."""
    if error.code in NON_RETRYABLE_CODES:
        return False
    if config.retryable_codes is not None:
        return error.code in config.retryable_codes
    return error.retryable


@dataclass
class AttemptStats:
    """Provider invocations made by one execute() call (mutated in place)."""

    attempts: int = 0
    last_error: ApiError | None = None


async def _invoke(operation: Callable[[], Any]) -> Any:
    result = operation()
    if inspect.isawaitable(result):
        result = await result
    return result


class RetryExecutor:
    """
    Runs one operation against one ServiceIdentity with retries.

    Attributes:
        breakers: Circuit breaker registry consulted before every attempt
    """

    def __init__(
        self,
        breakers: CircuitBreakerRegistry,
        rand: Callable[[], float] = random.random,
    ):
        self.breakers = breakers
        self._rand = rand

    async def execute(
        self,
        operation: Callable[[], Awaitable[T] | T],
        service: str,
        retry_config: RetryConfig | None = None,
        breaker_config: CircuitBreakerConfig | None = None,
        *,
        token: CancellationToken | None = None,
        request_id: str | None = None,
        stats: AttemptStats | None = None,
    ) -> T:
        """
        Execute `operation` with retries.

        Args:
            operation: Zero-argument callable (sync or async)
            service: ServiceIdentity of the target
            retry_config: Retry tuning (defaults apply when None)
            breaker_config: Circuit breaker tuning for this target
            token: Caller cancellation token
            request_id: Correlation id stamped on raised errors
            stats: Optional accumulator for attempt counts

        Returns:
            The operation's value

        Raises:
            ApiError: CIRCUIT_OPEN, TIMEOUT, RETRY_EXHAUSTED, or the first
                non-retryable classified error
        """
        cfg = retry_config or DEFAULT_RETRY_CONFIG
        stats = stats if stats is not None else AttemptStats()
        loop = asyncio.get_running_loop()
        deadline = None if cfg.overall_timeout is None else loop.time() + cfg.overall_timeout
        attempt = 0
        last_error: ApiError | None = None

        while True:
            if attempt > cfg.max_retries and last_error is not None:
                raise create_retry_exhausted_error(
                    f"Retries exhausted for {service}",
                    last_error,
                    {"service": service, "attempts": attempt},
                    request_id,
                )

            if token is not None:
                token.raise_if_cancelled(request_id)

            if not self.breakers.check_admission(service, breaker_config):
                logger.warning("Circuit open, attempt refused", service=service, attempt=attempt)
                raise create_circuit_open_error(
                    f"Circuit breaker is open for {service}",
                    {"service": service, "attempt": attempt},
                    request_id,
                )

            stats.attempts += 1
            try:
                result = await run_with_deadline(
                    _invoke(operation),
                    deadline=deadline,
                    token=token,
                    timeout_error=lambda: DeadlineExceeded(
                        f"Operation against {service} exceeded its overall timeout",
                        {"service": service, "overall_timeout": cfg.overall_timeout},
                        request_id,
                    ),
                    request_id=request_id,
                )
            except OperationCancelled:
                raise
            except DeadlineExceeded as exc:
                self.breakers.record_failure(service, breaker_config)
                stats.last_error = exc
                raise
            except Exception as exc:
                self.breakers.record_failure(service, breaker_config)
                error = classify(exc, request_id)
                stats.last_error = error
                last_error = error

                if not should_retry(error, cfg):
                    logger.info(
                        "Non-retryable failure",
                        service=service,
                        error_code=error.code.value,
                        attempt=attempt,
                    )
                    if error is exc:
                        raise
                    raise error from exc

                if attempt >= cfg.max_retries:
                    logger.warning(
                        "Retries exhausted",
                        service=service,
                        error_code=error.code.value,
                        attempts=attempt + 1,
                    )
                    raise create_retry_exhausted_error(
                        f"Operation against {service} failed after {attempt + 1} attempts: {error.message}",
                        error,
                        {"service": service, "attempts": attempt + 1},
                        request_id,
                    ) from exc

                delay = compute_backoff_delay(attempt, cfg, self._rand)
                if deadline is not None and loop.time() + delay > deadline:
                    raise DeadlineExceeded(
                        f"Backoff of {delay:.2f}s for {service} would overshoot the overall timeout",
                        {"service": service, "overall_timeout": cfg.overall_timeout, "last_error": error.code.value},
                        request_id,
                    ) from exc

                if cfg.on_retry is not None:
                    cfg.on_retry(error, attempt + 1, delay)
                retries_total.labels(service=service, error_code=error.code.value).inc()
                logger.warning(
                    f"Attempt {attempt + 1} failed, retrying in {delay:.2f}s",
                    service=service,
                    error_code=error.code.value,
                    attempt=attempt + 1,
                    delay=delay,
                )
                await sleep_cancellable(delay, token, request_id)
                attempt += 1
                continue

            self.breakers.record_success(service, breaker_config)
            return result

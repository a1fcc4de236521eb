"""
Per-target circuit breakers.

One breaker per ServiceIdentity ("<provider>-<model id>"), created lazily
on first reference and kept for the lifetime of the registry. The registry
is an explicit object owned by the client facade (not a module global), so
tests and independent configurations do not share state.

State machine:
    CLOSED    --(failure_count >= failure_threshold)-->        OPEN
    OPEN      --(admission check after reset_timeout)-->       HALF_OPEN
    HALF_OPEN --(any failure)-->                               OPEN
    HALF_OPEN --(failure_count decremented to 0 by successes)--> CLOSED

Each breaker has its own lock; the registry lock only guards creation of
new entries.
"""

import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

import structlog

from resilient_llm.monitoring.metrics import circuit_breaker_transitions_total

logger = structlog.get_logger(__name__)


class CircuitStatus(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """
    Breaker tuning, may differ per request class.

    Attributes:
        failure_threshold: Consecutive failures that open a closed circuit
        reset_timeout: Seconds an open circuit waits before probing (HALF_OPEN)
        half_open_success_threshold: Successes needed in HALF_OPEN to close
    """

    failure_threshold: int = 5
    reset_timeout: float = 30.0
    half_open_success_threshold: int = 2

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.reset_timeout < 0:
            raise ValueError("reset_timeout must be >= 0")
        if self.half_open_success_threshold < 1:
            raise ValueError("half_open_success_threshold must be >= 1")


DEFAULT_CIRCUIT_BREAKER_CONFIG = CircuitBreakerConfig()


@dataclass
class CircuitBreakerState:
    """Mutable breaker state. Only the registry mutates it."""

    status: CircuitStatus = CircuitStatus.CLOSED
    failure_count: int = 0
    last_failure_time: float = 0.0
    reset_timeout: float = DEFAULT_CIRCUIT_BREAKER_CONFIG.reset_timeout


class _Breaker:
    __slots__ = ("state", "lock")

    def __init__(self, reset_timeout: float):
        self.state = CircuitBreakerState(reset_timeout=reset_timeout)
        self.lock = threading.Lock()


class CircuitBreakerRegistry:
    """
    Registry of circuit breakers keyed by ServiceIdentity.

    All public methods are safe to call concurrently (asyncio tasks or
    threads) for the same or different identities.
    """

    def __init__(
        self,
        default_config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize registry.

        Args:
            default_config: Config used when a call passes none
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self.default_config = default_config or DEFAULT_CIRCUIT_BREAKER_CONFIG
        self._clock = clock
        self._breakers: dict[str, _Breaker] = {}
        self._registry_lock = threading.Lock()

    def _get(self, service: str, config: CircuitBreakerConfig | None) -> _Breaker:
        breaker = self._breakers.get(service)
        if breaker is not None:
            return breaker
        with self._registry_lock:
            breaker = self._breakers.get(service)
            if breaker is None:
                cfg = config or self.default_config
                breaker = _Breaker(cfg.reset_timeout)
                self._breakers[service] = breaker
                logger.debug("Created circuit breaker", service=service, reset_timeout=cfg.reset_timeout)
            return breaker

    def _transition(self, service: str, state: CircuitBreakerState, to: CircuitStatus) -> None:
        from_status = state.status
        state.status = to
        circuit_breaker_transitions_total.labels(
            service=service, from_state=from_status.value, to_state=to.value
        ).inc()
        log = logger.warning if to == CircuitStatus.OPEN else logger.info
        log(
            f"Circuit breaker for {service} transitioning from {from_status.value} to {to.value}",
            service=service,
            from_state=from_status.value,
            to_state=to.value,
            failure_count=state.failure_count,
        )

    def get_state(self, service: str, config: CircuitBreakerConfig | None = None) -> CircuitBreakerState:
        """Snapshot of the breaker for `service` (creating it if needed)."""
        breaker = self._get(service, config)
        with breaker.lock:
            return replace(breaker.state)

    def check_admission(self, service: str, config: CircuitBreakerConfig | None = None) -> bool:
        """
        Decide whether an attempt against `service` may run now.

        An OPEN breaker whose reset timeout has elapsed moves to HALF_OPEN
        and admits the caller.

        Returns:
            True if the attempt is allowed, False if the circuit is open
        """
        cfg = config or self.default_config
        breaker = self._get(service, cfg)
        with breaker.lock:
            state = breaker.state
            if state.status == CircuitStatus.CLOSED:
                return True
            if state.status == CircuitStatus.HALF_OPEN:
                return True
            if self._clock() - state.last_failure_time > state.reset_timeout:
                # Probe budget: the next `half_open_success_threshold` successes close it.
                state.failure_count = cfg.half_open_success_threshold
                self._transition(service, state, CircuitStatus.HALF_OPEN)
                return True
            return False

    def record_success(self, service: str, config: CircuitBreakerConfig | None = None) -> None:
        breaker = self._get(service, config)
        with breaker.lock:
            state = breaker.state
            if state.status == CircuitStatus.HALF_OPEN:
                state.failure_count = max(0, state.failure_count - 1)
                if state.failure_count == 0:
                    self._transition(service, state, CircuitStatus.CLOSED)
            elif state.status == CircuitStatus.CLOSED:
                state.failure_count = 0

    def record_failure(self, service: str, config: CircuitBreakerConfig | None = None) -> None:
        cfg = config or self.default_config
        breaker = self._get(service, cfg)
        with breaker.lock:
            state = breaker.state
            state.failure_count += 1
            state.last_failure_time = self._clock()
            if state.status == CircuitStatus.CLOSED and state.failure_count >= cfg.failure_threshold:
                self._transition(service, state, CircuitStatus.OPEN)
            elif state.status == CircuitStatus.HALF_OPEN:
                self._transition(service, state, CircuitStatus.OPEN)

    def reset(self, service: str) -> None:
        """Force a breaker back to CLOSED with a clean failure count."""
        breaker = self._breakers.get(service)
        if breaker is None:
            return
        with breaker.lock:
            state = breaker.state
            if state.status != CircuitStatus.CLOSED:
                self._transition(service, state, CircuitStatus.CLOSED)
            state.failure_count = 0
            state.last_failure_time = 0.0
        logger.info(f"Circuit breaker for {service} manually reset to CLOSED", service=service)

    def services(self) -> list[str]:
        return list(self._breakers)

    def __contains__(self, service: object) -> bool:
        return service in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)

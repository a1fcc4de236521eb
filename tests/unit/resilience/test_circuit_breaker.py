"""
Unit tests for the circuit breaker registry.

Time is controlled through the registry's injectable clock.
"""

import threading

import pytest

from resilient_llm.resilience.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitStatus,
)

SERVICE = "anthropic-claude-3-sonnet-20240229"


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def create_registry(threshold: int = 5, reset_timeout: float = 30.0, half_open: int = 2):
    clock = FakeClock()
    registry = CircuitBreakerRegistry(
        CircuitBreakerConfig(
            failure_threshold=threshold,
            reset_timeout=reset_timeout,
            half_open_success_threshold=half_open,
        ),
        clock=clock,
    )
    return registry, clock


# ============================================================================
# State machine
# ============================================================================


def test_fresh_breaker_is_closed_and_admits():
    registry, _ = create_registry()
    assert registry.check_admission(SERVICE) is True
    state = registry.get_state(SERVICE)
    assert state.status == CircuitStatus.CLOSED
    assert state.failure_count == 0


def test_opens_after_threshold_and_recovers_through_half_open():
    registry, clock = create_registry(threshold=5, reset_timeout=30.0)

    for _ in range(4):
        registry.record_failure(SERVICE)
    assert registry.get_state(SERVICE).status == CircuitStatus.CLOSED

    registry.record_failure(SERVICE)
    assert registry.get_state(SERVICE).status == CircuitStatus.OPEN

    # Sixth admission check before reset_timeout elapses is refused
    clock.advance(29.0)
    assert registry.check_admission(SERVICE) is False

    # After reset_timeout the next check admits and moves to HALF_OPEN
    clock.advance(2.0)
    assert registry.check_admission(SERVICE) is True
    assert registry.get_state(SERVICE).status == CircuitStatus.HALF_OPEN

    # One failure in HALF_OPEN reopens with a refreshed failure time
    registry.record_failure(SERVICE)
    state = registry.get_state(SERVICE)
    assert state.status == CircuitStatus.OPEN
    assert state.last_failure_time == clock.now
    assert registry.check_admission(SERVICE) is False


def test_half_open_closes_after_success_threshold():
    registry, clock = create_registry(threshold=3, reset_timeout=10.0, half_open=2)
    for _ in range(3):
        registry.record_failure(SERVICE)
    clock.advance(11.0)
    assert registry.check_admission(SERVICE) is True

    state = registry.get_state(SERVICE)
    assert state.status == CircuitStatus.HALF_OPEN
    assert state.failure_count == 2

    registry.record_success(SERVICE)
    assert registry.get_state(SERVICE).status == CircuitStatus.HALF_OPEN
    registry.record_success(SERVICE)
    state = registry.get_state(SERVICE)
    assert state.status == CircuitStatus.CLOSED
    assert state.failure_count == 0


def test_half_open_needs_configured_successes_when_threshold_is_lower():
    registry, clock = create_registry(threshold=1, reset_timeout=10.0, half_open=3)
    registry.record_failure(SERVICE)
    clock.advance(11.0)
    assert registry.check_admission(SERVICE) is True
    assert registry.get_state(SERVICE).failure_count == 3

    registry.record_success(SERVICE)
    registry.record_success(SERVICE)
    assert registry.get_state(SERVICE).status == CircuitStatus.HALF_OPEN
    registry.record_success(SERVICE)
    assert registry.get_state(SERVICE).status == CircuitStatus.CLOSED


def test_success_in_closed_resets_failure_count():
    registry, _ = create_registry(threshold=3)
    registry.record_failure(SERVICE)
    registry.record_failure(SERVICE)
    registry.record_success(SERVICE)
    registry.record_failure(SERVICE)
    registry.record_failure(SERVICE)
    state = registry.get_state(SERVICE)
    assert state.status == CircuitStatus.CLOSED
    assert state.failure_count == 2


def test_reset_forces_closed():
    registry, _ = create_registry(threshold=1)
    registry.record_failure(SERVICE)
    assert registry.get_state(SERVICE).status == CircuitStatus.OPEN

    registry.reset(SERVICE)
    state = registry.get_state(SERVICE)
    assert state.status == CircuitStatus.CLOSED
    assert state.failure_count == 0
    assert registry.check_admission(SERVICE) is True


def test_reset_unknown_service_is_noop():
    registry, _ = create_registry()
    registry.reset("anthropic-unknown")
    assert "anthropic-unknown" not in registry


def test_per_call_config_threshold():
    registry, _ = create_registry(threshold=5)
    premium = CircuitBreakerConfig(failure_threshold=8)
    for _ in range(7):
        registry.record_failure(SERVICE, premium)
    assert registry.get_state(SERVICE).status == CircuitStatus.CLOSED
    registry.record_failure(SERVICE, premium)
    assert registry.get_state(SERVICE).status == CircuitStatus.OPEN


def test_services_are_isolated():
    registry, _ = create_registry(threshold=1)
    registry.record_failure(SERVICE)
    other = "anthropic-claude-3-haiku-20240307"
    assert registry.check_admission(other) is True
    assert registry.get_state(other).status == CircuitStatus.CLOSED
    assert len(registry) == 2
    assert set(registry.services()) == {SERVICE, other}


def test_get_state_returns_copy():
    registry, _ = create_registry()
    snapshot = registry.get_state(SERVICE)
    snapshot.failure_count = 99
    assert registry.get_state(SERVICE).failure_count == 0


def test_concurrent_failures_are_all_counted():
    registry, _ = create_registry(threshold=10_000)

    def hammer():
        for _ in range(500):
            registry.record_failure(SERVICE)

    threads = [threading.Thread(target=hammer) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert registry.get_state(SERVICE).failure_count == 4000


@pytest.mark.parametrize(
    "kwargs",
    [
        {"failure_threshold": 0},
        {"reset_timeout": -1.0},
        {"half_open_success_threshold": 0},
    ],
)
def test_invalid_config_rejected(kwargs):
    with pytest.raises(ValueError):
        CircuitBreakerConfig(**kwargs)

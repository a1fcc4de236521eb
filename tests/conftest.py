"""Shared test fixtures and configuration for all tests.

This conftest.py provides common fixtures used across unit and integration tests.
"""

import pytest

from resilient_llm.config import Settings
from resilient_llm.models.catalog import ModelCatalog, default_catalog
from resilient_llm.resilience.retry import RetryConfig


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with fast timings and no API key.

    Override specific settings in individual tests as needed:
        def test_something(test_settings):
            test_settings.RETRY_MAX_RETRIES = 0
    """
    return Settings(
        # === Application ===
        APP_NAME="Resilient LLM (Test)",
        LOG_LEVEL="DEBUG",
        ENVIRONMENT="development",
        # === Provider ===
        ANTHROPIC_API_KEY="",
        ANTHROPIC_BASE_URL="https://api.anthropic.test",
        # === Rate Limiting ===
        RATE_LIMIT_MAX_CONCURRENT=5,
        RATE_LIMIT_REQUESTS_PER_MINUTE=0,  # no pacing in tests
        RATE_LIMIT_MAX_QUEUE=100,
        # === Retry ===
        RETRY_MAX_RETRIES=2,
        RETRY_INITIAL_DELAY=0.001,
        RETRY_MAX_DELAY=0.01,
        RETRY_BACKOFF_FACTOR=2.0,
        RETRY_JITTER_FACTOR=0.0,
        RETRY_OVERALL_TIMEOUT=5.0,
        # === Circuit Breaker ===
        CIRCUIT_FAILURE_THRESHOLD=5,
        CIRCUIT_PREMIUM_FAILURE_THRESHOLD=8,
        CIRCUIT_RESET_TIMEOUT=30.0,
        # === Monitoring ===
        PROMETHEUS_ENABLED=False,  # Disable metrics in tests unless explicitly needed
    )


@pytest.fixture
def catalog() -> ModelCatalog:
    """Fresh catalog per test so EMA updates never leak between tests."""
    return default_catalog()


@pytest.fixture
def fast_retry_config() -> RetryConfig:
    """Retry config with millisecond delays and no jitter."""
    return RetryConfig(
        max_retries=3,
        initial_delay=0.001,
        max_delay=0.01,
        backoff_factor=2.0,
        jitter_factor=0.0,
        overall_timeout=5.0,
    )


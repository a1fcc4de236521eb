"""Integration test fixtures (service checks and prerequisites).

Integration tests call the real provider and are skipped unless
ANTHROPIC_API_KEY is set and the API is reachable.
"""

import os

import httpx
import pytest


@pytest.fixture(scope="session")
def check_anthropic():
    """Skip when no API key is configured or the API cannot be reached."""
    if not os.environ.get("ANTHROPIC_API_KEY"):
        pytest.skip("ANTHROPIC_API_KEY not set")
    try:
        httpx.get("https://api.anthropic.com", timeout=5)
    except httpx.HTTPError as e:
        pytest.skip(f"Anthropic API not reachable: {e}")


@pytest.fixture
def integration_settings(test_settings, check_anthropic):
    """Settings for live calls: real key and endpoint, small completions."""
    test_settings.ANTHROPIC_API_KEY = os.environ["ANTHROPIC_API_KEY"]
    test_settings.ANTHROPIC_BASE_URL = "https://api.anthropic.com"
    test_settings.MAX_TOKENS = 64
    test_settings.RETRY_INITIAL_DELAY = 1.0
    test_settings.RETRY_MAX_DELAY = 10.0
    test_settings.RETRY_OVERALL_TIMEOUT = 60.0
    return test_settings

"""Unit test fixtures (mocks and stubs).

Provides a scripted fake provider so the resilience stack can be tested
without network access.
"""

from typing import Any

import pytest

from resilient_llm.models.llm_models import ProviderRequest, ProviderResponse


class ProviderHTTPError(Exception):
    """Raw provider error shaped like an HTTP SDK error (status/type/message)."""

    def __init__(self, message: str, status: int | None = None, type: str | None = None, retry_after: float | None = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.type = type
        self.retry_after = retry_after


class ScriptedProvider:
    """
    Fake raw call.

    `script` maps a model id to a list of outcomes consumed one per call;
    an outcome is an exception (raised) or a ProviderResponse (returned).
    The last outcome repeats once the list is used up. Models without a
    script succeed.
    """

    def __init__(self, script: dict[str, list[Any]] | None = None):
        self.script = {model: list(outcomes) for model, outcomes in (script or {}).items()}
        self.calls: list[str] = []
        self.requests: list[ProviderRequest] = []

    async def __call__(self, model_id: str, request: ProviderRequest) -> ProviderResponse:
        self.calls.append(model_id)
        self.requests.append(request)
        outcomes = self.script.get(model_id)
        if not outcomes:
            return ProviderResponse(content=f"answer from {model_id}", input_tokens=100, output_tokens=50, model=model_id)
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def calls_for(self, model_id: str) -> int:
        return self.calls.count(model_id)


@pytest.fixture
def scripted_provider():
    """Factory fixture: scripted_provider({model: [outcomes]}) -> ScriptedProvider."""

    def _make(script: dict[str, list[Any]] | None = None) -> ScriptedProvider:
        return ScriptedProvider(script)

    return _make


@pytest.fixture
def http_error():
    """Factory fixture building provider-shaped raw errors."""
    return ProviderHTTPError

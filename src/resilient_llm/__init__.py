"""
Resilient LLM calling layer.

Mediates calls from an application to a flaky, per-token-billed language
model provider:
- Rate limiting (bounded concurrency, start pacing, load shedding)
- Retry with exponential backoff and jitter
- Per-model circuit breakers
- Ordered model fallback under capability and cost constraints
- Closed error taxonomy for every failure
- Token usage and cost accounting

Architecture: ResilientLLMClient -> ModelFallbackOrchestrator ->
(RateLimiter -> RetryExecutor -> circuit-breaker-gated provider call)
"""

from resilient_llm.client import ResilientLLMClient
from resilient_llm.errors import ApiError, ErrorCode
from resilient_llm.logging_config import configure_logging
from resilient_llm.models import (
    Capability,
    InvokePolicy,
    InvokeResult,
    PromptPayload,
    RequestClass,
)
from resilient_llm.resilience import CancellationToken

__version__ = "0.1.0"

__all__ = [
    "ResilientLLMClient",
    "ApiError",
    "ErrorCode",
    "Capability",
    "RequestClass",
    "InvokePolicy",
    "InvokeResult",
    "PromptPayload",
    "CancellationToken",
    "configure_logging",
]

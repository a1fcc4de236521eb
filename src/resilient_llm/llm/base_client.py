"""
Abstract base client for provider calls.

A client's bound `generate` method is the injected raw call of the facade:
`await client.generate(model_id, request) -> ProviderResponse`.
"""

from abc import ABC, abstractmethod

import structlog

from resilient_llm.models.llm_models import ProviderRequest, ProviderResponse

logger = structlog.get_logger(__name__)


class BaseLLMClient(ABC):
    """
    One provider's HTTP surface, reduced to a single `generate` call.

    Subclasses translate a ProviderRequest to the provider's wire format,
    parse the answer into a ProviderResponse, and raise LLMClientError
    subclasses carrying status, provider error type and message so the
    error classifier can map them.

    Retries, fallback and circuit breaking belong to the resilience stack;
    a client makes exactly one HTTP call per `generate`.
    """

    def __init__(self, base_url: str, timeout: float = 60.0, **kwargs):
        """
        Args:
            base_url: Provider API root (trailing slash stripped)
            timeout: Per-request timeout in seconds
            **kwargs: Provider-specific options, kept in `extra_config`
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.extra_config = kwargs

        logger.info(
            "Provider client created",
            provider_client=type(self).__name__,
            base_url=self.base_url,
            request_timeout=timeout,
        )

    @abstractmethod
    async def generate(self, model_id: str, request: ProviderRequest) -> ProviderResponse:
        """
        Send one request to `model_id` (which wins over `request.model`).

        Raises:
            LLMConnectionError: Provider unreachable
            LLMTimeoutError: Request exceeded the client timeout
            LLMProviderError: HTTP error answer
            LLMResponseParseError: Malformed success body
        """

    async def close(self) -> None:
        """Release pooled connections; a no-op unless overridden."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.base_url} timeout={self.timeout}s>"

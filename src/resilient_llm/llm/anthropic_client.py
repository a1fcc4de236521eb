"""
Anthropic Messages API client.

Communicates with the provider using httpx AsyncClient. Supports:
- POST /v1/messages with system prompt and conversation turns
- Connection pooling via a persistent AsyncClient
- Structured errors (status, provider error type, retry-after) for the classifier

Does not retry: the facade's retry executor owns retries.
"""

import json
from typing import Any, Optional

import httpx
import structlog

from resilient_llm.llm.base_client import BaseLLMClient
from resilient_llm.llm.exceptions import (
    LLMConnectionError,
    LLMProviderError,
    LLMResponseParseError,
    LLMTimeoutError,
)
from resilient_llm.models.llm_models import ProviderRequest, ProviderResponse

logger = structlog.get_logger(__name__)

MESSAGES_PATH = "/v1/messages"


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _error_body(response: httpx.Response) -> tuple[str | None, str]:
    """(provider error type, message) from an error response."""
    try:
        data = response.json()
    except ValueError:
        return None, response.text or f"HTTP {response.status_code}"
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("type"), error.get("message") or f"HTTP {response.status_code}"
    return None, response.text or f"HTTP {response.status_code}"


class AnthropicClient(BaseLLMClient):
    """
    Anthropic-specific client using httpx for async HTTP communication.

    API Endpoints:
    - POST /v1/messages: Create a message
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.anthropic.com",
        api_version: str = "2023-06-01",
        timeout: float = 60.0,
        connection_limits: Optional[httpx.Limits] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ):
        """
        Initialize Anthropic client.

        Args:
            api_key: Provider API key (x-api-key header)
            base_url: API root
            api_version: anthropic-version header value
            timeout: Per-request timeout in seconds
            connection_limits: httpx connection pool limits (default: 10 max connections)
            transport: Custom httpx transport (tests use httpx.MockTransport)
            **kwargs: Additional config
        """
        super().__init__(base_url, timeout, **kwargs)
        self.api_key = api_key
        self.api_version = api_version

        if connection_limits is None:
            connection_limits = httpx.Limits(
                max_keepalive_connections=5,
                max_connections=10,
                keepalive_expiry=30.0,
            )
        self._connection_limits = connection_limits
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        if not api_key:
            logger.warning("Anthropic client created without an API key")

    @classmethod
    def from_settings(cls, settings: Any, **kwargs) -> "AnthropicClient":
        return cls(
            api_key=settings.ANTHROPIC_API_KEY,
            base_url=settings.ANTHROPIC_BASE_URL,
            api_version=settings.ANTHROPIC_API_VERSION,
            timeout=settings.REQUEST_TIMEOUT,
            **kwargs,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                limits=self._connection_limits,
                transport=self._transport,
                headers={
                    "x-api-key": self.api_key,
                    "anthropic-version": self.api_version,
                    "content-type": "application/json",
                },
            )
            logger.debug("Created new httpx AsyncClient")
        return self._client

    @staticmethod
    def build_payload(model_id: str, request: ProviderRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model_id,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
        }
        if request.system:
            payload["system"] = request.system
        return payload

    async def generate(self, model_id: str, request: ProviderRequest) -> ProviderResponse:
        """
        Create a message.

        Response:
        {
            "id": "msg_...",
            "model": "claude-3-haiku-20240307",
            "content": [{"type": "text", "text": "..."}],
            "stop_reason": "end_turn",
            "usage": {"input_tokens": 12, "output_tokens": 40}
        }
        """
        payload = self.build_payload(model_id, request)
        logger.info(
            "Sending message request",
            model=model_id,
            messages=len(request.messages),
            max_tokens=request.max_tokens,
        )

        client = await self._get_client()
        try:
            response = await client.post(MESSAGES_PATH, json=payload)
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(
                f"Request timeout after {self.timeout}s",
                details={"model": model_id, "timeout": self.timeout, "error": str(e)},
            ) from e
        except httpx.NetworkError as e:
            raise LLMConnectionError(
                f"Network error: {e}",
                details={"model": model_id, "error_type": type(e).__name__},
            ) from e

        if response.is_error:
            error_type, message = _error_body(response)
            logger.warning(
                "Provider HTTP error",
                model=model_id,
                status_code=response.status_code,
                error_type=error_type,
            )
            raise LLMProviderError(
                message,
                status=response.status_code,
                error_type=error_type,
                retry_after=_retry_after(response),
                details={"model": model_id},
            )

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise LLMResponseParseError(
                "Invalid JSON response from provider",
                details={"model": model_id, "parse_error": str(e)},
            ) from e
        if not isinstance(data, dict):
            raise LLMResponseParseError("Unexpected JSON response shape", details={"model": model_id})

        blocks = data.get("content") or []
        content = "\n".join(
            block.get("text", "") for block in blocks if isinstance(block, dict) and block.get("type") == "text"
        )
        usage = data.get("usage") or {}

        logger.info(
            "Message request successful",
            model=data.get("model", model_id),
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens"),
            stop_reason=data.get("stop_reason"),
        )

        return ProviderResponse(
            content=content,
            input_tokens=usage.get("input_tokens") or 0,
            output_tokens=usage.get("output_tokens") or 0,
            model=data.get("model", model_id),
            stop_reason=data.get("stop_reason"),
            id=data.get("id"),
            raw_metadata={"type": data.get("type"), "stop_sequence": data.get("stop_sequence")},
        )

    async def close(self) -> None:
        """Close the HTTP client connection."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Closed Anthropic client connection")

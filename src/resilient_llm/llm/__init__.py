"""
Provider client abstraction and implementations.

Components:
- BaseLLMClient: Abstract base class for provider clients
- AnthropicClient: Implementation for the Anthropic Messages API
- exceptions: Client-level exceptions read by the error classifier
"""

from resilient_llm.llm.anthropic_client import AnthropicClient
from resilient_llm.llm.base_client import BaseLLMClient
from resilient_llm.llm.exceptions import (
    LLMClientError,
    LLMConnectionError,
    LLMProviderError,
    LLMResponseParseError,
    LLMTimeoutError,
)

__all__ = [
    "BaseLLMClient",
    "AnthropicClient",
    "LLMClientError",
    "LLMConnectionError",
    "LLMTimeoutError",
    "LLMProviderError",
    "LLMResponseParseError",
]

"""
Custom exceptions for the LLM client layer.

Provider clients raise these; the error classifier reads their duck-typed
attributes (`status`, `error_type`, `retry_after`, message) to map them onto
the ApiError taxonomy, so the resilience stack never imports this module.
"""


class LLMClientError(Exception):
    """
    Base exception for all LLM client errors.

    All LLM-specific exceptions inherit from this to allow catching
    any LLM-related error with a single except clause.
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class LLMConnectionError(LLMClientError):
    """
    Raised when unable to reach the provider.

    Includes DNS failures, refused and reset connections.
    """


class LLMTimeoutError(LLMClientError):
    """Raised when the HTTP request exceeds the client timeout."""


class LLMProviderError(LLMClientError):
    """
    Raised when the provider answers with an HTTP error.

    Attributes:
        status: HTTP status code
        error_type: Provider error type (e.g. "rate_limit_error", "overloaded_error")
        retry_after: Seconds from the retry-after header, if any
    """

    def __init__(
        self,
        message: str,
        status: int,
        error_type: str | None = None,
        retry_after: float | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.status = status
        self.error_type = error_type
        self.retry_after = retry_after


class LLMResponseParseError(LLMClientError):
    """Raised when a successful HTTP response body is not valid provider JSON."""

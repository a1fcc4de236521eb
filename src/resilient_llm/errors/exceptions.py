"""
Normalized error raised by every layer of the resilience stack.

ApiError is the single exception type callers of ResilientLLMClient need
to handle. It wraps whatever the provider (or the stack itself) raised into
a stable `code` plus a retryability flag and free-form context.
"""

from types import MappingProxyType
from typing import Any, Mapping

from resilient_llm.errors.codes import ErrorCode


class ApiError(Exception):
    """
    Classified, immutable failure.

    Attributes:
        code: ErrorCode from the closed taxonomy
        message: Human-readable description (for logs, not for branching)
        retryable: Whether retrying the same target may succeed
        context: Read-only diagnostic mapping (status, error type, service, ...)
        request_id: Correlation id of the invocation that failed
        cause: Wrapped ApiError (set on RETRY_EXHAUSTED)
        retry_after: Provider-supplied retry-after hint in seconds (quota errors)
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        retryable: bool = False,
        context: Mapping[str, Any] | None = None,
        request_id: str | None = None,
        cause: "ApiError | None" = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self._code = ErrorCode(code)
        self._message = message
        self._retryable = retryable
        self._context = MappingProxyType(dict(context or {}))
        self._request_id = request_id
        self._cause = cause
        self._retry_after = retry_after

    @property
    def code(self) -> ErrorCode:
        return self._code

    @property
    def message(self) -> str:
        return self._message

    @property
    def retryable(self) -> bool:
        return self._retryable

    @property
    def context(self) -> Mapping[str, Any]:
        return self._context

    @property
    def request_id(self) -> str | None:
        return self._request_id

    @property
    def cause(self) -> "ApiError | None":
        return self._cause

    @property
    def retry_after(self) -> float | None:
        return self._retry_after

    def root_cause(self) -> "ApiError":
        """Follow the RETRY_EXHAUSTED wrapping chain down to the original error."""
        error = self
        while error.cause is not None:
            error = error.cause
        return error

    def with_request_id(self, request_id: str) -> "ApiError":
        """Return a copy tagged with `request_id` (the original stays untouched)."""
        return ApiError(
            self._code,
            self._message,
            retryable=self._retryable,
            context=self._context,
            request_id=request_id,
            cause=self._cause,
            retry_after=self._retry_after,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation."""
        data: dict[str, Any] = {
            "code": self._code.value,
            "message": self._message,
            "retryable": self._retryable,
            "context": dict(self._context),
            "request_id": self._request_id,
        }
        if self._retry_after is not None:
            data["retry_after"] = self._retry_after
        if self._cause is not None:
            data["cause"] = self._cause.to_dict()
        return data

    def __repr__(self) -> str:
        return (
            f"ApiError(code={self._code.value}, retryable={self._retryable}, "
            f"message={self._message!r})"
        )


# === Construction helpers (default retryability per code) ===


def create_quota_exceeded_error(
    message: str,
    context: Mapping[str, Any] | None = None,
    retry_after: float | None = None,
    request_id: str | None = None,
) -> ApiError:
    return ApiError(
        ErrorCode.AI_QUOTA_EXCEEDED,
        message,
        retryable=True,
        context=context,
        request_id=request_id,
        retry_after=retry_after,
    )


def create_context_window_exceeded_error(
    message: str, context: Mapping[str, Any] | None = None, request_id: str | None = None
) -> ApiError:
    return ApiError(
        ErrorCode.CONTEXT_WINDOW_EXCEEDED,
        message,
        retryable=True,
        context=context,
        request_id=request_id,
    )


def create_content_filtered_error(
    message: str, context: Mapping[str, Any] | None = None, request_id: str | None = None
) -> ApiError:
    return ApiError(
        ErrorCode.CONTENT_FILTERED,
        message,
        retryable=False,
        context=context,
        request_id=request_id,
    )


def create_unavailable_error(
    message: str, context: Mapping[str, Any] | None = None, request_id: str | None = None
) -> ApiError:
    return ApiError(
        ErrorCode.AI_UNAVAILABLE,
        message,
        retryable=True,
        context=context,
        request_id=request_id,
    )


def create_model_error(
    message: str, context: Mapping[str, Any] | None = None, request_id: str | None = None
) -> ApiError:
    return ApiError(
        ErrorCode.AI_MODEL_ERROR,
        message,
        retryable=True,
        context=context,
        request_id=request_id,
    )


def create_parsing_error(
    message: str, context: Mapping[str, Any] | None = None, request_id: str | None = None
) -> ApiError:
    return ApiError(
        ErrorCode.AI_PARSING_ERROR,
        message,
        retryable=False,
        context=context,
        request_id=request_id,
    )


def create_timeout_error(
    message: str, context: Mapping[str, Any] | None = None, request_id: str | None = None
) -> ApiError:
    return ApiError(
        ErrorCode.TIMEOUT,
        message,
        retryable=True,
        context=context,
        request_id=request_id,
    )


def create_circuit_open_error(
    message: str, context: Mapping[str, Any] | None = None, request_id: str | None = None
) -> ApiError:
    return ApiError(
        ErrorCode.CIRCUIT_OPEN,
        message,
        retryable=True,
        context=context,
        request_id=request_id,
    )


def create_retry_exhausted_error(
    message: str,
    last_error: ApiError,
    context: Mapping[str, Any] | None = None,
    request_id: str | None = None,
) -> ApiError:
    return ApiError(
        ErrorCode.RETRY_EXHAUSTED,
        message,
        retryable=True,
        context=context,
        request_id=request_id,
        cause=last_error,
    )


def create_rate_limited_error(
    message: str, context: Mapping[str, Any] | None = None, request_id: str | None = None
) -> ApiError:
    return ApiError(
        ErrorCode.RATE_LIMITED,
        message,
        retryable=True,
        context=context,
        request_id=request_id,
    )


def create_bad_request_error(
    message: str, context: Mapping[str, Any] | None = None, request_id: str | None = None
) -> ApiError:
    return ApiError(
        ErrorCode.BAD_REQUEST,
        message,
        retryable=False,
        context=context,
        request_id=request_id,
    )


def create_internal_error(
    message: str, context: Mapping[str, Any] | None = None, request_id: str | None = None
) -> ApiError:
    return ApiError(
        ErrorCode.INTERNAL,
        message,
        retryable=False,
        context=context,
        request_id=request_id,
    )


class DeadlineExceeded(ApiError):
    """TIMEOUT raised when a deadline wins the race against an operation."""

    def __init__(self, message: str, context: Mapping[str, Any] | None = None, request_id: str | None = None):
        super().__init__(
            ErrorCode.TIMEOUT,
            message,
            retryable=True,
            context=context,
            request_id=request_id,
        )


class OperationCancelled(ApiError):
    """Raised when a caller's cancellation token fires during a wait."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: Mapping[str, Any] | None = None,
        request_id: str | None = None,
    ):
        super().__init__(code, message, retryable=False, context=context, request_id=request_id)

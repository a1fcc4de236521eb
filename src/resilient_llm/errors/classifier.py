"""
Error classification and fallback hints.

`classify` turns any raw failure (provider SDK error, httpx transport error,
OS-level socket error, plain exception) into an ApiError from the closed
taxonomy. It is a pure function: it inspects duck-typed attributes
(`status`/`status_code`, `type`/`error_type`, `code`/`errno`, `retry_after`)
and the message text, so it does not depend on any particular client class.

`derive_fallback_advice` maps a classified error onto the orchestrator's
fallback decision (fall back or not, which model to promote, abort or not).

Rules (first match wins):
    1. Cancellation / abort          -> TIMEOUT
    2. HTTP 429, rate-limit / quota  -> AI_QUOTA_EXCEEDED (retryable, retry-after hint)
    3. Context-length wording        -> CONTEXT_WINDOW_EXCEEDED (retryable)
    4. Content-policy wording        -> CONTENT_FILTERED (never retried)
    5. HTTP >= 500, server wording   -> AI_UNAVAILABLE (retryable)
    6. Network error codes           -> AI_UNAVAILABLE (retryable)
    7. Timeout wording               -> TIMEOUT (retryable)
    8. JSON / parse wording          -> AI_PARSING_ERROR (never retried)
    9. Anything else                 -> AI_MODEL_ERROR (retryable)
"""

import asyncio
import errno
import json
import socket
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Sequence

import httpx

from resilient_llm.errors.codes import ErrorCode
from resilient_llm.errors.exceptions import (
    ApiError,
    create_content_filtered_error,
    create_context_window_exceeded_error,
    create_model_error,
    create_parsing_error,
    create_quota_exceeded_error,
    create_timeout_error,
    create_unavailable_error,
)

if TYPE_CHECKING:
    from resilient_llm.models.catalog import ModelDescriptor


NETWORK_ERROR_CODES = frozenset(
    {"ECONNRESET", "ECONNREFUSED", "ENOTFOUND", "EAI_AGAIN", "EHOSTUNREACH", "ENETUNREACH", "EPIPE"}
)

_RATE_LIMIT_WORDS = ("rate limit", "rate_limit", "ratelimit", "quota", "too many requests")
_CONTEXT_WORDS = (
    "context window",
    "context_window",
    "context length",
    "context_length",
    "too many tokens",
    "prompt is too long",
)
_CONTENT_POLICY_WORDS = ("content policy", "content_policy", "violates", "harmful")
_UNAVAILABLE_WORDS = ("unavailable", "overloaded", "server error", "server_error")
_TIMEOUT_WORDS = ("timeout", "timed out")
_PARSING_WORDS = ("json", "parse")


def _status_of(raw: BaseException) -> int | None:
    for attr in ("status", "status_code"):
        value = getattr(raw, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(raw, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _type_of(raw: BaseException) -> str:
    for attr in ("type", "error_type"):
        value = getattr(raw, attr, None)
        if isinstance(value, str):
            return value
    return ""


def _code_of(raw: BaseException) -> str | None:
    value = getattr(raw, "code", None)
    if isinstance(value, str):
        return value.upper()
    err = getattr(raw, "errno", None)
    if isinstance(err, int):
        return errno.errorcode.get(err)
    return None


def _message_of(raw: BaseException) -> str:
    value = getattr(raw, "message", None)
    if isinstance(value, str) and value:
        return value
    return str(raw) or type(raw).__name__


def _retry_after_of(raw: BaseException) -> float | None:
    value = getattr(raw, "retry_after", None)
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _contains(text: str, words: Sequence[str]) -> bool:
    return any(word in text for word in words)


def classify(raw: BaseException, request_id: str | None = None) -> ApiError:
    """
    Normalize a raw failure into an ApiError.

    Already-classified ApiErrors pass through unchanged (tagged with
    `request_id` if they have none).

    Args:
        raw: Exception raised by the provider call or a resilience layer
        request_id: Correlation id to attach

    Returns:
        ApiError with code, retryable flag and diagnostic context
    """
    if isinstance(raw, ApiError):
        if request_id and raw.request_id is None:
            return raw.with_request_id(request_id)
        return raw

    status = _status_of(raw)
    error_type = _type_of(raw).lower()
    message = _message_of(raw)
    lowered = message.lower()
    haystack = f"{error_type} {lowered}"
    code = _code_of(raw)

    context: dict[str, Any] = {"error_class": type(raw).__name__, "original_error": message}
    if status is not None:
        context["status_code"] = status
    if error_type:
        context["error_type"] = error_type
    if code:
        context["code"] = code

    # 1. Cancellation / abort
    if (
        isinstance(raw, asyncio.CancelledError)
        or getattr(raw, "name", None) == "AbortError"
        or "aborted" in lowered
    ):
        return create_timeout_error(
            "Request was aborted or timed out", context, request_id
        )

    # 2. Rate limit / quota
    if status == 429 or _contains(haystack, _RATE_LIMIT_WORDS):
        return create_quota_exceeded_error(
            f"Provider rate limit exceeded: {message}",
            context,
            retry_after=_retry_after_of(raw),
            request_id=request_id,
        )

    # 3. Context window
    if _contains(haystack, _CONTEXT_WORDS):
        return create_context_window_exceeded_error(
            f"Provider context window exceeded: {message}", context, request_id
        )

    # 4. Content policy
    if _contains(haystack, _CONTENT_POLICY_WORDS):
        return create_content_filtered_error(
            f"Provider content policy violation: {message}", context, request_id
        )

    # 5. Service availability
    if (status is not None and status >= 500) or _contains(haystack, _UNAVAILABLE_WORDS) or "server" in error_type:
        return create_unavailable_error(f"Provider service error: {message}", context, request_id)

    # 6. Network
    if (
        (code is not None and code in NETWORK_ERROR_CODES)
        or isinstance(raw, (ConnectionError, socket.gaierror, httpx.NetworkError))
        or "network" in lowered
    ):
        return create_unavailable_error(f"Provider network error: {message}", context, request_id)

    # 7. Timeout
    if isinstance(raw, (TimeoutError, httpx.TimeoutException)) or _contains(lowered, _TIMEOUT_WORDS):
        return create_timeout_error(f"Provider request timed out: {message}", context, request_id)

    # 8. Parsing
    if isinstance(raw, json.JSONDecodeError) or _contains(lowered, _PARSING_WORDS):
        return create_parsing_error(
            f"Provider response parsing error: {message}", context, request_id
        )

    # 9. Default
    return create_model_error(f"Provider error: {message}", context, request_id)


@dataclass(frozen=True)
class FallbackAdvice:
    """
    Orchestrator decision derived from a classified error.

    Attributes:
        should_fallback: Try the next candidate model
        recommended_model: Candidate to promote to the next slot, if any
        strategy: "immediate" (fall back now), "backoff" (retry same model
            later, caller's job), or "abort" (stop the chain)
    """

    should_fallback: bool
    recommended_model: str | None = None
    strategy: Literal["immediate", "backoff", "abort"] = "backoff"


_ABORT = FallbackAdvice(should_fallback=False, strategy="abort")


def _largest_context(
    failed: "ModelDescriptor | None", remaining: Sequence["ModelDescriptor"]
) -> str | None:
    if not remaining:
        return None
    best = max(remaining, key=lambda m: m.max_context_tokens)
    if failed is not None and best.max_context_tokens <= failed.max_context_tokens:
        return None
    return best.id


def _fastest(remaining: Sequence["ModelDescriptor"]) -> str | None:
    known = [m for m in remaining if m.avg_latency_ema is not None]
    if not known:
        return None
    return min(known, key=lambda m: m.avg_latency_ema).id


def derive_fallback_advice(
    error: ApiError,
    failed_model: "ModelDescriptor | None" = None,
    remaining: Sequence["ModelDescriptor"] = (),
) -> FallbackAdvice:
    """
    Map a classified error to a fallback recommendation.

    Args:
        error: Classified error raised for `failed_model`
        failed_model: Descriptor of the model that just failed
        remaining: Descriptors of candidates not tried yet, in order

    Returns:
        FallbackAdvice for the orchestrator
    """
    code = error.code

    if code == ErrorCode.RETRY_EXHAUSTED:
        # Retries ran out on the same model: always move on, but keep the
        # model hint of whatever kept failing.
        hint = None
        if error.cause is not None:
            hint = derive_fallback_advice(error.cause, failed_model, remaining).recommended_model
        return FallbackAdvice(should_fallback=True, recommended_model=hint, strategy="immediate")

    if code == ErrorCode.CONTEXT_WINDOW_EXCEEDED:
        return FallbackAdvice(
            should_fallback=True,
            recommended_model=_largest_context(failed_model, remaining),
            strategy="immediate",
        )

    if code == ErrorCode.TIMEOUT:
        return FallbackAdvice(
            should_fallback=True,
            recommended_model=_fastest(remaining),
            strategy="immediate",
        )

    if code in (ErrorCode.AI_QUOTA_EXCEEDED, ErrorCode.AI_MODEL_ERROR, ErrorCode.CIRCUIT_OPEN):
        return FallbackAdvice(should_fallback=True, strategy="immediate")

    if code == ErrorCode.AI_UNAVAILABLE:
        return FallbackAdvice(should_fallback=False, strategy="backoff")

    return _ABORT

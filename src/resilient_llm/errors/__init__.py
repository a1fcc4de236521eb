"""
Error taxonomy, normalized exception and classifier.

Components:
- ErrorCode: Closed set of failure classes
- ApiError: The one exception type leaving the resilience stack
- classify: Raw failure -> ApiError
- derive_fallback_advice: ApiError -> FallbackAdvice for the orchestrator
"""

from resilient_llm.errors.classifier import (
    FallbackAdvice,
    classify,
    derive_fallback_advice,
)
from resilient_llm.errors.codes import NON_RETRYABLE_CODES, ErrorCode
from resilient_llm.errors.exceptions import (
    ApiError,
    DeadlineExceeded,
    OperationCancelled,
    create_bad_request_error,
    create_circuit_open_error,
    create_internal_error,
    create_rate_limited_error,
    create_retry_exhausted_error,
    create_timeout_error,
)

__all__ = [
    "ErrorCode",
    "NON_RETRYABLE_CODES",
    "ApiError",
    "DeadlineExceeded",
    "OperationCancelled",
    "FallbackAdvice",
    "classify",
    "derive_fallback_advice",
    "create_bad_request_error",
    "create_circuit_open_error",
    "create_internal_error",
    "create_rate_limited_error",
    "create_retry_exhausted_error",
    "create_timeout_error",
]

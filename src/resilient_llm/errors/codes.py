"""
Closed error taxonomy.

Every failure leaving the resilience layer carries exactly one of these
codes. Callers branch on the code, never on message text.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Normalized failure classes."""

    AI_QUOTA_EXCEEDED = "AI_QUOTA_EXCEEDED"
    CONTEXT_WINDOW_EXCEEDED = "CONTEXT_WINDOW_EXCEEDED"
    CONTENT_FILTERED = "CONTENT_FILTERED"
    AI_UNAVAILABLE = "AI_UNAVAILABLE"
    AI_MODEL_ERROR = "AI_MODEL_ERROR"
    AI_PARSING_ERROR = "AI_PARSING_ERROR"
    TIMEOUT = "TIMEOUT"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    RATE_LIMITED = "RATE_LIMITED"
    BAD_REQUEST = "BAD_REQUEST"
    INTERNAL = "INTERNAL"


# Codes that abort immediately: no retry, no fallback.
NON_RETRYABLE_CODES: frozenset[ErrorCode] = frozenset(
    {
        ErrorCode.CONTENT_FILTERED,
        ErrorCode.AI_PARSING_ERROR,
        ErrorCode.BAD_REQUEST,
    }
)

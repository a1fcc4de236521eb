"""Usage and cost accounting."""

from resilient_llm.usage.token_estimator import (
    estimate_messages_token_count,
    estimate_token_count,
)
from resilient_llm.usage.tracker import UsageSnapshot, UsageTracker

__all__ = [
    "UsageTracker",
    "UsageSnapshot",
    "estimate_token_count",
    "estimate_messages_token_count",
]

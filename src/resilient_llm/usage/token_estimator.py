"""Rough token estimates used for cost selection and dynamic timeouts."""

import math
from typing import Iterable

from resilient_llm.models.llm_models import Message

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 4  # role markers and formatting per message


def estimate_token_count(text: str | None) -> int:
    """About one token per four characters of English text."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_messages_token_count(messages: Iterable[Message], system: str | None = None) -> int:
    total = estimate_token_count(system)
    for message in messages:
        total += MESSAGE_OVERHEAD_TOKENS + estimate_token_count(message.content)
    return total

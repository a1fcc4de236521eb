"""
Enumerations for the resilient LLM layer.

All enums are closed taxonomies - no values outside these sets are permitted.
"""

from enum import Enum


class Capability(str, Enum):
    """
    Capability tag carried by a model descriptor.

    A fallback plan lists the capabilities it requires; only models whose
    capability set contains all of them are ever invoked.
    """

    TEXT_COMPLETION = "text_completion"
    SUMMARIZATION = "summarization"
    CLASSIFICATION = "classification"
    EXTRACTION = "extraction"
    REASONING = "reasoning"
    CODE_UNDERSTANDING = "code_understanding"
    MULTILINGUAL = "multilingual"
    LONG_CONTEXT = "long_context"


class RequestClass(str, Enum):
    """
    Request class selecting the default fallback plan and breaker tuning.

    Ordered from cheapest to most quality-sensitive.
    """

    BATCH = "batch"
    STANDARD = "standard"
    PREMIUM = "premium"

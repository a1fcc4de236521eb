"""
Data models for the resilient LLM layer.

Includes:
- Enums (Capability, RequestClass)
- Model catalog (ModelDescriptor, ModelCatalog, select_model_by_cost)
- Fallback plans (FallbackPlan, presets, get_fallback_plan)
- LLM models (Message, PromptPayload, ProviderRequest, ProviderResponse)
- Results (OperationResult, InvokePolicy, InvokeResult and its parts)
"""

from resilient_llm.models.catalog import (
    CLAUDE_MODELS,
    ModelCatalog,
    ModelDescriptor,
    default_catalog,
    select_model_by_cost,
)
from resilient_llm.models.enums import Capability, RequestClass
from resilient_llm.models.llm_models import (
    Message,
    PromptPayload,
    ProviderRequest,
    ProviderResponse,
)
from resilient_llm.models.plans import (
    BATCH_PLAN,
    PLAN_PRESETS,
    PREMIUM_PLAN,
    STANDARD_PLAN,
    FallbackPlan,
    circuit_breaker_config_for,
    get_fallback_plan,
)
from resilient_llm.models.results import (
    CostInfo,
    ExecutionMetadata,
    InvokePolicy,
    InvokeResult,
    OperationResult,
    UsageInfo,
)

__all__ = [
    # Enums
    "Capability",
    "RequestClass",
    # Catalog
    "CLAUDE_MODELS",
    "ModelCatalog",
    "ModelDescriptor",
    "default_catalog",
    "select_model_by_cost",
    # Plans
    "FallbackPlan",
    "STANDARD_PLAN",
    "BATCH_PLAN",
    "PREMIUM_PLAN",
    "PLAN_PRESETS",
    "get_fallback_plan",
    "circuit_breaker_config_for",
    # LLM models
    "Message",
    "PromptPayload",
    "ProviderRequest",
    "ProviderResponse",
    # Results
    "OperationResult",
    "InvokePolicy",
    "UsageInfo",
    "CostInfo",
    "ExecutionMetadata",
    "InvokeResult",
]

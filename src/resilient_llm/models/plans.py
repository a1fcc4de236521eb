"""
Fallback plans and per-request-class presets.

A FallbackPlan is request-scoped: `get_fallback_plan` copies a preset and
applies the caller's overrides, so presets are never mutated.
"""

from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

from resilient_llm.models.enums import Capability, RequestClass
from resilient_llm.resilience.circuit_breaker import CircuitBreakerConfig


class FallbackPlan(BaseModel):
    """
    Ordered candidate models plus the constraints every candidate must meet.

    `candidates()` is `[initial_model, *fallback_models]` with duplicates
    removed (first occurrence wins).

    Presets anchor the cost ceiling on their own declared chain, so an
    overridden initial model never removes a declared fallback.
    """

    model_config = ConfigDict(frozen=True)

    initial_model: str = Field(..., description="Model tried first")
    fallback_models: tuple[str, ...] = Field(default=(), description="Alternatives, in try order")
    required_capabilities: frozenset[Capability] = Field(default_factory=frozenset)
    max_cost_multiplier: float | None = Field(
        default=None,
        gt=0.0,
        description="Drop candidates pricier than the cost reference x multiplier",
    )
    cost_reference_models: tuple[str, ...] = Field(
        default=(),
        description="Models whose priciest member anchors the cost ceiling (initial model when empty)",
    )
    timeout: float | None = Field(default=None, gt=0.0, description="Whole-plan budget in seconds")

    def candidates(self) -> list[str]:
        return list(dict.fromkeys((self.initial_model, *self.fallback_models)))


STANDARD_PLAN = FallbackPlan(
    initial_model="claude-3-sonnet-20240229",
    fallback_models=("claude-3-haiku-20240307", "claude-2.1", "claude-instant-1.2"),
    required_capabilities=frozenset({Capability.SUMMARIZATION, Capability.EXTRACTION}),
    max_cost_multiplier=5.0,
    cost_reference_models=(
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
        "claude-2.1",
        "claude-instant-1.2",
    ),
    timeout=60.0,
)

# Cost-optimized chain for batch processing
BATCH_PLAN = FallbackPlan(
    initial_model="claude-3-haiku-20240307",
    fallback_models=("claude-3-sonnet-20240229", "claude-2.1"),
    required_capabilities=frozenset({Capability.SUMMARIZATION}),
    max_cost_multiplier=10.0,
    cost_reference_models=("claude-3-haiku-20240307", "claude-3-sonnet-20240229", "claude-2.1"),
    timeout=180.0,
)

PREMIUM_PLAN = FallbackPlan(
    initial_model="claude-3-opus-20240229",
    fallback_models=("claude-3-sonnet-20240229", "claude-3-haiku-20240307"),
    required_capabilities=frozenset(
        {Capability.SUMMARIZATION, Capability.EXTRACTION, Capability.REASONING}
    ),
    max_cost_multiplier=2.0,
    cost_reference_models=(
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
    ),
    timeout=120.0,
)

PLAN_PRESETS: dict[RequestClass, FallbackPlan] = {
    RequestClass.STANDARD: STANDARD_PLAN,
    RequestClass.BATCH: BATCH_PLAN,
    RequestClass.PREMIUM: PREMIUM_PLAN,
}


def get_fallback_plan(
    request_class: RequestClass | str = RequestClass.STANDARD,
    required_capabilities: Iterable[Capability] | None = None,
    initial_model: str | None = None,
    timeout: float | None = None,
) -> FallbackPlan:
    """
    Build a plan from the request class preset.

    Args:
        request_class: Preset to start from
        required_capabilities: Replaces the preset's capabilities when given
        initial_model: Model tried first; it is removed from the fallbacks
        timeout: Replaces the preset's timeout when given

    Returns:
        New FallbackPlan
    """
    preset = PLAN_PRESETS[RequestClass(request_class)]
    update: dict[str, Any] = {}
    if required_capabilities is not None:
        update["required_capabilities"] = frozenset(Capability(c) for c in required_capabilities)
    if initial_model is not None and initial_model != preset.initial_model:
        update["initial_model"] = initial_model
        update["fallback_models"] = tuple(
            m for m in dict.fromkeys((preset.initial_model, *preset.fallback_models)) if m != initial_model
        )
    if timeout is not None:
        update["timeout"] = timeout
    if not update:
        return preset
    return preset.model_copy(update=update)


def circuit_breaker_config_for(request_class: RequestClass | str, settings: Any) -> CircuitBreakerConfig:
    """Breaker tuning for a request class; premium tolerates more failures."""
    threshold = settings.CIRCUIT_FAILURE_THRESHOLD
    if RequestClass(request_class) == RequestClass.PREMIUM:
        threshold = settings.CIRCUIT_PREMIUM_FAILURE_THRESHOLD
    return CircuitBreakerConfig(
        failure_threshold=threshold,
        reset_timeout=settings.CIRCUIT_RESET_TIMEOUT,
        half_open_success_threshold=settings.CIRCUIT_HALF_OPEN_SUCCESS_THRESHOLD,
    )

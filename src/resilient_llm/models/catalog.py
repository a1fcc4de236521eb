"""
Model catalog: descriptors, live metrics and cost-based selection.

The catalog is small and fixed-size. Descriptors are immutable snapshots;
`ModelCatalog.update_metrics` swaps in a new snapshot carrying refreshed
exponential moving averages under a per-model lock, so concurrent readers
never see a half-updated descriptor.
"""

import threading
from typing import Iterable, Iterator

import structlog
from pydantic import BaseModel, ConfigDict, Field

from resilient_llm.errors.exceptions import create_bad_request_error
from resilient_llm.models.enums import Capability
from resilient_llm.monitoring.metrics import model_avg_latency_seconds, model_success_rate

logger = structlog.get_logger(__name__)

# EMA weights on the newest observation
SUCCESS_RATE_WEIGHT = 0.75
LATENCY_WEIGHT = 0.25


class ModelDescriptor(BaseModel):
    """
    One model variant offered by the provider.

    Prices are USD per token. `priority` is informational (lower = preferred);
    plans, not priorities, decide the try order.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Provider model id")
    name: str = Field(default="", description="Display name")
    provider: str = Field(default="anthropic", description="Provider name")
    cost_per_input_token: float = Field(..., ge=0.0, description="USD per input token")
    cost_per_output_token: float = Field(..., ge=0.0, description="USD per output token")
    max_context_tokens: int = Field(..., ge=1, description="Context window in tokens")
    capabilities: frozenset[Capability] = Field(default_factory=frozenset)
    priority: int = Field(default=100, ge=0, description="Lower is preferred")
    success_rate_ema: float | None = Field(default=None, ge=0.0, le=1.0)
    avg_latency_ema: float | None = Field(default=None, ge=0.0, description="Seconds")

    def supports(self, required: Iterable[Capability]) -> bool:
        return self.capabilities.issuperset(required)

    def blended_price(self) -> float:
        """Price of one input token plus one output token."""
        return self.cost_per_input_token + self.cost_per_output_token

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return input_tokens * self.cost_per_input_token + output_tokens * self.cost_per_output_token


_ALL = frozenset(Capability)

CLAUDE_MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        id="claude-3-opus-20240229",
        name="Claude 3 Opus",
        cost_per_input_token=0.000015,
        cost_per_output_token=0.000075,
        max_context_tokens=200_000,
        capabilities=_ALL,
        priority=1,
    ),
    ModelDescriptor(
        id="claude-3-sonnet-20240229",
        name="Claude 3 Sonnet",
        cost_per_input_token=0.000003,
        cost_per_output_token=0.000015,
        max_context_tokens=200_000,
        capabilities=_ALL,
        priority=2,
    ),
    ModelDescriptor(
        id="claude-3-haiku-20240307",
        name="Claude 3 Haiku",
        cost_per_input_token=0.00000025,
        cost_per_output_token=0.00000125,
        max_context_tokens=200_000,
        capabilities=_ALL - {Capability.REASONING, Capability.CODE_UNDERSTANDING},
        priority=3,
    ),
    ModelDescriptor(
        id="claude-2.1",
        name="Claude 2.1",
        cost_per_input_token=0.000008,
        cost_per_output_token=0.000024,
        max_context_tokens=100_000,
        capabilities=_ALL - {Capability.LONG_CONTEXT},
        priority=4,
    ),
    ModelDescriptor(
        id="claude-instant-1.2",
        name="Claude Instant 1.2",
        cost_per_input_token=0.000000163,
        cost_per_output_token=0.000000551,
        max_context_tokens=100_000,
        capabilities=frozenset(
            {Capability.TEXT_COMPLETION, Capability.SUMMARIZATION, Capability.CLASSIFICATION}
        ),
        priority=5,
    ),
)


class ModelCatalog:
    """
    Registry of model descriptors with per-model locks.

    Owned by one client facade and shared by all of its concurrent
    invocations.
    """

    def __init__(self, models: Iterable[ModelDescriptor]):
        self._models: dict[str, ModelDescriptor] = {}
        self._locks: dict[str, threading.Lock] = {}
        for model in models:
            self._models[model.id] = model
            self._locks[model.id] = threading.Lock()

    def get(self, model_id: str) -> ModelDescriptor | None:
        return self._models.get(model_id)

    def require(self, model_id: str) -> ModelDescriptor:
        """Descriptor for `model_id`, raising BAD_REQUEST when unknown."""
        model = self._models.get(model_id)
        if model is None:
            raise create_bad_request_error(f"Unknown model: {model_id}", {"model": model_id})
        return model

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def __iter__(self) -> Iterator[ModelDescriptor]:
        return iter(list(self._models.values()))

    def __len__(self) -> int:
        return len(self._models)

    def update_metrics(self, model_id: str, success: bool, latency: float) -> ModelDescriptor | None:
        """
        Fold one completed attempt into the model's EMAs.

        Success rate weighs the newest observation at 0.75, latency at 0.25;
        the first observation seeds both. Unknown models are ignored.

        Args:
            model_id: Model that served (or failed) the attempt
            success: Whether the attempt succeeded
            latency: Attempt duration in seconds

        Returns:
            The refreshed descriptor, or None for unknown models
        """
        lock = self._locks.get(model_id)
        if lock is None:
            return None
        observed = 1.0 if success else 0.0
        with lock:
            model = self._models[model_id]
            if model.success_rate_ema is None:
                success_rate = observed
            else:
                success_rate = SUCCESS_RATE_WEIGHT * observed + (1 - SUCCESS_RATE_WEIGHT) * model.success_rate_ema
            if model.avg_latency_ema is None:
                avg_latency = latency
            else:
                avg_latency = LATENCY_WEIGHT * latency + (1 - LATENCY_WEIGHT) * model.avg_latency_ema
            updated = model.model_copy(
                update={"success_rate_ema": success_rate, "avg_latency_ema": avg_latency}
            )
            self._models[model_id] = updated

        model_success_rate.labels(model=model_id).set(success_rate)
        model_avg_latency_seconds.labels(model=model_id).set(avg_latency)
        logger.debug(
            "Updated model metrics",
            model=model_id,
            success=success,
            latency=latency,
            success_rate_ema=success_rate,
            avg_latency_ema=avg_latency,
        )
        return updated


def default_catalog() -> ModelCatalog:
    """Fresh catalog of the Claude model family with no metrics recorded."""
    return ModelCatalog(CLAUDE_MODELS)


def select_model_by_cost(
    catalog: ModelCatalog,
    estimated_input_tokens: int,
    estimated_output_tokens: int,
    required_capabilities: Iterable[Capability] = (),
    max_cost: float | None = None,
    preferred_models: Iterable[str] | None = None,
    excluded_models: Iterable[str] = (),
) -> ModelDescriptor:
    """
    Cheapest capable model for an estimated request size.

    Args:
        catalog: Models to choose from
        estimated_input_tokens: Expected prompt size
        estimated_output_tokens: Expected completion size
        required_capabilities: Capabilities the model must have
        max_cost: Optional USD ceiling for the estimated request
        preferred_models: Restrict the choice to these ids
        excluded_models: Never pick these ids

    Returns:
        Cheapest qualifying ModelDescriptor

    Raises:
        ApiError: BAD_REQUEST when no model is capable, or none fits under max_cost
    """
    required = frozenset(required_capabilities)
    preferred = None if preferred_models is None else set(preferred_models)
    excluded = set(excluded_models)

    capable = [
        m
        for m in catalog
        if (preferred is None or m.id in preferred) and m.id not in excluded and m.supports(required)
    ]
    if not capable:
        raise create_bad_request_error(
            "No models satisfy the required capabilities",
            {"required_capabilities": sorted(c.value for c in required)},
        )

    capable.sort(key=lambda m: m.estimate_cost(estimated_input_tokens, estimated_output_tokens))

    if max_cost is None:
        return capable[0]

    for model in capable:
        if model.estimate_cost(estimated_input_tokens, estimated_output_tokens) <= max_cost:
            return model

    raise create_bad_request_error(
        "No model available under the specified cost limit",
        {
            "max_cost": max_cost,
            "estimated_input_tokens": estimated_input_tokens,
            "estimated_output_tokens": estimated_output_tokens,
            "cheapest_model_cost": capable[0].estimate_cost(
                estimated_input_tokens, estimated_output_tokens
            ),
        },
    )

"""
Unit tests for the model catalog.

Tests cover:
- Descriptor immutability and pricing helpers
- EMA seeding and weighting in update_metrics
- Cost-based model selection
"""

import pytest
from pydantic import ValidationError

from resilient_llm.errors import ApiError, ErrorCode
from resilient_llm.models.catalog import (
    CLAUDE_MODELS,
    ModelCatalog,
    ModelDescriptor,
    select_model_by_cost,
)
from resilient_llm.models.enums import Capability

SONNET = "claude-3-sonnet-20240229"
HAIKU = "claude-3-haiku-20240307"
INSTANT = "claude-instant-1.2"


# ============================================================================
# Descriptors
# ============================================================================


def test_descriptor_is_frozen(catalog):
    with pytest.raises(ValidationError):
        catalog.get(SONNET).priority = 0


def test_descriptor_pricing(catalog):
    sonnet = catalog.get(SONNET)
    assert sonnet.blended_price() == pytest.approx(0.000018)
    assert sonnet.estimate_cost(100, 50) == pytest.approx(0.00105)


def test_descriptor_capability_check(catalog):
    haiku = catalog.get(HAIKU)
    assert haiku.supports({Capability.SUMMARIZATION, Capability.EXTRACTION})
    assert not haiku.supports({Capability.REASONING})
    assert haiku.supports(())


def test_catalog_lookup(catalog):
    assert len(catalog) == len(CLAUDE_MODELS)
    assert SONNET in catalog
    assert catalog.get("gpt-4") is None
    with pytest.raises(ApiError) as exc_info:
        catalog.require("gpt-4")
    assert exc_info.value.code == ErrorCode.BAD_REQUEST


# ============================================================================
# Live metrics
# ============================================================================


def test_first_observation_seeds_emas(catalog):
    assert catalog.get(HAIKU).success_rate_ema is None

    updated = catalog.update_metrics(HAIKU, True, 1.2)

    assert updated.success_rate_ema == 1.0
    assert updated.avg_latency_ema == pytest.approx(1.2)
    assert catalog.get(HAIKU) is updated


def test_ema_weights(catalog):
    catalog.update_metrics(HAIKU, True, 2.0)
    updated = catalog.update_metrics(HAIKU, False, 6.0)

    # success: 0.75 * 0 + 0.25 * 1.0; latency: 0.25 * 6.0 + 0.75 * 2.0
    assert updated.success_rate_ema == pytest.approx(0.25)
    assert updated.avg_latency_ema == pytest.approx(3.0)


def test_update_metrics_leaves_other_models_untouched(catalog):
    catalog.update_metrics(HAIKU, False, 1.0)
    assert catalog.get(SONNET).success_rate_ema is None


def test_update_metrics_ignores_unknown_model(catalog):
    assert catalog.update_metrics("gpt-4", True, 1.0) is None


# ============================================================================
# Cost-based selection
# ============================================================================


def test_selects_cheapest_capable_model(catalog):
    model = select_model_by_cost(catalog, 1_000, 500, {Capability.SUMMARIZATION})
    assert model.id == INSTANT


def test_capabilities_narrow_the_choice(catalog):
    model = select_model_by_cost(catalog, 1_000, 500, {Capability.REASONING})
    # Only opus, sonnet and claude-2.1 reason; sonnet is the cheapest of them
    assert model.id == SONNET


def test_excluded_and_preferred_models(catalog):
    model = select_model_by_cost(catalog, 1_000, 500, excluded_models=[INSTANT])
    assert model.id == HAIKU

    model = select_model_by_cost(catalog, 1_000, 500, preferred_models=[SONNET, "claude-2.1"])
    assert model.id == SONNET


def test_max_cost_within_limit(catalog):
    model = select_model_by_cost(
        catalog, 10_000, 1_000, {Capability.REASONING}, max_cost=0.05
    )
    assert model.id == SONNET


def test_max_cost_too_low_is_bad_request(catalog):
    with pytest.raises(ApiError) as exc_info:
        select_model_by_cost(catalog, 10_000, 1_000, {Capability.REASONING}, max_cost=0.0001)

    error = exc_info.value
    assert error.code == ErrorCode.BAD_REQUEST
    assert error.context["max_cost"] == 0.0001
    assert error.context["cheapest_model_cost"] == pytest.approx(0.045)


def test_no_capable_model_is_bad_request():
    catalog = ModelCatalog(
        [
            ModelDescriptor(
                id="tiny",
                cost_per_input_token=0.0,
                cost_per_output_token=0.0,
                max_context_tokens=1_000,
                capabilities=frozenset({Capability.CLASSIFICATION}),
            )
        ]
    )
    with pytest.raises(ApiError) as exc_info:
        select_model_by_cost(catalog, 10, 10, {Capability.LONG_CONTEXT})
    assert exc_info.value.code == ErrorCode.BAD_REQUEST
    assert exc_info.value.context["required_capabilities"] == ["long_context"]

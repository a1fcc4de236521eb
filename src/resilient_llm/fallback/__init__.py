"""Ordered model fallback across a plan's candidates."""

from resilient_llm.fallback.orchestrator import (
    PLAN_DEADLINE_SCOPE,
    ModelFallbackOrchestrator,
    OperationFactory,
    service_identity,
)

__all__ = [
    "ModelFallbackOrchestrator",
    "OperationFactory",
    "PLAN_DEADLINE_SCOPE",
    "service_identity",
]

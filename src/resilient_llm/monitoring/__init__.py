"""Monitoring and metrics instrumentation for the resilient LLM layer.

Exports custom Prometheus metrics for operational monitoring and alerting.
"""

from resilient_llm.monitoring.metrics import (
    circuit_breaker_transitions_total,
    fallback_events_total,
    fallback_exhausted_total,
    llm_cost_usd_total,
    llm_latency_seconds,
    llm_requests_total,
    llm_tokens_total,
    model_avg_latency_seconds,
    model_success_rate,
    rate_limiter_queue_depth,
    rate_limiter_rejections_total,
    retries_total,
)

__all__ = [
    "llm_requests_total",
    "llm_latency_seconds",
    "llm_tokens_total",
    "llm_cost_usd_total",
    "retries_total",
    "circuit_breaker_transitions_total",
    "fallback_events_total",
    "fallback_exhausted_total",
    "model_success_rate",
    "model_avg_latency_seconds",
    "rate_limiter_rejections_total",
    "rate_limiter_queue_depth",
]

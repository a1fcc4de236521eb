"""Custom Prometheus metrics for the resilient LLM layer.

Metrics are registered on the default prometheus_client registry; expose
them with `prometheus_client.start_http_server` or the host application's
/metrics endpoint. Alert rules should be configured for:
- circuit_breaker_transitions_total (circuits opening on popular models)
- fallback_exhausted_total (every candidate failed)
- rate_limiter_rejections_total (load shedding under pressure)
- retries_total (high retry rate indicates provider instability)
"""

from prometheus_client import Counter, Gauge, Histogram

# === Request Metrics ===

llm_requests_total = Counter(
    "llm_requests_total",
    "Total facade invocations by serving model, request class and outcome",
    ["model", "request_class", "outcome"],
)
"""
Invocation counter.

Labels:
- model: Model that served the request (initial model on failure)
- request_class: standard, batch, premium
- outcome: success, or the ErrorCode value of the failure
"""

llm_latency_seconds = Histogram(
    "llm_latency_seconds",
    "Seconds spent on one candidate model per invocation",
    ["model", "success"],
    buckets=[0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 60.0, 180.0],
)
"""
Time spent on one candidate model, retries and backoff sleeps included.

Alert thresholds:
- WARN: p95 of success="true" > 20s
- CRITICAL: p95 of success="false" > 60s (slow failures burn the plan timeout)
"""

llm_tokens_total = Counter(
    "llm_tokens_total",
    "Billed tokens by serving model and direction",
    ["model", "token_type"],
)
"""
Billed token counter, fed from ProviderResponse usage.

Labels:
- model: Model that served the request
- token_type: input, output
"""

llm_cost_usd_total = Counter(
    "llm_cost_usd_total",
    "Accumulated spend in USD",
    ["model", "request_class"],
)

# === Retry / Circuit Breaker Metrics ===

retries_total = Counter(
    "retries_total",
    "Total retry attempts by service and triggering error code",
    ["service", "error_code"],
)
"""
One increment per backoff sleep.

Alert thresholds:
- WARN: retries > 10% of llm_requests_total for a service
- CRITICAL: sustained retries on every model (provider-wide incident)
"""

circuit_breaker_transitions_total = Counter(
    "circuit_breaker_transitions_total",
    "Circuit breaker state transitions",
    ["service", "from_state", "to_state"],
)

# === Fallback Metrics ===

fallback_events_total = Counter(
    "fallback_events_total",
    "Fallbacks from one model to the next",
    ["from_model", "to_model", "error_code"],
)

fallback_exhausted_total = Counter(
    "fallback_exhausted_total",
    "Fallback chains that ended without success",
    ["model"],
)

model_success_rate = Gauge(
    "model_success_rate",
    "Exponential moving average of per-model success (0-1)",
    ["model"],
)

model_avg_latency_seconds = Gauge(
    "model_avg_latency_seconds",
    "Exponential moving average of per-model latency",
    ["model"],
)

# === Rate Limiter Metrics ===

rate_limiter_rejections_total = Counter(
    "rate_limiter_rejections_total",
    "Operations shed because the admission queue was full",
)

rate_limiter_queue_depth = Gauge(
    "rate_limiter_queue_depth",
    "Operations currently waiting for admission",
)

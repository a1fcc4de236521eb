"""
Model fallback orchestration.

Walks an ordered list of candidate models, running each one through
RateLimiter -> RetryExecutor -> provider call, until one succeeds, the
candidate list runs out, or an error says not to fall back.

Ordering:
    Candidates are tried in plan order ([initial_model, *fallback_models])
    after capability and cost filtering, which only remove. The single
    exception is the hint swap: when a failure recommends a model that is
    scheduled later, it is swapped into the next slot. The order lives in
    a per-run list, so concurrent runs never affect each other.
"""

import asyncio
from typing import Any, Awaitable, Callable, NoReturn

import structlog

from resilient_llm.errors.classifier import classify, derive_fallback_advice
from resilient_llm.errors.exceptions import (
    ApiError,
    DeadlineExceeded,
    OperationCancelled,
    create_bad_request_error,
)
from resilient_llm.models.catalog import ModelCatalog
from resilient_llm.models.plans import FallbackPlan
from resilient_llm.models.results import OperationResult
from resilient_llm.monitoring.metrics import (
    fallback_events_total,
    fallback_exhausted_total,
    llm_latency_seconds,
)
from resilient_llm.resilience.cancellation import CancellationToken, run_with_deadline
from resilient_llm.resilience.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry
from resilient_llm.resilience.rate_limiter import RateLimiter
from resilient_llm.resilience.retry import AttemptStats, RetryConfig, RetryExecutor

logger = structlog.get_logger(__name__)

OperationFactory = Callable[[str], Callable[[], Awaitable[Any] | Any]]
"""model id -> zero-argument operation calling the provider with that model."""

PLAN_DEADLINE_SCOPE = "plan"


def service_identity(provider: str, model_id: str) -> str:
    """ServiceIdentity keying breaker state for one (provider, model) pair."""
    return f"{provider}-{model_id}"


class ModelFallbackOrchestrator:
    """
    Drives one request across a fallback plan.

    Attributes:
        catalog: Model descriptors and live metrics (shared)
        breakers: Circuit breaker registry (shared)
        rate_limiter: Admission control toward the provider (shared)
        executor: Retry executor bound to `breakers`
        provider_name: Prefix of every ServiceIdentity
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        breakers: CircuitBreakerRegistry,
        rate_limiter: RateLimiter,
        executor: RetryExecutor | None = None,
        provider_name: str = "anthropic",
    ):
        self.catalog = catalog
        self.breakers = breakers
        self.rate_limiter = rate_limiter
        self.executor = executor or RetryExecutor(breakers)
        self.provider_name = provider_name

    def service_for(self, model_id: str) -> str:
        return service_identity(self.provider_name, model_id)

    def filter_candidates(self, plan: FallbackPlan) -> list[str]:
        """
        Plan candidates that are known, capable and within the cost ceiling.

        Filtering never reorders.
        """
        ceiling = None
        if plan.max_cost_multiplier is not None:
            reference_prices = [
                model.blended_price()
                for model in map(self.catalog.get, plan.cost_reference_models or (plan.initial_model,))
                if model is not None
            ]
            if reference_prices:
                ceiling = max(reference_prices) * plan.max_cost_multiplier

        kept: list[str] = []
        for model_id in plan.candidates():
            model = self.catalog.get(model_id)
            if model is None:
                logger.warning("Skipping unknown model", model=model_id)
                continue
            if not model.supports(plan.required_capabilities):
                logger.debug(
                    "Skipping model lacking capabilities",
                    model=model_id,
                    missing=sorted(c.value for c in plan.required_capabilities - model.capabilities),
                )
                continue
            if ceiling is not None and model.blended_price() > ceiling:
                logger.debug("Skipping model above cost ceiling", model=model_id, ceiling=ceiling)
                continue
            kept.append(model_id)
        return kept

    @staticmethod
    def _promote(candidates: list[str], index: int, recommended: str | None) -> bool:
        """Swap `recommended` into slot index+1 if it is scheduled later."""
        if recommended is None or recommended == candidates[index]:
            return False
        try:
            position = candidates.index(recommended, index + 1)
        except ValueError:
            return False
        if position == index + 1:
            return False
        candidates[index + 1], candidates[position] = candidates[position], candidates[index + 1]
        return True

    async def run(
        self,
        plan: FallbackPlan,
        op_factory: OperationFactory,
        retry_config: RetryConfig | None = None,
        breaker_config: CircuitBreakerConfig | None = None,
        *,
        token: CancellationToken | None = None,
        request_id: str | None = None,
    ) -> OperationResult[Any]:
        """
        Run the plan until one candidate succeeds.

        Args:
            plan: Candidates and constraints
            op_factory: Builds the provider operation for a model id
            retry_config: Retry tuning applied per candidate
            breaker_config: Breaker tuning applied per candidate
            token: Caller cancellation token
            request_id: Correlation id stamped on raised errors

        Returns:
            OperationResult with the value and its provenance

        Raises:
            ApiError: BAD_REQUEST when no candidate qualifies, otherwise the
                last error observed
        """
        candidates = self.filter_candidates(plan)
        if not candidates:
            raise create_bad_request_error(
                "No capable model available for this request",
                {
                    "candidates": plan.candidates(),
                    "required_capabilities": sorted(c.value for c in plan.required_capabilities),
                },
                request_id,
            )

        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = None if plan.timeout is None else started + plan.timeout
        total_attempts = 0

        logger.info(
            "Starting fallback run",
            candidates=candidates,
            timeout=plan.timeout,
            request_id=request_id,
        )

        index = 0
        while True:
            model_id = candidates[index]
            service = self.service_for(model_id)
            operation = op_factory(model_id)
            stats = AttemptStats()
            attempt_started = loop.time()

            try:
                value = await run_with_deadline(
                    self.rate_limiter.schedule(
                        lambda: self.executor.execute(
                            operation,
                            service,
                            retry_config,
                            breaker_config,
                            token=token,
                            request_id=request_id,
                            stats=stats,
                        ),
                        token=token,
                        request_id=request_id,
                    ),
                    deadline=deadline,
                    token=token,
                    timeout_error=lambda: DeadlineExceeded(
                        f"Fallback plan exceeded its {plan.timeout}s timeout",
                        {"scope": PLAN_DEADLINE_SCOPE, "timeout": plan.timeout, "model": model_id},
                        request_id,
                    ),
                    request_id=request_id,
                )
            except OperationCancelled:
                logger.info("Fallback run cancelled", model=model_id, request_id=request_id)
                raise
            except Exception as exc:
                total_attempts += stats.attempts
                latency = loop.time() - attempt_started
                self.catalog.update_metrics(model_id, False, latency)
                llm_latency_seconds.labels(model=model_id, success="false").observe(latency)
                error = classify(exc, request_id)

                if error.context.get("scope") == PLAN_DEADLINE_SCOPE:
                    logger.error(
                        "Fallback plan timed out",
                        model=model_id,
                        timeout=plan.timeout,
                        attempts=total_attempts,
                        request_id=request_id,
                    )
                    fallback_exhausted_total.labels(model=candidates[0]).inc()
                    self._reraise(error, exc)

                remaining = [self.catalog.get(m) for m in candidates[index + 1 :]]
                advice = derive_fallback_advice(
                    error,
                    self.catalog.get(model_id),
                    [m for m in remaining if m is not None],
                )
                is_last = index == len(candidates) - 1

                if not advice.should_fallback:
                    logger.warning(
                        "Error is not fallback-eligible",
                        model=model_id,
                        error_code=error.code.value,
                        strategy=advice.strategy,
                        request_id=request_id,
                    )
                    self._reraise(error, exc)

                if is_last:
                    logger.error(
                        "All fallback candidates failed",
                        candidates=candidates,
                        error_code=error.code.value,
                        attempts=total_attempts,
                        request_id=request_id,
                    )
                    fallback_exhausted_total.labels(model=candidates[0]).inc()
                    self._reraise(error, exc)

                if self._promote(candidates, index, advice.recommended_model):
                    logger.info(
                        "Promoted recommended model",
                        recommended=advice.recommended_model,
                        error_code=error.code.value,
                        order=candidates,
                        request_id=request_id,
                    )

                next_model = candidates[index + 1]
                fallback_events_total.labels(
                    from_model=model_id, to_model=next_model, error_code=error.code.value
                ).inc()
                logger.warning(
                    f"Falling back from {model_id} to {next_model}",
                    from_model=model_id,
                    to_model=next_model,
                    error_code=error.code.value,
                    request_id=request_id,
                )
                index += 1
                continue

            total_attempts += stats.attempts
            latency = loop.time() - attempt_started
            self.catalog.update_metrics(model_id, True, latency)
            llm_latency_seconds.labels(model=model_id, success="true").observe(latency)
            return OperationResult(
                value=value,
                model_used=model_id,
                attempts=total_attempts,
                execution_time=loop.time() - started,
                initial_model=candidates[0],
            )

    @staticmethod
    def _reraise(error: ApiError, exc: BaseException) -> NoReturn:
        if error is exc:
            raise error
        raise error from exc

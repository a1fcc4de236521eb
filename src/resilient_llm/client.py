"""
Client facade: the single entry point for collaborators.

Usage:
    async with ResilientLLMClient() as client:
        result = await client.invoke("Summarize this filing ...")
        print(result.model_used, result.cost.total_cost)

With an injected raw call (any async `(model_id, ProviderRequest) -> ProviderResponse`):
    client = ResilientLLMClient(my_raw_call)
"""

import inspect
import uuid
from typing import Any, Awaitable, Callable, Mapping, Union

import structlog
from pydantic import ValidationError

from resilient_llm.config import Settings
from resilient_llm.config import settings as default_settings
from resilient_llm.errors.codes import ErrorCode
from resilient_llm.errors.exceptions import (
    ApiError,
    create_bad_request_error,
    create_internal_error,
    create_parsing_error,
)
from resilient_llm.fallback.orchestrator import ModelFallbackOrchestrator
from resilient_llm.llm.anthropic_client import AnthropicClient
from resilient_llm.models.catalog import ModelCatalog, default_catalog, select_model_by_cost
from resilient_llm.models.llm_models import PromptPayload, ProviderRequest, ProviderResponse
from resilient_llm.models.plans import PLAN_PRESETS, circuit_breaker_config_for, get_fallback_plan
from resilient_llm.models.results import (
    CostInfo,
    ExecutionMetadata,
    InvokePolicy,
    InvokeResult,
    UsageInfo,
)
from resilient_llm.monitoring.metrics import (
    llm_cost_usd_total,
    llm_requests_total,
    llm_tokens_total,
)
from resilient_llm.resilience.cancellation import compute_dynamic_timeout
from resilient_llm.resilience.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitBreakerState,
)
from resilient_llm.resilience.rate_limiter import RateLimiter
from resilient_llm.resilience.retry import RetryConfig, RetryExecutor
from resilient_llm.usage.token_estimator import estimate_messages_token_count
from resilient_llm.usage.tracker import UsageSnapshot, UsageTracker

logger = structlog.get_logger(__name__)

RawCall = Callable[[str, ProviderRequest], Union[Awaitable[Any], Any]]


def _coerce_response(value: Any, model_id: str) -> ProviderResponse:
    if isinstance(value, ProviderResponse):
        return value
    if isinstance(value, Mapping):
        try:
            return ProviderResponse.model_validate(value)
        except ValidationError as e:
            raise create_parsing_error(
                f"Malformed provider payload from {model_id}",
                {"model": model_id, "errors": e.error_count()},
            ) from e
    raise create_parsing_error(
        f"Unexpected provider payload type from {model_id}: {type(value).__name__}",
        {"model": model_id},
    )


class ResilientLLMClient:
    """
    Resilient, cost-aware LLM client.

    Owns one circuit breaker registry, one model catalog, one rate limiter
    and one usage tracker; every invocation of this instance shares them.

    Attributes:
        settings: Configuration in effect
        catalog: Model descriptors and live metrics
        breakers: Circuit breakers keyed by ServiceIdentity
        rate_limiter: Admission control toward the provider
        usage_tracker: Token and cost totals
        orchestrator: Fallback orchestrator wired to the above
    """

    def __init__(
        self,
        raw_call: RawCall | None = None,
        *,
        settings: Settings | None = None,
        catalog: ModelCatalog | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        rate_limiter: RateLimiter | None = None,
        usage_tracker: UsageTracker | None = None,
    ):
        self.settings = settings or default_settings
        self._owned_client: AnthropicClient | None = None
        if raw_call is None:
            self._owned_client = AnthropicClient.from_settings(self.settings)
            raw_call = self._owned_client.generate
        self._raw_call = raw_call

        self.catalog = catalog or default_catalog()
        self.breakers = breakers or CircuitBreakerRegistry(
            CircuitBreakerConfig(
                failure_threshold=self.settings.CIRCUIT_FAILURE_THRESHOLD,
                reset_timeout=self.settings.CIRCUIT_RESET_TIMEOUT,
                half_open_success_threshold=self.settings.CIRCUIT_HALF_OPEN_SUCCESS_THRESHOLD,
            )
        )
        self.rate_limiter = rate_limiter or RateLimiter.from_settings(self.settings)
        self.usage_tracker = usage_tracker or UsageTracker()
        self.orchestrator = ModelFallbackOrchestrator(
            self.catalog,
            self.breakers,
            self.rate_limiter,
            RetryExecutor(self.breakers),
            provider_name=self.settings.PROVIDER_NAME,
        )
        self.retry_config = RetryConfig(
            max_retries=self.settings.RETRY_MAX_RETRIES,
            initial_delay=self.settings.RETRY_INITIAL_DELAY,
            max_delay=self.settings.RETRY_MAX_DELAY,
            backoff_factor=self.settings.RETRY_BACKOFF_FACTOR,
            jitter_factor=self.settings.RETRY_JITTER_FACTOR,
            overall_timeout=self.settings.RETRY_OVERALL_TIMEOUT,
        )

        logger.info(
            "ResilientLLMClient initialized",
            provider=self.settings.PROVIDER_NAME,
            models=len(self.catalog),
            max_concurrent=self.rate_limiter.max_concurrent,
            max_retries=self.retry_config.max_retries,
        )

    # === Invocation ===

    async def invoke(
        self,
        prompt: str | PromptPayload,
        policy: InvokePolicy | None = None,
    ) -> InvokeResult:
        """
        Run a prompt through the fallback plan of the policy's request class.

        Args:
            prompt: Text (sent as one user message) or a full PromptPayload
            policy: Request class, constraints, overrides and cancellation

        Returns:
            InvokeResult with content, serving model, usage, cost and provenance

        Raises:
            ApiError: Classified failure (branch on `code`)
        """
        policy = policy or InvokePolicy()
        payload = PromptPayload.from_text(prompt) if isinstance(prompt, str) else prompt
        request_id = uuid.uuid4().hex

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            return await self._invoke(payload, policy, request_id)

    def _resolve_retry_config(self, policy: InvokePolicy, request_id: str, counter: list[int]) -> RetryConfig:
        overrides = dict(policy.retry_overrides)
        user_hook = overrides.pop("on_retry", None)

        def on_retry(error: ApiError, attempt: int, delay: float) -> None:
            counter[0] += 1
            logger.info(
                "Retry scheduled",
                error_code=error.code.value,
                attempt=attempt,
                delay=round(delay, 3),
            )
            if user_hook is not None:
                user_hook(error, attempt, delay)

        try:
            return self.retry_config.with_overrides(on_retry=on_retry, **overrides)
        except (TypeError, ValueError) as e:
            raise create_bad_request_error(
                f"Invalid retry overrides: {e}",
                {"retry_overrides": sorted(overrides)},
                request_id,
            ) from e

    async def _invoke(self, payload: PromptPayload, policy: InvokePolicy, request_id: str) -> InvokeResult:
        request_class = policy.request_class
        preset = PLAN_PRESETS[request_class]
        max_tokens = payload.max_tokens or self.settings.MAX_TOKENS
        temperature = payload.temperature if payload.temperature is not None else self.settings.TEMPERATURE
        estimated_input = estimate_messages_token_count(payload.messages, payload.system)
        required = policy.required_capabilities

        requested_model = policy.model or payload.model
        initial_model = requested_model
        replaced_model: str | None = None

        if policy.cost_limit is not None:
            try:
                chosen = select_model_by_cost(
                    self.catalog,
                    estimated_input,
                    max_tokens,
                    required if required is not None else preset.required_capabilities,
                    max_cost=policy.cost_limit,
                )
            except ApiError as e:
                if e.code != ErrorCode.BAD_REQUEST:
                    raise
                logger.warning(
                    "Cost-based selection failed, keeping initial model",
                    cost_limit=policy.cost_limit,
                    reason=e.message,
                )
            else:
                requested = requested_model or preset.initial_model
                if chosen.id != requested:
                    replaced_model = requested
                initial_model = chosen.id
                logger.info(
                    "Selected model by cost",
                    model=chosen.id,
                    estimated_cost=chosen.estimate_cost(estimated_input, max_tokens),
                    cost_limit=policy.cost_limit,
                )

        timeout = policy.timeout
        if timeout is None and self.settings.DYNAMIC_TIMEOUT_ENABLED:
            timeout = compute_dynamic_timeout(
                estimated_input + max_tokens,
                base=self.settings.DYNAMIC_TIMEOUT_BASE,
                per_1k_tokens=self.settings.DYNAMIC_TIMEOUT_PER_1K_TOKENS,
                cap=self.settings.DYNAMIC_TIMEOUT_CAP,
            )

        plan = get_fallback_plan(request_class, required, initial_model, timeout)
        breaker_config = circuit_breaker_config_for(request_class, self.settings)
        retries = [0]
        retry_config = self._resolve_retry_config(policy, request_id, retries)

        def op_factory(model_id: str) -> Callable[[], Awaitable[ProviderResponse]]:
            request = ProviderRequest(
                model=model_id,
                messages=payload.messages,
                system=payload.system,
                max_tokens=max_tokens,
                temperature=temperature,
            )

            async def call() -> ProviderResponse:
                response = self._raw_call(model_id, request)
                if inspect.isawaitable(response):
                    response = await response
                return _coerce_response(response, model_id)

            return call

        logger.info(
            "Invoking model",
            request_class=request_class.value,
            initial_model=plan.initial_model,
            estimated_input_tokens=estimated_input,
            timeout=plan.timeout,
        )

        try:
            result = await self.orchestrator.run(
                plan,
                op_factory,
                retry_config,
                breaker_config,
                token=policy.cancellation_token,
                request_id=request_id,
            )
        except ApiError as e:
            if self.settings.PROMETHEUS_ENABLED:
                llm_requests_total.labels(
                    model=plan.initial_model, request_class=request_class.value, outcome=e.code.value
                ).inc()
            logger.error(
                "Invocation failed",
                error_code=e.code.value,
                error=e.message,
                retries=retries[0],
            )
            raise
        except Exception as e:
            logger.exception("Unexpected failure in resilience stack", error_class=type(e).__name__)
            raise create_internal_error(
                f"Unexpected {type(e).__name__}: {e}",
                {"error_class": type(e).__name__},
                request_id,
            ) from e

        response: ProviderResponse = result.value
        model = self.catalog.require(result.model_used)
        input_cost = response.input_tokens * model.cost_per_input_token
        output_cost = response.output_tokens * model.cost_per_output_token
        self.usage_tracker.record(response.input_tokens, response.output_tokens, model)

        if self.settings.PROMETHEUS_ENABLED:
            llm_requests_total.labels(
                model=model.id, request_class=request_class.value, outcome="success"
            ).inc()
            llm_tokens_total.labels(model=model.id, token_type="input").inc(response.input_tokens)
            llm_tokens_total.labels(model=model.id, token_type="output").inc(response.output_tokens)
            llm_cost_usd_total.labels(model=model.id, request_class=request_class.value).inc(
                input_cost + output_cost
            )

        # Fallback is judged against the first candidate that survived filtering
        fallback_used = result.fallback_used
        original_model = plan.initial_model if result.model_used != plan.initial_model else replaced_model

        logger.info(
            "Invocation succeeded",
            model=model.id,
            attempts=result.attempts,
            retries=retries[0],
            fallback_used=fallback_used,
            execution_time=round(result.execution_time, 3),
        )

        return InvokeResult(
            content=response.content,
            model_used=model.id,
            usage=UsageInfo(input_tokens=response.input_tokens, output_tokens=response.output_tokens),
            cost=CostInfo(
                input_cost=input_cost,
                output_cost=output_cost,
                total_cost=input_cost + output_cost,
            ),
            execution_metadata=ExecutionMetadata(
                attempts=result.attempts,
                execution_time_ms=int(result.execution_time * 1000),
                fallback_used=fallback_used,
                original_model=original_model,
                request_id=request_id,
            ),
            stop_reason=response.stop_reason,
        )

    # === Usage and circuit management ===

    def get_usage(self) -> UsageSnapshot:
        return self.usage_tracker.snapshot()

    def reset_usage(self) -> None:
        self.usage_tracker.reset()

    def circuit_status(self, model_id: str) -> CircuitBreakerState:
        """Snapshot of the breaker guarding `model_id`."""
        return self.breakers.get_state(self.orchestrator.service_for(model_id))

    def reset_circuit(self, model_id: str) -> None:
        self.breakers.reset(self.orchestrator.service_for(model_id))

    # === Lifecycle ===

    async def aclose(self) -> None:
        """Close the HTTP client if this facade created it."""
        if self._owned_client is not None:
            await self._owned_client.close()

    async def __aenter__(self) -> "ResilientLLMClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

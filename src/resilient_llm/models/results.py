"""
Invocation policy and result models.

OperationResult is the orchestrator's generic success value; InvokeResult
is what the facade returns to callers.
"""

from dataclasses import dataclass
from typing import Any, Generic, Mapping, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from resilient_llm.models.enums import Capability, RequestClass
from resilient_llm.resilience.cancellation import CancellationToken

T = TypeVar("T")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """
    Successful orchestrator run.

    Attributes:
        value: What the operation returned
        model_used: Model that served the request
        attempts: Provider invocations across all candidates, this one included
        execution_time: Seconds from start of the run to success
        initial_model: First candidate of the filtered plan
    """

    value: T
    model_used: str
    attempts: int
    execution_time: float
    initial_model: str

    @property
    def fallback_used(self) -> bool:
        return self.model_used != self.initial_model


class InvokePolicy(BaseModel):
    """
    Per-call policy for ResilientLLMClient.invoke.

    `retry_overrides` may name any RetryConfig field; unknown names are
    rejected when the call starts.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    request_class: RequestClass = Field(default=RequestClass.STANDARD)
    model: Optional[str] = Field(default=None, description="Initial model override")
    cost_limit: Optional[float] = Field(default=None, gt=0.0, description="USD ceiling per request")
    required_capabilities: Optional[frozenset[Capability]] = Field(default=None)
    timeout: Optional[float] = Field(default=None, gt=0.0, description="Whole-call budget in seconds")
    retry_overrides: Mapping[str, Any] = Field(default_factory=dict)
    cancellation_token: Optional[CancellationToken] = Field(default=None, exclude=True)


class UsageInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)


class CostInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_cost: float = Field(default=0.0, ge=0.0)
    output_cost: float = Field(default=0.0, ge=0.0)
    total_cost: float = Field(default=0.0, ge=0.0)


class ExecutionMetadata(BaseModel):
    """Provenance of one invocation."""

    model_config = ConfigDict(frozen=True)

    attempts: int = Field(..., ge=1, description="Provider invocations, all candidates")
    execution_time_ms: int = Field(..., ge=0)
    fallback_used: bool = Field(default=False)
    original_model: Optional[str] = Field(
        default=None,
        description="Model requested before fallback or cost selection replaced it",
    )
    request_id: Optional[str] = Field(default=None)


class InvokeResult(BaseModel):
    """Successful facade invocation."""

    model_config = ConfigDict(frozen=True)

    content: str
    model_used: str
    usage: UsageInfo
    cost: CostInfo
    execution_metadata: ExecutionMetadata
    stop_reason: Optional[str] = None

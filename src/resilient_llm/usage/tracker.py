"""
Token and cost accounting for one client facade.

Purely additive between explicit resets.
"""

import threading
from dataclasses import dataclass

import structlog

from resilient_llm.models.catalog import ModelDescriptor

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class UsageSnapshot:
    """Point-in-time copy of the accumulated usage."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class UsageTracker:
    """Thread-safe accumulator of tokens and USD cost."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._input_tokens = 0
        self._output_tokens = 0
        self._total_cost = 0.0

    def record(self, input_tokens: int, output_tokens: int, model: ModelDescriptor) -> float:
        """
        Add one completed call.

        Returns:
            Cost of this call in USD
        """
        if input_tokens < 0 or output_tokens < 0:
            raise ValueError("token counts must be >= 0")
        cost = model.estimate_cost(input_tokens, output_tokens)
        with self._lock:
            self._input_tokens += input_tokens
            self._output_tokens += output_tokens
            self._total_cost += cost
        logger.debug(
            "Recorded usage",
            model=model.id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=cost,
        )
        return cost

    def snapshot(self) -> UsageSnapshot:
        with self._lock:
            return UsageSnapshot(self._input_tokens, self._output_tokens, self._total_cost)

    def reset(self) -> None:
        with self._lock:
            self._input_tokens = 0
            self._output_tokens = 0
            self._total_cost = 0.0
        logger.info("Usage counters reset")

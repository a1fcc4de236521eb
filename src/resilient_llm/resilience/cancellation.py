"""
Cooperative cancellation and deadline racing.

Every suspension point in the stack (rate-limiter admission, backoff sleep,
provider call) goes through `run_with_deadline`, which selects on
(operation complete, deadline elapsed, cancellation signalled) and never
leaves the losing operation running.
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from resilient_llm.errors.codes import ErrorCode
from resilient_llm.errors.exceptions import DeadlineExceeded, OperationCancelled

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CancellationToken:
    """
    Caller-owned cancellation signal.

    Pass one token into ResilientLLMClient.invoke (via InvokePolicy); calling
    `cancel()` from anywhere unblocks every wait of that invocation, which
    then fails with `code` (TIMEOUT unless the caller picks another code).
    """

    def __init__(self, code: ErrorCode = ErrorCode.TIMEOUT):
        self._event = asyncio.Event()
        self._code = code
        self._reason: str | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def code(self) -> ErrorCode:
        return self._code

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "Operation cancelled by caller", code: ErrorCode | None = None) -> None:
        """Signal cancellation. Idempotent: the first reason/code wins."""
        if self._event.is_set():
            return
        if code is not None:
            self._code = code
        self._reason = reason
        self._event.set()
        self.clear_timeout()
        logger.info("Cancellation signalled", reason=reason, code=self._code.value)

    def cancel_after(self, seconds: float) -> None:
        """Arm (or re-arm) a timer that cancels this token after `seconds`."""
        self.clear_timeout()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(
            seconds, self.cancel, f"Operation timed out after {seconds}s"
        )

    def clear_timeout(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def wait(self) -> None:
        await self._event.wait()

    def to_error(self, request_id: str | None = None, **context: Any) -> OperationCancelled:
        return OperationCancelled(
            self._code,
            self._reason or "Operation cancelled",
            context={"cancelled": True, **context},
            request_id=request_id,
        )

    def raise_if_cancelled(self, request_id: str | None = None) -> None:
        if self.cancelled:
            raise self.to_error(request_id)


def _consume_result(task: "asyncio.Future[Any]") -> None:
    # Losing tasks are cancelled, not awaited; retrieve their outcome so the
    # loop does not report "exception was never retrieved".
    if not task.cancelled():
        task.exception()


async def run_with_deadline(
    operation: Awaitable[T],
    *,
    deadline: float | None = None,
    token: CancellationToken | None = None,
    timeout_error: Callable[[], DeadlineExceeded] | None = None,
    request_id: str | None = None,
) -> T:
    """
    Await `operation`, racing it against a deadline and a cancellation token.

    Args:
        operation: Coroutine or future to await
        deadline: Absolute event-loop time (`loop.time()`) after which to give up
        token: Cancellation token to observe
        timeout_error: Factory for the error raised when the deadline wins
        request_id: Correlation id for raised errors

    Returns:
        The operation's result

    Raises:
        ApiError: TIMEOUT (or `timeout_error()`) when the deadline elapses first,
            the token's code when cancellation wins
        Exception: Whatever the operation itself raises
    """
    if token is not None and token.cancelled:
        if asyncio.iscoroutine(operation):
            operation.close()
        raise token.to_error(request_id)

    if deadline is None and token is None:
        return await operation

    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(operation)
    waiters: set[asyncio.Future[Any]] = {task}
    cancel_waiter: asyncio.Future[Any] | None = None
    if token is not None:
        cancel_waiter = asyncio.ensure_future(token.wait())
        waiters.add(cancel_waiter)

    timeout = None if deadline is None else max(0.0, deadline - loop.time())
    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    task.add_done_callback(_consume_result)

    if token is not None and token.cancelled:
        raise token.to_error(request_id)
    if timeout_error is not None:
        raise timeout_error()
    raise DeadlineExceeded(
        "Operation exceeded its deadline", {"deadline": deadline}, request_id
    )


async def sleep_cancellable(
    delay: float,
    token: CancellationToken | None = None,
    request_id: str | None = None,
) -> None:
    """Sleep for `delay` seconds unless the token is cancelled first."""
    await run_with_deadline(asyncio.sleep(delay), token=token, request_id=request_id)


def compute_dynamic_timeout(
    estimated_tokens: int,
    base: float = 10.0,
    per_1k_tokens: float = 1.0,
    cap: float = 300.0,
) -> float:
    """Scale a timeout with request size: base + tokens/1000 * per_1k, capped."""
    return min(base + (max(estimated_tokens, 0) / 1000.0) * per_1k_tokens, cap)

"""Bounded retry with linearly increasing delay for outbound calls."""

import asyncio
from dataclasses import dataclass
import logging
from typing import Awaitable, Callable, TypeVar

from .errors import CallFailedError, TransientIOError, ValidationError

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and linear backoff schedule."""

    attempts: int = 3
    base_delay: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 1-based failed attempt."""
        return self.base_delay * attempt


DEFAULT_RETRY_POLICY = RetryPolicy()


def is_retryable(exc: BaseException) -> bool:
    """Transient I/O and value-validation failures are worth another try."""
    return isinstance(exc, (TransientIOError, ValidationError, asyncio.TimeoutError))


async def retry_async(
    call: Callable[[], Awaitable[T]],
    *,
    operation: str,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    should_retry: Callable[[BaseException], bool] = is_retryable,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``call`` until it succeeds or the policy is exhausted.

    Non-retryable exceptions propagate immediately. When every attempt fails,
    a persistent ValidationError is re-raised as-is so callers can degrade the
    unit of work; any other failure escalates as CallFailedError.
    """
    attempts = max(1, policy.attempts)
    last_error: BaseException | None = None

    for attempt in range(1, attempts + 1):
        try:
            return await call()
        except Exception as exc:
            if not should_retry(exc):
                raise
            last_error = exc
            if attempt < attempts:
                delay = policy.delay_for(attempt)
                log.warning(
                    f"{operation}: attempt {attempt}/{attempts} failed ({exc}), retrying in {delay:.1f}s"
                )
                await sleep(delay)

    assert last_error is not None
    if isinstance(last_error, ValidationError):
        raise last_error
    raise CallFailedError(operation, attempts, last_error) from last_error

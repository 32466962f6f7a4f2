"""Retry with bounded attempts, pluggable backoff and a failure observer.

Example:
    >>> from cadence.execution.retry import RetryExecutor, ExponentialBackoff
    >>>
    >>> executor = RetryExecutor(attempts=5, strategy=ExponentialBackoff(base_delay=0.5))
    >>> value = await executor.run(fetch_quote)

State machine::

    Attempting ──ok──▶ Succeeded
        │
        └─error─▶ last attempt / not retryable ──▶ Failed (error re-raised as-is)
                  otherwise ──▶ on_failure(error, n) ─▶ WaitingToRetry ─▶ Attempting
"""

from __future__ import annotations

import asyncio
import enum
import functools
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from cadence.core.awaitables import call_operation
from cadence.core.logging import get_logger
from cadence.core.validation import (
    require_callable,
    require_non_negative_duration,
    require_positive_int,
)

logger = get_logger(__name__)

T = TypeVar("T")


class RetryStrategy(ABC):
    """Abstract base for delay schedules between attempts."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Calculate delay after a failed attempt.

        Args:
            attempt: 1-based number of the attempt that just failed

        Returns:
            Delay in seconds before the next attempt
        """
        ...


@dataclass
class ConstantBackoff(RetryStrategy):
    """Same delay between every pair of attempts."""

    delay: float = 0.0

    def __post_init__(self) -> None:
        self.delay = require_non_negative_duration("delay", self.delay)

    def next_delay(self, attempt: int) -> float:
        return self.delay


@dataclass
class LinearBackoff(RetryStrategy):
    """Linear backoff strategy.

    Delay = base_delay + increment * (attempt - 1), capped at max_delay
    """

    base_delay: float = 1.0
    increment: float = 1.0
    max_delay: float = 30.0

    def next_delay(self, attempt: int) -> float:
        return min(self.base_delay + self.increment * (attempt - 1), self.max_delay)


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Exponential backoff with optional jitter.

    Delay = min(base_delay * multiplier ** (attempt - 1), max_delay) ± jitter

    Attributes:
        base_delay: Delay after the first failure
        max_delay: Maximum delay cap in seconds
        multiplier: Exponential multiplier (default: 2)
        jitter: Add randomness to prevent thundering herd
        jitter_range: Range of jitter as fraction of delay (0.0-1.0)
    """

    base_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.25

    def next_delay(self, attempt: int) -> float:
        delay = min(
            self.base_delay * (self.multiplier ** (attempt - 1)),
            self.max_delay,
        )

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = max(0.0, delay)

        return delay


class RetryPhase(str, enum.Enum):
    ATTEMPTING = "attempting"
    WAITING = "waiting_to_retry"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class RetryState:
    """Bookkeeping for one :meth:`RetryExecutor.run` call."""

    attempt: int = 0
    phase: RetryPhase = RetryPhase.ATTEMPTING
    last_error: BaseException | None = None
    errors: list[tuple[int, BaseException]] = field(default_factory=list)

    def record_failure(self, error: BaseException) -> None:
        self.last_error = error
        self.errors.append((self.attempt, error))


class RetryExecutor:
    """Re-invoke a fallible operation up to ``attempts`` times.

    Args:
        attempts: Total attempts including the first (``1`` = no retrying)
        delay: Seconds between attempts when no ``strategy`` is given
        on_failure: Called as ``on_failure(error, attempt)`` before each retry;
            not called for the final failure
        strategy: Delay schedule; overrides ``delay``
        retry_on: Exception types worth retrying; anything else fails at once
    """

    def __init__(
        self,
        attempts: int,
        delay: float = 0.0,
        on_failure: Callable[[BaseException, int], Any] | None = None,
        *,
        strategy: RetryStrategy | None = None,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
    ) -> None:
        self.attempts = require_positive_int("attempts", attempts)
        self.strategy = strategy or ConstantBackoff(
            require_non_negative_duration("delay", delay)
        )
        self.on_failure = require_callable("on_failure", on_failure) if on_failure else None
        self.retry_on = retry_on
        self.last_state: RetryState | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Any = None,
        on_failure: Callable[[BaseException, int], Any] | None = None,
    ) -> RetryExecutor:
        """Build an executor from ``CadenceSettings.retry_attempts/retry_delay``."""
        from cadence.core.settings import get_settings

        settings = settings or get_settings()
        return cls(settings.retry_attempts, settings.retry_delay, on_failure)

    async def run(self, operation: Callable[[], Any]) -> Any:
        """Run ``operation`` until it succeeds or the attempts run out.

        Returns:
            The first successful result.

        Raises:
            The exception from the final attempt, unchanged.
        """
        state = RetryState()
        self.last_state = state

        while True:
            state.attempt += 1
            state.phase = RetryPhase.ATTEMPTING
            try:
                result = await call_operation(operation)
            except Exception as e:
                state.record_failure(e)

                if state.attempt >= self.attempts or not isinstance(e, self.retry_on):
                    state.phase = RetryPhase.FAILED
                    logger.warning(
                        "retry.exhausted",
                        attempt=state.attempt,
                        attempts=self.attempts,
                        error=repr(e),
                    )
                    raise

                delay = self.strategy.next_delay(state.attempt)
                logger.info(
                    "retry.attempt_failed",
                    attempt=state.attempt,
                    attempts=self.attempts,
                    delay=delay,
                    error=repr(e),
                )
                if self.on_failure is not None:
                    await call_operation(self.on_failure, e, state.attempt)

                state.phase = RetryPhase.WAITING
                await asyncio.sleep(delay)
            else:
                state.phase = RetryPhase.SUCCEEDED
                return result


def with_retry(
    attempts: int,
    delay: float = 0.0,
    on_failure: Callable[[BaseException, int], Any] | None = None,
    *,
    strategy: RetryStrategy | None = None,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator factory adding retry logic to an async function.

    Example:
        >>> @with_retry(attempts=3, delay=0.2)
        ... async def fetch_quote(symbol):
        ...     return await client.quote(symbol)
    """
    executor = RetryExecutor(
        attempts, delay, on_failure, strategy=strategy, retry_on=retry_on
    )

    def decorator(func: Callable[..., T]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await executor.run(functools.partial(func, *args, **kwargs))

        return wrapper

    return decorator


__all__ = [
    "RetryStrategy",
    "ConstantBackoff",
    "LinearBackoff",
    "ExponentialBackoff",
    "RetryPhase",
    "RetryState",
    "RetryExecutor",
    "with_retry",
]

"""Cadence Execution - asynchronous flow-control primitives.

WHY
───
Fan-out, rate limiting and retries are where async code quietly goes
wrong: results land in the wrong order, timers leak, failures vanish
into un-awaited tasks.  Each primitive here owns its timers, in-flight
set and ordering rules so callers only supply operations.

ARCHITECTURE
────────────
::

    bounded.py      BoundedConcurrencyExecutor  ─ capped, ordered fan-out
    rate_limit.py   Debouncer / WindowThrottle / KeyedThrottle
    retry.py        RetryExecutor + backoff strategies
    recovery.py     FailureHandlerChain (Handled / NotHandled)

    The primitives never call each other; compose them at the call site,
    e.g. run_bounded([partial(retry.run, op) for op in ops], 8).
"""

from cadence.execution.bounded import (
    UNBOUNDED,
    BoundedConcurrencyExecutor,
    Slot,
    run_bounded,
)
from cadence.execution.rate_limit import (
    Debouncer,
    KeyedThrottle,
    WindowThrottle,
    debounce,
    keyed_throttle,
    throttle,
)
from cadence.execution.recovery import (
    FailureHandlerChain,
    Handled,
    HandlerOutcome,
    NotHandled,
    run_with_handlers,
)
from cadence.execution.retry import (
    ConstantBackoff,
    ExponentialBackoff,
    LinearBackoff,
    RetryExecutor,
    RetryPhase,
    RetryState,
    RetryStrategy,
    with_retry,
)

__all__ = [
    # Bounded concurrency
    "UNBOUNDED",
    "BoundedConcurrencyExecutor",
    "Slot",
    "run_bounded",
    # Rate limiting
    "Debouncer",
    "KeyedThrottle",
    "WindowThrottle",
    "debounce",
    "keyed_throttle",
    "throttle",
    # Recovery
    "FailureHandlerChain",
    "Handled",
    "HandlerOutcome",
    "NotHandled",
    "run_with_handlers",
    # Retry
    "ConstantBackoff",
    "ExponentialBackoff",
    "LinearBackoff",
    "RetryExecutor",
    "RetryPhase",
    "RetryState",
    "RetryStrategy",
    "with_retry",
]

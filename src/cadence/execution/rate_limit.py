"""Rate Limiting - debounce and fixed-window throttling of repeated calls.

Manifesto:
Chatty callers (UI events, file watchers, webhook storms) invoke the same
function far more often than the function needs to run.  These wrappers
sit in front of the function and decide, per call, whether it runs now,
later, or is folded into a call that runs later.  Callers are never
blocked: every call returns an ``asyncio.Future`` immediately.

ARCHITECTURE
────────────
::

    _RateLimiterBase                 ─ loop binding, lock, firing, futures
      ├── Debouncer                  ─ trailing call after a quiet period
      └── _FixedWindowBase           ─ quota per window + one deferred call
            ├── WindowThrottle       ─ a single window
            └── KeyedThrottle        ─ one window per key(*args, **kwargs)

    Per-window state (_WindowState)
    ───────────────────────────────
    quota_remaining  window_start  timer  last_args  waiters

    call ─▶ quota left? ── yes ─▶ run now, future gets this run's result
                 │
                 no ─▶ remember args (last write wins), join waiters,
                       schedule ONE timer at window_start + window

    All limiters are thread-safe (internal Lock) and bound to the event
    loop of their first call.

BEST PRACTICES
──────────────
- Use ``Debouncer`` when only the final call of a burst matters.
- Use ``WindowThrottle`` for "at most N runs per interval" without dropping
  the trailing call.
- Use ``KeyedThrottle`` when the budget is per entity (per-user,
  per-document); supply a deterministic ``key`` function.
- Call ``cancel()`` or ``flush()`` on shutdown so no timer outlives you.

Coalescing contract:
    Futures returned for calls that were folded into a later firing resolve
    with *that firing's* result (or exception).  A debounced call that is
    superseded never resolves on its own.

Related modules:
    bounded.py - bounded-concurrency fan-out
    retry.py   - backoff on transient failures

Example::

    save = Debouncer(write_draft, quiet_period=0.5)
    save(doc_v1)
    fut = save(doc_v2)          # doc_v1 is never written
    await fut                   # result of write_draft(doc_v2)

Tags:
    cadence, execution, rate-limit, throttle, debounce

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import threading
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from typing import Any

from cadence.core.logging import get_logger
from cadence.core.validation import (
    require_callable,
    require_non_negative_duration,
    require_positive_duration,
    require_positive_int,
)

logger = get_logger(__name__)

_CallArgs = tuple[tuple[Any, ...], dict[str, Any]]


def _resolve(waiters: list[asyncio.Future], result: Any) -> None:
    for waiter in waiters:
        if not waiter.done():
            waiter.set_result(result)


def _reject(waiters: list[asyncio.Future], error: BaseException) -> None:
    for waiter in waiters:
        if not waiter.done():
            waiter.set_exception(error)


def _cancel_all(waiters: list[asyncio.Future]) -> int:
    cancelled = 0
    for waiter in waiters:
        if waiter.cancel():
            cancelled += 1
    return cancelled


class _RateLimiterBase:
    """Shared plumbing: loop binding, locking and firing the wrapped function."""

    _kind = "rate_limit"

    def __init__(self, fn: Callable[..., Any]) -> None:
        self._fn = require_callable("fn", fn)
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task] = set()
        functools.update_wrapper(self, fn, updated=())

    def _bind_loop(self) -> asyncio.AbstractEventLoop:
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._loop is None or self._loop.is_closed():
                self._loop = loop
            elif self._loop is not loop:
                raise RuntimeError(
                    f"{type(self).__name__} is bound to a different event loop"
                )
        return loop

    def _fire(self, args: tuple, kwargs: dict, waiters: list[asyncio.Future]) -> None:
        """Run the wrapped function and route its outcome to ``waiters``.

        Must be called without holding ``_lock`` so the function may call
        back into this limiter.
        """
        try:
            result = self._fn(*args, **kwargs)
        except Exception as exc:
            logger.warning(f"{self._kind}.call_failed", error=repr(exc))
            _reject(waiters, exc)
            return

        if inspect.isawaitable(result):
            task = self._loop.create_task(self._settle(result, waiters))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            _resolve(waiters, result)

    async def _settle(self, awaitable: Any, waiters: list[asyncio.Future]) -> None:
        try:
            result = await awaitable
        except asyncio.CancelledError:
            _cancel_all(waiters)
            raise
        except Exception as exc:
            logger.warning(f"{self._kind}.call_failed", error=repr(exc))
            _reject(waiters, exc)
        else:
            _resolve(waiters, result)

    @property
    def running(self) -> int:
        """Firings whose async result has not settled yet."""
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every started firing has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# =============================================================================
# Debounce
# =============================================================================


class Debouncer(_RateLimiterBase):
    """Trailing-edge debounce.

    Each call cancels the pending firing and schedules a new one
    ``quiet_period`` seconds later with the newest arguments. The firing
    happens only once the calls stop for a full quiet period.

    Attributes:
        quiet_period: Seconds that must pass without calls before firing
    """

    _kind = "debounce"

    def __init__(self, fn: Callable[..., Any], quiet_period: float) -> None:
        super().__init__(fn)
        self.quiet_period = require_non_negative_duration("quiet_period", quiet_period)
        self._timer: asyncio.TimerHandle | None = None
        self._last_args: _CallArgs | None = None
        self._waiters: list[asyncio.Future] = []

    def __call__(self, *args: Any, **kwargs: Any) -> asyncio.Future:
        loop = self._bind_loop()
        future = loop.create_future()
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._last_args = (args, kwargs)
            self._waiters.append(future)
            self._timer = loop.call_later(self.quiet_period, self._on_timer)
        return future

    def _take_pending(self) -> tuple[tuple, dict, list[asyncio.Future]] | None:
        # caller holds _lock
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._last_args is None:
            return None
        args, kwargs = self._last_args
        waiters = self._waiters
        self._last_args = None
        self._waiters = []
        return args, kwargs, waiters

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
            pending = self._take_pending()
        if pending is not None:
            args, kwargs, waiters = pending
            logger.debug("debounce.fired", coalesced=len(waiters))
            self._fire(args, kwargs, waiters)

    @property
    def pending(self) -> bool:
        """True while a firing is scheduled."""
        with self._lock:
            return self._last_args is not None

    def flush(self) -> asyncio.Future | None:
        """Fire the pending call now instead of waiting out the quiet period.

        Returns the future of the most recent call, or None when nothing was
        pending.
        """
        with self._lock:
            pending = self._take_pending()
        if pending is None:
            return None
        args, kwargs, waiters = pending
        logger.debug("debounce.flushed", coalesced=len(waiters))
        self._fire(args, kwargs, waiters)
        return waiters[-1]

    def cancel(self) -> int:
        """Drop the pending call; its futures are cancelled.

        Returns:
            Number of futures cancelled.
        """
        with self._lock:
            pending = self._take_pending()
        if pending is None:
            return 0
        cancelled = _cancel_all(pending[2])
        logger.debug("debounce.cancelled", cancelled=cancelled)
        return cancelled


# =============================================================================
# Fixed-window throttle
# =============================================================================


@dataclass
class _WindowState:
    """Mutable per-window record; only touched under the owner's lock."""

    quota_remaining: int
    window_start: float | None = None
    timer: asyncio.TimerHandle | None = None
    last_args: _CallArgs | None = None
    waiters: list[asyncio.Future] = field(default_factory=list)

    def roll(self, now: float, window: float, limit: int) -> None:
        """Start over once the window has elapsed and nothing is deferred."""
        if (
            self.timer is None
            and self.window_start is not None
            and now - self.window_start >= window
        ):
            self.quota_remaining = limit
            self.window_start = None

    def is_idle(self, now: float, window: float) -> bool:
        if self.timer is not None or self.last_args is not None:
            return False
        return self.window_start is None or now - self.window_start >= window

    def take_pending(
        self, now: float, limit: int
    ) -> tuple[tuple, dict, list[asyncio.Future]] | None:
        """Detach the deferred call; it opens and uses the next window."""
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if self.last_args is None:
            return None
        args, kwargs = self.last_args
        waiters = self.waiters
        self.last_args = None
        self.waiters = []
        self.window_start = now
        self.quota_remaining = limit - 1
        return args, kwargs, waiters


class _FixedWindowBase(_RateLimiterBase):
    """Fixed-window quota with a single trailing deferred call per window."""

    _kind = "throttle"

    def __init__(self, fn: Callable[..., Any], limit: int, window: float) -> None:
        super().__init__(fn)
        self.limit = require_positive_int("limit", limit)
        self.window = require_positive_duration("window", window)
        self._states: dict[Hashable, _WindowState] = {}

    def _now(self) -> float:
        return self._loop.time() if self._loop is not None else 0.0

    def _submit(self, key: Hashable, args: tuple, kwargs: dict) -> asyncio.Future:
        loop = self._bind_loop()
        future = loop.create_future()
        now = loop.time()

        with self._lock:
            state = self._states.get(key)
            if state is None:
                state = self._states[key] = _WindowState(quota_remaining=self.limit)
            state.roll(now, self.window, self.limit)

            run_now = state.quota_remaining > 0
            if run_now:
                if state.window_start is None:
                    state.window_start = now
                state.quota_remaining -= 1
            else:
                state.last_args = (args, kwargs)
                state.waiters.append(future)
                if state.timer is None:
                    delay = max(0.0, state.window_start + self.window - now)
                    state.timer = loop.call_later(delay, self._on_timer, key)
                    logger.debug(f"{self._kind}.deferred", key=repr(key), delay=delay)
            self._after_submit(now)

        if run_now:
            self._fire(args, kwargs, [future])
        return future

    def _after_submit(self, now: float) -> None:
        """Hook run under the lock after every call."""

    def _on_timer(self, key: Hashable) -> None:
        with self._lock:
            state = self._states.get(key)
            if state is None:
                return
            state.timer = None
            pending = state.take_pending(self._now(), self.limit)
        if pending is not None:
            args, kwargs, waiters = pending
            logger.debug(f"{self._kind}.fired", key=repr(key), coalesced=len(waiters))
            self._fire(args, kwargs, waiters)

    def _flush_key(self, key: Hashable) -> asyncio.Future | None:
        with self._lock:
            state = self._states.get(key)
            pending = state.take_pending(self._now(), self.limit) if state else None
        if pending is None:
            return None
        args, kwargs, waiters = pending
        logger.debug(f"{self._kind}.flushed", key=repr(key), coalesced=len(waiters))
        self._fire(args, kwargs, waiters)
        return waiters[-1]

    def _cancel_key(self, key: Hashable) -> int:
        with self._lock:
            state = self._states.get(key)
            if state is None or state.last_args is None:
                return 0
            if state.timer is not None:
                state.timer.cancel()
                state.timer = None
            waiters = state.waiters
            state.last_args = None
            state.waiters = []
        cancelled = _cancel_all(waiters)
        logger.debug(f"{self._kind}.cancelled", key=repr(key), cancelled=cancelled)
        return cancelled

    def _quota_for(self, key: Hashable) -> int:
        with self._lock:
            state = self._states.get(key)
            if state is None:
                return self.limit
            state.roll(self._now(), self.window, self.limit)
            return state.quota_remaining

    def _pending_for(self, key: Hashable) -> bool:
        with self._lock:
            state = self._states.get(key)
            return state is not None and state.last_args is not None


_SINGLE_WINDOW = "__window__"
_ALL_KEYS: Any = object()


class WindowThrottle(_FixedWindowBase):
    """At most ``limit`` immediate runs per ``window`` seconds.

    Calls beyond the quota are folded into one deferred run at the end of
    the window, carrying the newest call's arguments. Extra calls never push
    that run later.

    Attributes:
        limit: Immediate executions allowed per window
        window: Window length in seconds
    """

    def __call__(self, *args: Any, **kwargs: Any) -> asyncio.Future:
        return self._submit(_SINGLE_WINDOW, args, kwargs)

    @property
    def quota_remaining(self) -> int:
        return self._quota_for(_SINGLE_WINDOW)

    @property
    def pending(self) -> bool:
        """True while a deferred run is scheduled."""
        return self._pending_for(_SINGLE_WINDOW)

    def flush(self) -> asyncio.Future | None:
        """Run the deferred call now; a fresh window starts at this moment."""
        return self._flush_key(_SINGLE_WINDOW)

    def cancel(self) -> int:
        """Drop the deferred call and cancel its futures."""
        return self._cancel_key(_SINGLE_WINDOW)


class KeyedThrottle(_FixedWindowBase):
    """``WindowThrottle`` with independent state per key.

    ``key`` receives the call's arguments and must return a hashable value
    that is equal for logically equal argument sets. Keys whose window has
    expired with nothing deferred are evicted every ``cleanup_interval``
    calls.

    Example:
        >>> notify = KeyedThrottle(send_alert, limit=1, window=60.0,
        ...                        key=lambda user_id, message: user_id)
    """

    _kind = "keyed_throttle"

    def __init__(
        self,
        fn: Callable[..., Any],
        limit: int,
        window: float,
        key: Callable[..., Hashable],
        cleanup_interval: int = 1000,
    ) -> None:
        super().__init__(fn, limit, window)
        self._key = require_callable("key", key)
        self.cleanup_interval = require_positive_int("cleanup_interval", cleanup_interval)
        self._calls_since_cleanup = 0

    @classmethod
    def from_settings(
        cls,
        fn: Callable[..., Any],
        limit: int,
        window: float,
        key: Callable[..., Hashable],
        settings: Any = None,
    ) -> KeyedThrottle:
        """Build a limiter using ``CadenceSettings.keyed_cleanup_interval``."""
        from cadence.core.settings import get_settings

        settings = settings or get_settings()
        return cls(fn, limit, window, key, cleanup_interval=settings.keyed_cleanup_interval)

    def __call__(self, *args: Any, **kwargs: Any) -> asyncio.Future:
        return self._submit(self._key(*args, **kwargs), args, kwargs)

    def _after_submit(self, now: float) -> None:
        self._calls_since_cleanup += 1
        if self._calls_since_cleanup >= self.cleanup_interval:
            self._calls_since_cleanup = 0
            self._evict_idle_locked(now)

    def _evict_idle_locked(self, now: float) -> int:
        idle = [k for k, state in self._states.items() if state.is_idle(now, self.window)]
        for k in idle:
            del self._states[k]
        if idle:
            logger.debug("keyed_throttle.evicted", keys=len(idle))
        return len(idle)

    def evict_idle(self) -> int:
        """Drop state for keys with an expired window and nothing deferred."""
        with self._lock:
            return self._evict_idle_locked(self._now())

    @property
    def keys(self) -> list[Hashable]:
        with self._lock:
            return list(self._states)

    def quota_remaining(self, key: Hashable) -> int:
        return self._quota_for(key)

    def is_pending(self, key: Hashable) -> bool:
        return self._pending_for(key)

    def flush(self, key: Hashable = _ALL_KEYS) -> list[asyncio.Future]:
        """Run deferred calls now, for one key or (no argument) for every key.

        ``None`` is an ordinary key here, so ``flush(None)`` only touches calls
        whose key function returned None.
        """
        targets = self.keys if key is _ALL_KEYS else [key]
        flushed = [self._flush_key(k) for k in targets]
        return [f for f in flushed if f is not None]

    def cancel(self, key: Hashable = _ALL_KEYS) -> int:
        """Drop deferred calls for one key or (no argument) every key."""
        targets = self.keys if key is _ALL_KEYS else [key]
        return sum(self._cancel_key(k) for k in targets)


# =============================================================================
# Decorator forms
# =============================================================================


def debounce(quiet_period: float) -> Callable[[Callable[..., Any]], Debouncer]:
    """Decorator form of :class:`Debouncer`.

    Example:
        >>> @debounce(0.25)
        ... async def reindex(path):
        ...     ...
    """
    require_non_negative_duration("quiet_period", quiet_period)

    def decorator(fn: Callable[..., Any]) -> Debouncer:
        return Debouncer(fn, quiet_period)

    return decorator


def throttle(limit: int, window: float) -> Callable[[Callable[..., Any]], WindowThrottle]:
    """Decorator form of :class:`WindowThrottle`."""
    require_positive_int("limit", limit)
    require_positive_duration("window", window)

    def decorator(fn: Callable[..., Any]) -> WindowThrottle:
        return WindowThrottle(fn, limit, window)

    return decorator


def keyed_throttle(
    limit: int,
    window: float,
    key: Callable[..., Hashable],
    cleanup_interval: int = 1000,
) -> Callable[[Callable[..., Any]], KeyedThrottle]:
    """Decorator form of :class:`KeyedThrottle`."""
    require_positive_int("limit", limit)
    require_positive_duration("window", window)
    require_callable("key", key)

    def decorator(fn: Callable[..., Any]) -> KeyedThrottle:
        return KeyedThrottle(fn, limit, window, key, cleanup_interval=cleanup_interval)

    return decorator


__all__ = [
    "Debouncer",
    "WindowThrottle",
    "KeyedThrottle",
    "debounce",
    "throttle",
    "keyed_throttle",
]

"""Bounded Concurrency Executor - ordered fan-out with a hard in-flight cap.

WHY
───
Fanning out hundreds of awaitables with a bare ``asyncio.gather`` starts
all of them at once; bounding it with a semaphore still creates every task
up front and keeps going after the first failure.  This executor admits
operations one by one in input order, never lets more than
``concurrency_limit`` run at once, stops admitting on the first failure and
records each outcome in the slot reserved for its input index.

ARCHITECTURE
────────────
::

    BoundedConcurrencyExecutor(concurrency_limit)
      ├── .run(operations)     ─ admission loop + asyncio.wait(FIRST_COMPLETED)
      ├── .map(fn, items)      ─ run(fn(item) for item in items)
      ├── .cancel() / .reset() ─ stop / resume admission
      └── Slot(index, outcome) ─ Ok(value) | Err(error), one per input

    admission loop
    ──────────────
    while queue or in-flight:
        admit while  len(in_flight) < limit  and  no failure  and  not cancelled
        wait for any in-flight task  →  settle its slot by index

    outcome
    ───────
    failure anywhere   → OperationError(index=lowest failing index)
    cancelled early    → ExecutionCancelled(completed, total)
    otherwise          → [slot.outcome.value for slot in slots]

Related modules:
    retry.py       - re-invoke a single fallible operation
    rate_limit.py  - debounce / throttle repeated invocations

Example::

    executor = BoundedConcurrencyExecutor(concurrency_limit=4)
    pages = await executor.run([partial(fetch_page, n) for n in range(20)])
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from functools import partial
from typing import Any, Generic, TypeVar

from cadence.core.awaitables import call_operation
from cadence.core.errors import ConfigurationError, ExecutionCancelled, OperationError
from cadence.core.logging import get_logger
from cadence.core.result import Err, Ok, Result, collect_results, first_error
from cadence.core.validation import require_positive_int

logger = get_logger(__name__)

T = TypeVar("T")


class _Unbounded:
    """Sentinel type for an explicit "no concurrency cap" choice."""

    _instance: _Unbounded | None = None

    def __new__(cls) -> _Unbounded:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNBOUNDED"

    def __reduce__(self) -> str:
        return "UNBOUNDED"


UNBOUNDED = _Unbounded()


def _validate_limit(concurrency_limit: Any) -> int | _Unbounded:
    if concurrency_limit is UNBOUNDED:
        return UNBOUNDED
    if concurrency_limit is None:
        raise ConfigurationError(
            "concurrency_limit is required; pass UNBOUNDED to opt out of a cap",
            option="concurrency_limit",
            value=None,
        )
    return require_positive_int("concurrency_limit", concurrency_limit)


@dataclass
class Slot(Generic[T]):
    """Result reservation for the operation at ``index``."""

    index: int
    outcome: Result[T] | None = None

    @property
    def settled(self) -> bool:
        return self.outcome is not None

    def settle(self, task: asyncio.Task) -> None:
        """Record how ``task`` finished."""
        if task.cancelled():
            self.outcome = Err(asyncio.CancelledError())
        elif task.exception() is not None:
            self.outcome = Err(task.exception())
        else:
            self.outcome = Ok(task.result())


class BoundedConcurrencyExecutor:
    """Run operations with at most ``concurrency_limit`` in flight.

    The limit applies per :meth:`run` call. ``cancel()`` affects every run
    currently active on this executor (and later ones, until ``reset()``).

    Parameters
    ----------
    concurrency_limit : int | UNBOUNDED
        Maximum simultaneously running operations. Required; ``UNBOUNDED``
        admits everything at once.
    """

    def __init__(self, concurrency_limit: int | _Unbounded) -> None:
        self._limit = _validate_limit(concurrency_limit)
        self._cancelled = False
        self._running: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Any = None) -> BoundedConcurrencyExecutor:
        """Build an executor using ``CadenceSettings.default_concurrency``."""
        from cadence.core.settings import get_settings

        settings = settings or get_settings()
        return cls(settings.default_concurrency)

    # ── Inspection ───────────────────────────────────────────────────

    @property
    def concurrency_limit(self) -> int | _Unbounded:
        return self._limit

    @property
    def in_flight(self) -> int:
        """Operations currently running across all active runs."""
        return len(self._running)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    # ── Control ──────────────────────────────────────────────────────

    def cancel(self) -> None:
        """Stop admitting queued operations; admitted ones run to completion."""
        if not self._cancelled:
            self._cancelled = True
            logger.info("bounded.cancel_requested", in_flight=self.in_flight)

    def reset(self) -> None:
        """Clear a previous :meth:`cancel` so new runs admit work again."""
        self._cancelled = False

    # ── Execution ────────────────────────────────────────────────────

    async def run(self, operations: Iterable[Callable[[], Any]]) -> list[Any]:
        """Run every operation and return their results in input order.

        Raises:
            OperationError: an operation failed; ``index`` is the lowest
                failing input index and ``cause`` its exception. Raised only
                after every admitted operation has settled.
            ExecutionCancelled: :meth:`cancel` left operations unadmitted.
        """
        ops = list(operations)
        total = len(ops)
        if total == 0:
            return []

        limit = total if self._limit is UNBOUNDED else self._limit
        slots: list[Slot] = [Slot(index=i) for i in range(total)]
        in_flight: dict[asyncio.Task, int] = {}
        next_index = 0
        failed = False
        run_id = uuid.uuid4().hex[:12]

        logger.info(
            "bounded.start",
            run_id=run_id,
            items=total,
            concurrency_limit=repr(self._limit) if self._limit is UNBOUNDED else limit,
        )

        try:
            while True:
                while (
                    not failed
                    and not self._cancelled
                    and next_index < total
                    and len(in_flight) < limit
                ):
                    task = asyncio.ensure_future(call_operation(ops[next_index]))
                    in_flight[task] = next_index
                    self._running.add(task)
                    next_index += 1

                if not in_flight:
                    break

                done, _ = await asyncio.wait(
                    in_flight, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    index = in_flight.pop(task)
                    self._running.discard(task)
                    slot = slots[index]
                    slot.settle(task)
                    if slot.outcome.is_err():
                        failed = True
                        logger.warning(
                            "bounded.item_failed",
                            run_id=run_id,
                            index=index,
                            error=repr(slot.outcome.error),
                        )
        except asyncio.CancelledError:
            for task in in_flight:
                task.cancel()
            await asyncio.gather(*in_flight, return_exceptions=True)
            self._running.difference_update(in_flight)
            logger.info("bounded.aborted", run_id=run_id, admitted=next_index, total=total)
            raise

        failure = first_error([slot.outcome for slot in slots])
        if failure is not None:
            index, error = failure
            raise OperationError(
                f"operation {index} failed: {error!r}",
                index=index,
                cause=error,
            ).with_context(component="bounded")

        if next_index < total:
            completed = sum(1 for slot in slots if slot.settled)
            logger.info(
                "bounded.cancelled", run_id=run_id, completed=completed, total=total
            )
            raise ExecutionCancelled(
                f"cancelled after {completed} of {total} operations",
                completed=completed,
                total=total,
            ).with_context(component="bounded")

        logger.info("bounded.complete", run_id=run_id, items=total)
        return collect_results([slot.outcome for slot in slots]).unwrap()

    async def map(self, fn: Callable[[Any], Any], items: Iterable[Any]) -> list[Any]:
        """Apply ``fn`` to each item under this executor's limit."""
        return await self.run([partial(fn, item) for item in items])


async def run_bounded(
    operations: Iterable[Callable[[], Any]],
    concurrency_limit: int | _Unbounded,
) -> list[Any]:
    """One-shot form of :meth:`BoundedConcurrencyExecutor.run`.

    The limit is validated before any operation is touched.
    """
    return await BoundedConcurrencyExecutor(concurrency_limit).run(operations)


__all__ = [
    "UNBOUNDED",
    "Slot",
    "BoundedConcurrencyExecutor",
    "run_bounded",
]

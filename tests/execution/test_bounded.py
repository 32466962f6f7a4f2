"""Tests for BoundedConcurrencyExecutor - capped, input-ordered fan-out."""

from __future__ import annotations

import asyncio
import pickle
import random

import pytest

from cadence.core.errors import ConfigurationError, ExecutionCancelled, OperationError
from cadence.execution.bounded import (
    UNBOUNDED,
    BoundedConcurrencyExecutor,
    Slot,
    run_bounded,
)
from cadence.core.result import Err, Ok
from cadence.core.settings import CadenceSettings


# ── Configuration ────────────────────────────────────────────────────────


class TestConfiguration:
    @pytest.mark.parametrize("limit", [0, -1, 1.5, "4", True, None])
    def test_invalid_limit_rejected(self, limit):
        with pytest.raises(ConfigurationError) as exc_info:
            BoundedConcurrencyExecutor(limit)
        assert exc_info.value.option == "concurrency_limit"

    @pytest.mark.asyncio
    async def test_run_bounded_rejects_before_starting(self):
        started = []

        async def op():
            started.append(1)

        with pytest.raises(ConfigurationError):
            await run_bounded([op, op], 0)
        assert started == []

    def test_unbounded_is_explicit_sentinel(self):
        executor = BoundedConcurrencyExecutor(UNBOUNDED)
        assert executor.concurrency_limit is UNBOUNDED
        assert repr(UNBOUNDED) == "UNBOUNDED"

    def test_unbounded_survives_pickle(self):
        assert pickle.loads(pickle.dumps(UNBOUNDED)) is UNBOUNDED

    def test_from_settings(self):
        executor = BoundedConcurrencyExecutor.from_settings(
            CadenceSettings(default_concurrency=7)
        )
        assert executor.concurrency_limit == 7


# ── Slot ─────────────────────────────────────────────────────────────────


class TestSlot:
    @pytest.mark.asyncio
    async def test_settle_success(self):
        async def op():
            return "v"

        task = asyncio.ensure_future(op())
        await task
        slot = Slot(index=3)
        assert not slot.settled
        slot.settle(task)
        assert slot.settled
        assert slot.outcome == Ok("v")

    @pytest.mark.asyncio
    async def test_settle_failure(self):
        error = ValueError("bad")

        async def op():
            raise error

        task = asyncio.ensure_future(op())
        await asyncio.gather(task, return_exceptions=True)
        slot = Slot(index=0)
        slot.settle(task)
        assert isinstance(slot.outcome, Err)
        assert slot.outcome.error is error


# ── Ordering and limits ──────────────────────────────────────────────────


class TestRun:
    @pytest.mark.asyncio
    async def test_empty_input(self):
        executor = BoundedConcurrencyExecutor(3)
        assert await executor.run([]) == []
        assert executor.in_flight == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [1, 2, 3, 5, 16])
    async def test_never_exceeds_limit(self, tracker, limit):
        ops = [tracker.op(i, delay=random.uniform(0.001, 0.01)) for i in range(12)]
        results = await BoundedConcurrencyExecutor(limit).run(ops)
        assert results == list(range(12))
        assert tracker.max_active <= limit

    @pytest.mark.asyncio
    async def test_output_follows_input_order_not_completion(self, tracker):
        # later operations finish first
        ops = [tracker.op(i, delay=0.05 - i * 0.01) for i in range(5)]
        results = await BoundedConcurrencyExecutor(5).run(ops)
        assert results == [0, 1, 2, 3, 4]
        assert tracker.finished[0] == 4

    @pytest.mark.asyncio
    async def test_equal_values_keep_their_slots(self, tracker):
        shared = object()
        ops = [
            tracker.op(0, value=shared, delay=0.03),
            tracker.op(1, value="x", delay=0.01),
            tracker.op(2, value=shared, delay=0.001),
            tracker.op(3, value="x", delay=0.02),
        ]
        results = await BoundedConcurrencyExecutor(2).run(ops)
        assert results == [shared, "x", shared, "x"]

    @pytest.mark.asyncio
    async def test_limit_one_is_sequential(self, tracker):
        ops = [tracker.op(i, delay=0.005) for i in range(4)]
        await BoundedConcurrencyExecutor(1).run(ops)
        assert tracker.max_active == 1
        assert tracker.started == [0, 1, 2, 3]
        assert tracker.finished == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_limit_at_least_count_is_full_concurrency(self, tracker):
        ops = [tracker.op(i, delay=0.02) for i in range(6)]
        await BoundedConcurrencyExecutor(10).run(ops)
        assert tracker.max_active == 6

    @pytest.mark.asyncio
    async def test_unbounded_runs_everything_at_once(self, tracker):
        ops = [tracker.op(i, delay=0.02) for i in range(8)]
        await run_bounded(ops, UNBOUNDED)
        assert tracker.max_active == 8

    @pytest.mark.asyncio
    async def test_admission_is_fifo(self, tracker):
        ops = [tracker.op(i, delay=random.uniform(0.001, 0.01)) for i in range(10)]
        await BoundedConcurrencyExecutor(3).run(ops)
        assert tracker.started == list(range(10))

    @pytest.mark.asyncio
    async def test_sync_operations_accepted(self):
        results = await run_bounded([lambda: 1, lambda: 2], 1)
        assert results == [1, 2]

    @pytest.mark.asyncio
    async def test_map(self):
        async def double(x):
            await asyncio.sleep(0)
            return x * 2

        assert await BoundedConcurrencyExecutor(2).map(double, [1, 2, 3]) == [2, 4, 6]

    @pytest.mark.asyncio
    async def test_in_flight_reported_during_run(self):
        executor = BoundedConcurrencyExecutor(2)
        seen = []

        async def op():
            seen.append(executor.in_flight)
            await asyncio.sleep(0.01)

        await executor.run([op, op, op])
        assert max(seen) == 2
        assert executor.in_flight == 0


# ── Failures ─────────────────────────────────────────────────────────────


class TestFailures:
    @pytest.mark.asyncio
    async def test_single_failure_waits_for_others(self, tracker):
        error = RuntimeError("boom")
        ops = [
            tracker.op(0, delay=0.03),
            tracker.failing(1, error, delay=0.001),
            tracker.op(2, delay=0.04),
        ]
        with pytest.raises(OperationError) as exc_info:
            await BoundedConcurrencyExecutor(3).run(ops)

        assert exc_info.value.index == 1
        assert exc_info.value.cause is error
        assert exc_info.value.__cause__ is error
        assert sorted(tracker.finished) == [0, 1, 2]
        assert tracker.active == 0

    @pytest.mark.asyncio
    async def test_first_failure_by_index_not_by_time(self, tracker):
        early = ValueError("finishes first")
        late = KeyError("lower index")
        ops = [
            tracker.failing(0, late, delay=0.03),
            tracker.failing(1, early, delay=0.001),
        ]
        with pytest.raises(OperationError) as exc_info:
            await BoundedConcurrencyExecutor(2).run(ops)
        assert exc_info.value.index == 0
        assert exc_info.value.cause is late

    @pytest.mark.asyncio
    async def test_failure_stops_admission(self, tracker):
        ops = [tracker.failing(0, RuntimeError("x"), delay=0.001)]
        ops += [tracker.op(i, delay=0.001) for i in range(1, 5)]
        with pytest.raises(OperationError):
            await BoundedConcurrencyExecutor(1).run(ops)
        assert tracker.started == [0]

    @pytest.mark.asyncio
    async def test_synchronous_raise_is_captured(self):
        def op():
            raise LookupError("sync")

        with pytest.raises(OperationError) as exc_info:
            await run_bounded([lambda: 1, op], 2)
        assert isinstance(exc_info.value.cause, LookupError)
        assert exc_info.value.context.component == "bounded"


# ── Cancellation ─────────────────────────────────────────────────────────


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_stops_queued_admissions(self, tracker):
        executor = BoundedConcurrencyExecutor(2)

        async def cancelling():
            executor.cancel()
            await asyncio.sleep(0.01)
            return "c"

        ops = [cancelling, tracker.op(1, delay=0.02)]
        ops += [tracker.op(i, delay=0.001) for i in range(2, 6)]

        with pytest.raises(ExecutionCancelled) as exc_info:
            await executor.run(ops)

        assert exc_info.value.completed == 2
        assert exc_info.value.total == 6
        assert tracker.started == [1]
        assert tracker.finished == [1]
        assert executor.cancelled

    @pytest.mark.asyncio
    async def test_reset_allows_new_runs(self):
        executor = BoundedConcurrencyExecutor(1)
        executor.cancel()
        with pytest.raises(ExecutionCancelled):
            await executor.run([lambda: 1])
        executor.reset()
        assert await executor.run([lambda: 1]) == [1]

    @pytest.mark.asyncio
    async def test_cancel_after_everything_admitted_returns_results(self):
        executor = BoundedConcurrencyExecutor(2)

        async def op():
            executor.cancel()
            await asyncio.sleep(0.005)
            return 1

        assert await executor.run([op, op]) == [1, 1]

    @pytest.mark.asyncio
    async def test_outer_task_cancellation_cancels_in_flight(self, tracker):
        ops = [tracker.op(i, delay=1.0) for i in range(3)]
        executor = BoundedConcurrencyExecutor(2)
        task = asyncio.ensure_future(executor.run(ops))
        await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert tracker.started == [0, 1]
        assert tracker.active == 0
        assert executor.in_flight == 0

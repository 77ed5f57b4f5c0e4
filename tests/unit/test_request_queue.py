"""Tests for the rate-limited routing request queue."""

import asyncio
import time

import pytest

from fleetsim.routing.queue import RequestQueue


async def _echo(value, delay=0.0):
    if delay:
        await asyncio.sleep(delay)
    return value


async def _boom(message="boom"):
    raise RuntimeError(message)


@pytest.fixture
async def queue():
    q = RequestQueue(min_interval_s=0.0, failure_penalty_s=0.0, max_penalty_s=0.0)
    await q.start()
    yield q
    await q.stop()


class TestRequestQueue:
    @pytest.mark.asyncio
    async def test_returns_result(self, queue):
        assert await queue.call(_echo, 42) == 42
        assert queue.calls == 1

    @pytest.mark.asyncio
    async def test_kwargs_pass_through(self, queue):
        assert await queue.call(_echo, "x", delay=0.01) == "x"

    @pytest.mark.asyncio
    async def test_exception_propagates(self, queue):
        with pytest.raises(RuntimeError, match="boom"):
            await queue.call(_boom)
        # Worker survives a failed job
        assert await queue.call(_echo, 1) == 1

    @pytest.mark.asyncio
    async def test_fifo_order(self, queue):
        order = []

        async def record(i):
            order.append(i)
            return i

        results = await asyncio.gather(*(queue.call(record, i) for i in range(5)))
        assert results == [0, 1, 2, 3, 4]
        assert order == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_one_call_in_flight(self, queue):
        active = 0
        peak = 0

        async def tracked():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        await asyncio.gather(*(queue.call(tracked) for _ in range(5)))
        assert peak == 1

    @pytest.mark.asyncio
    async def test_min_interval_spacing(self):
        q = RequestQueue(min_interval_s=0.05, failure_penalty_s=0.0)
        await q.start()
        starts = []

        async def stamp():
            starts.append(time.monotonic())

        try:
            await asyncio.gather(*(q.call(stamp) for _ in range(3)))
        finally:
            await q.stop()
        gaps = [b - a for a, b in zip(starts, starts[1:])]
        assert all(gap >= 0.045 for gap in gaps)

    @pytest.mark.asyncio
    async def test_adaptive_penalty(self):
        q = RequestQueue(min_interval_s=0.0, failure_penalty_s=0.01, max_penalty_s=0.025)
        await q.start()
        try:
            for _ in range(3):
                with pytest.raises(RuntimeError):
                    await q.call(_boom, adaptive=True)
            assert q.consecutive_failures == 3
            assert q.spacing_s == pytest.approx(0.025)

            await q.call(_echo, "ok", adaptive=True)
            assert q.consecutive_failures == 0
            assert q.spacing_s == 0.0
        finally:
            await q.stop()

    @pytest.mark.asyncio
    async def test_non_adaptive_failures_do_not_penalize(self, queue):
        with pytest.raises(RuntimeError):
            await queue.call(_boom)
        assert queue.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_call_before_start_raises(self):
        q = RequestQueue()
        with pytest.raises(RuntimeError, match="not started"):
            await q.call(_echo, 1)

    @pytest.mark.asyncio
    async def test_stop_cancels_pending(self):
        q = RequestQueue(min_interval_s=0.0)
        await q.start()
        slow = asyncio.ensure_future(q.call(_echo, 1, delay=1.0))
        waiting = asyncio.ensure_future(q.call(_echo, 2))
        await asyncio.sleep(0.02)
        assert q.depth == 1

        await q.stop()
        assert not q.is_running
        for fut in (slow, waiting):
            with pytest.raises(asyncio.CancelledError):
                await fut

    @pytest.mark.asyncio
    async def test_start_stop_idempotent(self):
        q = RequestQueue()
        await q.start()
        await q.start()
        assert q.is_running
        await q.stop()
        await q.stop()
        assert not q.is_running

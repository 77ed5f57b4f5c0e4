"""
Single-worker FIFO queue for outbound routing calls.

Every call to the routing provider goes through one queue processed by
one worker task, so there is at most one request in flight globally and
call starts are spaced by a minimum interval. Consecutive failures of
adaptive calls (route computation) stretch the spacing; a success resets
it. Results and exceptions are delivered to each caller's future.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class _Job:
    fn: Callable[..., Awaitable[Any]]
    args: tuple
    kwargs: dict
    future: asyncio.Future
    adaptive: bool = False
    enqueued_at: float = field(default_factory=time.monotonic)


class RequestQueue:
    """Rate-limited, strictly sequential executor for coroutine calls."""

    def __init__(
        self,
        min_interval_s: float = 1.5,
        failure_penalty_s: float = 2.0,
        max_penalty_s: float = 30.0,
    ) -> None:
        self._min_interval_s = min_interval_s
        self._failure_penalty_s = failure_penalty_s
        self._max_penalty_s = max_penalty_s
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._current: Optional[_Job] = None
        self._last_call_at: Optional[float] = None
        self._consecutive_failures = 0
        self._calls = 0

    async def start(self) -> None:
        if self._task is not None:
            return
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        in_flight = self._current
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

        pending = [in_flight] if in_flight else []
        while self._queue is not None and not self._queue.empty():
            pending.append(self._queue.get_nowait())
        for job in pending:
            if not job.future.done():
                job.future.cancel()

    async def call(
        self, fn: Callable[..., Awaitable[Any]], *args: Any, adaptive: bool = False, **kwargs: Any
    ) -> Any:
        """Enqueue fn(*args, **kwargs) and wait for its result."""
        if self._task is None or self._queue is None:
            raise RuntimeError("Request queue not started")
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_Job(fn, args, kwargs, future, adaptive))
        return await future

    @property
    def is_running(self) -> bool:
        return self._task is not None

    @property
    def depth(self) -> int:
        """Jobs waiting (excluding the one in flight)."""
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def calls(self) -> int:
        return self._calls

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def spacing_s(self) -> float:
        """Current minimum gap between call starts."""
        penalty = min(self._max_penalty_s, self._consecutive_failures * self._failure_penalty_s)
        return self._min_interval_s + penalty

    async def _wait_for_slot(self) -> None:
        if self._last_call_at is None:
            return
        wait = self._last_call_at + self.spacing_s - time.monotonic()
        if wait > 0:
            await asyncio.sleep(wait)

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            self._current = job
            try:
                if job.future.cancelled():
                    continue
                await self._wait_for_slot()
                self._last_call_at = time.monotonic()
                self._calls += 1
                try:
                    result = await job.fn(*job.args, **job.kwargs)
                except Exception as e:
                    if job.adaptive:
                        self._consecutive_failures += 1
                        logger.warning(
                            f"Routing call failed ({self._consecutive_failures} in a row), "
                            f"spacing now {self.spacing_s:.1f}s: {e}"
                        )
                    if not job.future.done():
                        job.future.set_exception(e)
                else:
                    if job.adaptive:
                        self._consecutive_failures = 0
                    if not job.future.done():
                        job.future.set_result(result)
            finally:
                self._current = None
                self._queue.task_done()

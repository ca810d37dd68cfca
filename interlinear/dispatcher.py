"""Bounded-concurrency dispatch of asynchronous operations."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Set

from .structures import Operation


@dataclass
class _Task:
    operation: Operation
    future: "asyncio.Future[Any]"


class BoundedDispatcher:
    """Runs at most ``max_concurrent`` operations at once, FIFO for the rest.

    The running count and queue are only touched between awaits on the event
    loop, so no lock is needed. A finished operation (success or failure)
    promotes exactly one queued operation.

    With ``min_interval`` set, consecutive starts are spaced at least that many
    seconds apart. A promoted operation holds its slot while it waits.
    """

    def __init__(self, max_concurrent: int, *, min_interval: float = 0.0) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.min_interval = max(0.0, min_interval)
        self._next_start = 0.0
        self._queue: Deque[_Task] = deque()
        self._running = 0
        self._workers: Set["asyncio.Task[None]"] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def running(self) -> int:
        return self._running

    @property
    def pending(self) -> int:
        return len(self._queue)

    def submit(self, operation: Operation) -> "asyncio.Future[Any]":
        """Queue an operation and return a future for its outcome."""

        future = asyncio.get_running_loop().create_future()
        self._queue.append(_Task(operation=operation, future=future))
        self._idle.clear()
        self._run_next()
        return future

    async def join(self) -> None:
        """Wait until nothing is queued or running."""

        await self._idle.wait()

    def _run_next(self) -> None:
        while self._running < self.max_concurrent and self._queue:
            task = self._queue.popleft()
            self._running += 1
            worker = asyncio.ensure_future(self._execute(task, self._reserve_start()))
            self._workers.add(worker)
            worker.add_done_callback(self._workers.discard)

    def _reserve_start(self) -> float:
        """Return how long the next promoted operation must wait to start."""

        if not self.min_interval:
            return 0.0
        now = asyncio.get_running_loop().time()
        start = max(now, self._next_start)
        self._next_start = start + self.min_interval
        return start - now

    async def _execute(self, task: _Task, delay: float = 0.0) -> None:
        try:
            if delay > 0:
                await asyncio.sleep(delay)
            result = await task.operation()
        except asyncio.CancelledError:
            if not task.future.done():
                task.future.cancel()
            raise
        except Exception as exc:
            if not task.future.done():
                task.future.set_exception(exc)
        else:
            if not task.future.done():
                task.future.set_result(result)
        finally:
            self._running -= 1
            self._run_next()
            if self._running == 0 and not self._queue:
                self._idle.set()

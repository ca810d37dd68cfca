"""Tests for the bounded dispatcher."""
from __future__ import annotations

import asyncio

import pytest

from interlinear.dispatcher import BoundedDispatcher


class TestBoundedDispatcher:
    """Tests for BoundedDispatcher."""

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            BoundedDispatcher(0)

    def test_never_exceeds_max_concurrent(self):
        async def scenario():
            dispatcher = BoundedDispatcher(3)
            state = {"active": 0, "peak": 0}

            def make(value):
                async def operation():
                    state["active"] += 1
                    state["peak"] = max(state["peak"], state["active"])
                    await asyncio.sleep(0.01)
                    state["active"] -= 1
                    return value

                return operation

            futures = [dispatcher.submit(make(i)) for i in range(10)]
            assert dispatcher.running == 3
            assert dispatcher.pending == 7
            results = await asyncio.gather(*futures)
            return results, state["peak"]

        results, peak = asyncio.run(scenario())
        assert results == list(range(10))
        assert peak == 3

    def test_starts_operations_in_submission_order(self):
        async def scenario():
            dispatcher = BoundedDispatcher(2)
            started = []

            def make(value, delay):
                async def operation():
                    started.append(value)
                    await asyncio.sleep(delay)
                    return value

                return operation

            delays = [0.03, 0.01, 0.02, 0.0, 0.01, 0.0]
            futures = [dispatcher.submit(make(i, d)) for i, d in enumerate(delays)]
            await asyncio.gather(*futures)
            return started

        assert asyncio.run(scenario()) == [0, 1, 2, 3, 4, 5]

    def test_failure_rejects_only_its_own_future(self):
        async def scenario():
            dispatcher = BoundedDispatcher(1)

            async def boom():
                raise RuntimeError("boom")

            async def fine():
                return "ok"

            futures = [
                dispatcher.submit(fine),
                dispatcher.submit(boom),
                dispatcher.submit(fine),
            ]
            return await asyncio.gather(*futures, return_exceptions=True)

        first, second, third = asyncio.run(scenario())
        assert first == "ok"
        assert isinstance(second, RuntimeError)
        assert third == "ok"

    def test_synchronous_factory_error_is_delivered_through_future(self):
        async def scenario():
            dispatcher = BoundedDispatcher(1)

            def broken():
                raise ValueError("not even a coroutine")

            future = dispatcher.submit(broken)
            results = await asyncio.gather(future, return_exceptions=True)
            await dispatcher.join()
            return results[0], dispatcher.running

        error, running = asyncio.run(scenario())
        assert isinstance(error, ValueError)
        assert running == 0

    def test_every_operation_settles_exactly_once(self):
        async def scenario():
            dispatcher = BoundedDispatcher(2)

            def make(i):
                async def operation():
                    await asyncio.sleep(0)
                    if i % 3 == 0:
                        raise KeyError(i)
                    return i

                return operation

            futures = [dispatcher.submit(make(i)) for i in range(9)]
            results = await asyncio.gather(*futures, return_exceptions=True)
            return results, [future.done() for future in futures]

        results, done = asyncio.run(scenario())
        assert all(done)
        assert [isinstance(r, KeyError) for r in results] == [i % 3 == 0 for i in range(9)]

    def test_join_waits_until_idle(self):
        async def scenario():
            dispatcher = BoundedDispatcher(1)
            finished = []

            def make(i):
                async def operation():
                    await asyncio.sleep(0.01)
                    finished.append(i)

                return operation

            for i in range(3):
                dispatcher.submit(make(i))
            await dispatcher.join()
            return finished, dispatcher.running, dispatcher.pending

        assert asyncio.run(scenario()) == ([0, 1, 2], 0, 0)

    def test_min_interval_spaces_out_starts(self):
        async def scenario():
            loop = asyncio.get_running_loop()
            dispatcher = BoundedDispatcher(3, min_interval=0.05)
            starts = []

            def make(i):
                async def operation():
                    starts.append((i, loop.time()))
                    return i

                return operation

            futures = [dispatcher.submit(make(i)) for i in range(4)]
            assert dispatcher.running == 3
            results = await asyncio.gather(*futures)
            return results, starts, dispatcher.running

        results, starts, running = asyncio.run(scenario())
        assert results == [0, 1, 2, 3]
        assert [i for i, _ in starts] == [0, 1, 2, 3]
        gaps = [later - earlier for (_, earlier), (_, later) in zip(starts, starts[1:])]
        assert all(gap >= 0.04 for gap in gaps)
        assert running == 0

    def test_zero_interval_starts_immediately(self):
        async def scenario():
            dispatcher = BoundedDispatcher(2)
            started = []

            def make(i):
                async def operation():
                    started.append(i)

                return operation

            for i in range(2):
                dispatcher.submit(make(i))
            await asyncio.sleep(0)
            return list(started)

        assert asyncio.run(scenario()) == [0, 1]

"""Tests for the background task queue."""

import asyncio

import pytest

from coachmem.utils.background import BackgroundTaskQueue


class TestBackgroundTaskQueue:

    @pytest.mark.asyncio
    async def test_runs_submitted_jobs(self):
        queue = BackgroundTaskQueue(workers=2, queue_size=10)
        done = []

        async def job(value):
            done.append(value)

        assert queue.submit('a', lambda: job('a'))
        assert queue.submit('b', lambda: job('b'))
        await queue.shutdown(drain=True)

        assert sorted(done) == ['a', 'b']
        assert queue.stats()['completed'] == 2
        assert not queue.running

    @pytest.mark.asyncio
    async def test_submit_does_not_wait_for_job(self):
        queue = BackgroundTaskQueue(workers=1, queue_size=10)
        release = asyncio.Event()

        async def slow():
            await release.wait()

        assert queue.submit('slow', slow)
        assert queue.stats()['completed'] == 0

        release.set()
        await queue.shutdown()
        assert queue.stats()['completed'] == 1

    @pytest.mark.asyncio
    async def test_full_queue_drops_jobs(self):
        queue = BackgroundTaskQueue(workers=1, queue_size=1)
        release = asyncio.Event()

        async def blocker():
            await release.wait()

        queue.submit('first', blocker)
        await asyncio.sleep(0)
        queue.submit('second', blocker)

        assert not queue.submit('third', blocker)
        assert queue.stats()['dropped'] == 1

        release.set()
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_failures_are_contained(self):
        queue = BackgroundTaskQueue(workers=1, queue_size=10)
        done = []

        async def boom():
            raise RuntimeError('job failed')

        async def ok():
            done.append(True)

        queue.submit('boom', boom)
        queue.submit('ok', ok)
        await queue.shutdown()

        assert done == [True]
        assert queue.stats()['failed'] == 1

    @pytest.mark.asyncio
    async def test_shutdown_without_drain_discards_pending(self):
        queue = BackgroundTaskQueue(workers=1, queue_size=10)
        done = []
        release = asyncio.Event()

        async def blocker():
            await release.wait()

        async def later():
            done.append(True)

        queue.submit('blocker', blocker)
        queue.submit('later', later)
        await asyncio.sleep(0)
        await queue.shutdown(drain=False)

        assert done == []

    @pytest.mark.asyncio
    async def test_shutdown_when_never_started(self):
        queue = BackgroundTaskQueue()
        await queue.shutdown()
        assert queue.stats()['pending'] == 0

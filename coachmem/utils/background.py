"""
Bounded background task queue for post-reply mining jobs.

Jobs are coroutine factories consumed by a fixed number of worker tasks. Submitting
never blocks: when the queue is full the job is dropped and a warning is logged.
Job failures are logged here and never reach the submitter.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .logging_config import get_logger

logger = get_logger(__name__)

JobFactory = Callable[[], Awaitable[Any]]


class BackgroundTaskQueue:
    """Fixed-size worker pool over an asyncio.Queue with backpressure by dropping."""

    def __init__(self, workers: int = 2, queue_size: int = 100):
        self.workers = workers
        self.queue_size = queue_size
        self._queue: Optional['asyncio.Queue[Tuple[str, JobFactory]]'] = None
        self._tasks: List[asyncio.Task] = []
        self._submitted = 0
        self._completed = 0
        self._failed = 0
        self._dropped = 0

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        """Start the worker tasks on the running event loop. Idempotent."""
        if self._tasks:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._tasks = [asyncio.create_task(self._worker(i), name=f'coachmem-bg-{i}') for i in range(self.workers)]
        logger.info(f'Started background queue with {self.workers} workers (queue size {self.queue_size})')

    def submit(self, name: str, job: JobFactory) -> bool:
        """
        Enqueue a job without waiting.

        Args:
            name: Label used in logs
            job: Zero-argument callable returning the coroutine to run

        Returns:
            True if queued, False if dropped because the queue is full
        """
        if not self._tasks:
            self.start()

        try:
            self._queue.put_nowait((name, job))
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning(f'Background queue full ({self.queue_size}), dropped job {name}')
            return False

        self._submitted += 1
        logger.debug(f'Queued background job {name}')
        return True

    async def _worker(self, index: int) -> None:
        while True:
            name, job = await self._queue.get()
            try:
                await job()
                self._completed += 1
                logger.debug(f'Background job {name} finished on worker {index}')
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._failed += 1
                logger.error(f'Background job {name} failed: {e}', exc_info=True)
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def shutdown(self, drain: bool = True) -> None:
        """
        Stop the workers.

        Args:
            drain: Finish queued jobs first when True, otherwise discard them
        """
        if not self._tasks:
            return
        if drain:
            await self.join()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._queue = None
        logger.info('Background queue shut down')

    def stats(self) -> Dict[str, Any]:
        return {
            'workers': self.workers,
            'pending': self._queue.qsize() if self._queue is not None else 0,
            'submitted': self._submitted,
            'completed': self._completed,
            'failed': self._failed,
            'dropped': self._dropped,
        }

"""Bounded fire-and-forget job runner.

Jobs are queued and drained by a fixed pool of worker tasks. Delivery is
best effort: when the queue is full the job is dropped and logged, and a job
that raises is logged and forgotten.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from relay.logging_config import get_logger

logger = get_logger("background")

Job = Callable[[], Awaitable[None]]


class BackgroundWriter:
    def __init__(self, *, workers: int = 4, max_pending: int = 256, name: str = "writer") -> None:
        self.name = name
        self._workers_count = max(int(workers), 1)
        self._max_pending = max(int(max_pending), 1)
        self._queue: Optional[asyncio.Queue] = None
        self._workers: list[asyncio.Task] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def running(self) -> bool:
        return bool(self._workers) and self._loop is not None and not self._loop.is_closed()

    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def start(self) -> None:
        self._ensure_started()

    def _ensure_started(self) -> None:
        loop = asyncio.get_running_loop()
        if self._loop is loop and self._workers:
            return
        # Workers from a previous (closed) loop are unusable; start over.
        self._loop = loop
        self._queue = asyncio.Queue(maxsize=self._max_pending)
        self._workers = [
            asyncio.create_task(self._worker_loop(index), name=f"{self.name}-worker-{index}")
            for index in range(self._workers_count)
        ]
        logger.info(
            "Background writer started",
            extra={"context": {"writer": self.name, "workers": self._workers_count}},
        )

    def submit(self, job: Job, *, description: str = "job") -> bool:
        """Queue ``job`` without waiting for it. Returns False when it was dropped."""
        try:
            self._ensure_started()
        except RuntimeError:
            logger.error(f"Background job dropped, no running event loop: {description}")
            return False

        try:
            self._queue.put_nowait((job, description))
        except asyncio.QueueFull:
            logger.warning(
                "Background queue full, job dropped",
                extra={"context": {"writer": self.name, "job": description, "max_pending": self._max_pending}},
            )
            return False
        return True

    async def _worker_loop(self, index: int) -> None:
        queue = self._queue
        while True:
            job, description = await queue.get()
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(
                    "Background job failed",
                    extra={"context": {"writer": self.name, "job": description, "error": str(exc)}},
                    exc_info=True,
                )
            finally:
                queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued job has run."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        if not self._workers:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Background writer stopped with pending jobs",
                extra={"context": {"writer": self.name, "pending": self.pending()}},
            )
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None
        self._loop = None

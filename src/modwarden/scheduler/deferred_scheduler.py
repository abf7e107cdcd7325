"""
Central scheduler for one-shot delayed jobs.

Automatic reversal of timeouts and mutes and the voice presence dwell check
both go through here. Jobs are keyed by a string such as ``"mute:<user_id>"``;
scheduling a key that is already pending replaces the earlier job, and a
manual reversal cancels the job by key.
"""

from __future__ import annotations

import asyncio
import heapq
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict

from modwarden.util.logger import get_logger

logger = get_logger("deferred_scheduler")

JobCallback = Callable[[], Awaitable[Any]]


@dataclass
class DeferredJob:
    """
    A pending job.

    Attributes:
        key (str): Identity used for replacement and cancellation.
        callback (JobCallback): Zero-argument coroutine function run when the job fires.
    """
    key: str
    callback: JobCallback


class DeferredTaskScheduler:
    """
    Min-heap of (run_at, job_id, job) tuples processed by one background task.

    Cancelled jobs stay in the heap and are skipped when they reach the top.

    Attributes:
        heap (list): Min-heap of (run_at, job_id, payload) tuples.
        pending_keys (Dict): Maps job key to job_id for quick lookup.
        cancelled_ids (set): Set of job IDs that have been cancelled.
        counter (int): Monotonically increasing job ID counter.
        runner_task (asyncio.Task | None): Background task processing the schedule.
        condition (asyncio.Condition): Coordination primitive for task wakeup.
    """

    def __init__(self) -> None:
        self.heap: list[tuple[float, int, DeferredJob]] = []
        self.pending_keys: Dict[str, int] = {}
        self.cancelled_ids: set[int] = set()
        self.counter: int = 0
        self.runner_task: asyncio.Task[None] | None = None
        self.condition: asyncio.Condition = asyncio.Condition()

    def ensure_runner(self) -> None:
        """Create the background runner task if it is not already active."""
        loop = asyncio.get_running_loop()
        if self.runner_task is None or self.runner_task.done():
            self.runner_task = loop.create_task(self.run(), name="modwarden-deferred-scheduler")

    def is_pending(self, key: str) -> bool:
        return key in self.pending_keys

    async def schedule(self, key: str, delay_seconds: float, callback: JobCallback) -> None:
        """
        Schedule ``callback`` to run after ``delay_seconds``.

        A non-positive delay runs the callback immediately. A job already
        pending under ``key`` is cancelled and replaced.

        Args:
            key (str): Job identity, e.g. ``"timeout:1234"``.
            delay_seconds (float): Delay before the callback runs.
            callback (JobCallback): Zero-argument coroutine function.
        """
        job = DeferredJob(key=key, callback=callback)

        if delay_seconds <= 0:
            await self.cancel(key)
            await self.execute(job)
            return

        loop = asyncio.get_running_loop()
        run_at = loop.time() + delay_seconds

        async with self.condition:
            self.ensure_runner()
            if key in self.pending_keys:
                self.cancelled_ids.add(self.pending_keys[key])

            self.counter += 1
            job_id = self.counter
            heapq.heappush(self.heap, (run_at, job_id, job))
            self.pending_keys[key] = job_id
            self.condition.notify_all()

        logger.debug("[SCHEDULER] Scheduled %s in %.1fs", key, delay_seconds)

    async def cancel(self, key: str) -> bool:
        """
        Cancel the job pending under ``key``.

        Returns:
            bool: True if a job was found and cancelled.
        """
        async with self.condition:
            job_id = self.pending_keys.pop(key, None)
            if job_id is None:
                return False

            self.cancelled_ids.add(job_id)
            self.condition.notify_all()

        logger.debug("[SCHEDULER] Cancelled %s", key)
        return True

    async def shutdown(self) -> None:
        """Stop the runner and drop every pending job. Safe to call repeatedly."""
        async with self.condition:
            if self.runner_task:
                self.runner_task.cancel()
            self.heap.clear()
            self.pending_keys.clear()
            self.cancelled_ids.clear()
            self.condition.notify_all()

        if self.runner_task:
            try:
                await self.runner_task
            except asyncio.CancelledError:
                pass
            finally:
                self.runner_task = None

    async def run(self) -> None:
        """Background loop that runs jobs as their timers elapse."""
        loop = asyncio.get_running_loop()
        while True:
            async with self.condition:
                while self.heap and self.heap[0][1] in self.cancelled_ids:
                    _, job_id, _ = heapq.heappop(self.heap)
                    self.cancelled_ids.discard(job_id)

                if not self.heap:
                    await self.condition.wait()
                    continue

                run_at, _, _ = self.heap[0]
                delay = run_at - loop.time()

                if delay > 0:
                    try:
                        await asyncio.wait_for(self.condition.wait(), timeout=delay)
                    except asyncio.TimeoutError:
                        pass
                    continue

                _, job_id, job = heapq.heappop(self.heap)
                if self.pending_keys.get(job.key) == job_id:
                    del self.pending_keys[job.key]

            await self.execute(job)

    async def execute(self, job: DeferredJob) -> None:
        """Run one job; errors are logged so a failing job never stops the runner."""
        try:
            await job.callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[SCHEDULER] Job %s failed", job.key)

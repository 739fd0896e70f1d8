"""
Job Dispatcher for the AutoML studio

Responsibilities:
- Spawn exactly one background asyncio task per submitted job
- Track running tasks by job id so they can be awaited or cancelled
- Optionally claim the job id in Redis so no other process runs the same job

Design choices:
- Submission never waits on the task; the caller gets the job id back as soon as
  the row exists.
- Redis is optional. Without REDIS_URL the in-process registry is the only guard.
- Cancellation is cooperative: the task stops at its next suspension point.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, Optional

import redis.asyncio as aioredis

from automl_studio.utils.logger import get_logger

logger = get_logger("dispatcher")


class JobDispatcher:
    def __init__(
        self,
        redis_url: Optional[str] = None,
        claim_prefix: str = "automl:jobs:claim:",
        claim_ttl: int = 6 * 3600,
    ):
        self.redis_url = redis_url
        self.claim_prefix = claim_prefix
        self.claim_ttl = claim_ttl
        self._redis: Optional[aioredis.Redis] = None
        self._tasks: Dict[str, asyncio.Task] = {}

    async def init_redis(self):
        if not self.redis_url or self._redis is not None:
            return self._redis
        client = aioredis.from_url(self.redis_url, decode_responses=True)
        try:
            await client.ping()
            self._redis = client
            logger.info("Connected to Redis at %s", self.redis_url)
        except Exception as e:
            logger.warning("Redis unavailable (%s); using in-process job claims only", e)
            await client.aclose()
            self._redis = None
        return self._redis

    async def _claim(self, job_id: str) -> bool:
        if self._redis is None:
            return True
        try:
            return bool(await self._redis.set(f"{self.claim_prefix}{job_id}", "1", nx=True, ex=self.claim_ttl))
        except Exception:
            logger.exception("Failed to claim job %s in Redis; running it locally", job_id)
            return True

    async def _release(self, job_id: str):
        if self._redis is None:
            return
        try:
            await self._redis.delete(f"{self.claim_prefix}{job_id}")
        except Exception:
            logger.exception("Failed to release Redis claim for job %s", job_id)

    def spawn(self, job_id: str, work: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """Schedule ``work()`` as the single background task for ``job_id``."""
        existing = self._tasks.get(job_id)
        if existing is not None and not existing.done():
            logger.warning("Job %s already has a running task; not spawning another", job_id)
            return existing

        async def _runner():
            if not await self._claim(job_id):
                logger.info("Job %s is claimed by another process; skipping", job_id)
                return
            try:
                await work()
            finally:
                await self._release(job_id)

        task = asyncio.get_running_loop().create_task(_runner(), name=f"automl-job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t, jid=job_id: self._forget(jid, t))
        logger.info("Dispatched job %s", job_id)
        return task

    def _forget(self, job_id: str, task: asyncio.Task):
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error("Task for job %s ended with an unhandled error: %r", job_id, task.exception())

    def is_running(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def cancel(self, job_id: str) -> bool:
        """Request cancellation of the job's task. Safe to call from any thread."""
        task = self._tasks.get(job_id)
        if task is None or task.done():
            return False
        loop = task.get_loop()
        try:
            on_loop = asyncio.get_running_loop() is loop
        except RuntimeError:
            on_loop = False
        if on_loop:
            task.cancel()
        else:
            loop.call_soon_threadsafe(task.cancel)
        logger.info("Cancellation requested for job %s", job_id)
        return True

    async def wait(self, job_id: str, timeout: Optional[float] = None):
        task = self._tasks.get(job_id)
        if task is None:
            return
        await asyncio.wait({task}, timeout=timeout)

    async def shutdown(self):
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        logger.info("Dispatcher stopped")

"""Queue client for handing conversation jobs to worker processes."""

from __future__ import annotations

from typing import Protocol

import structlog
from arq.connections import ArqRedis, RedisSettings, create_pool

from parley.gateway.models import Job

logger = structlog.get_logger()

JOB_FUNCTION = "process_message_job"


class JobQueue(Protocol):
    async def enqueue(self, job: Job) -> str | None:
        """Hand ``job`` to the transport; returns the job id, or None if not accepted."""
        ...

    async def close(self) -> None:
        ...


class ArqJobQueue:
    """arq (Redis) transport. The task id doubles as the arq job id."""

    def __init__(self, redis_url: str, queue_name: str) -> None:
        self.redis_settings = RedisSettings.from_dsn(redis_url)
        self.queue_name = queue_name
        self._pool: ArqRedis | None = None

    async def get_pool(self) -> ArqRedis:
        """Get or create the arq Redis connection pool."""
        if self._pool is None:
            self._pool = await create_pool(
                self.redis_settings,
                default_queue_name=self.queue_name,
            )
        return self._pool

    async def enqueue(self, job: Job) -> str | None:
        try:
            pool = await self.get_pool()
            arq_job = await pool.enqueue_job(
                JOB_FUNCTION,
                job.to_payload(),
                _job_id=job.task_id,
                _queue_name=self.queue_name,
            )
        except Exception as e:
            logger.exception("queue.enqueue_failed", task_id=job.task_id, error=str(e))
            return None

        if arq_job is None:
            logger.warning("queue.duplicate_job", task_id=job.task_id)
            return None
        logger.info("queue.job.enqueued", task_id=job.task_id, channel=job.channel)
        return arq_job.job_id

    async def close(self) -> None:
        """Close the queue pool connection."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

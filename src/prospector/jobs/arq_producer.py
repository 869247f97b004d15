import asyncio
from typing import Optional

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job as ArqJob
from arq.jobs import JobStatus as ArqJobStatus

from prospector.jobs.job import EnqueuedJob, Job, JobPriority, JobStatus, JobStatusSnapshot
from prospector.jobs.producer import BaseJobProducer
from prospector.main.exceptions import JobMessageException
from prospector.main.logging import get_logger

logger = get_logger(__name__)

STATUS_MAP = {
    ArqJobStatus.deferred: JobStatus.QUEUED,
    ArqJobStatus.queued: JobStatus.QUEUED,
    ArqJobStatus.in_progress: JobStatus.RUNNING,
}


class ArqJobProducer(BaseJobProducer):
    """Stores jobs as arq records so they survive restarts and can be looked up.

    arq has no priorities; every job is queued in arrival order.
    """

    def __init__(
        self,
        redis_settings: RedisSettings,
        queue_name: str = "arq:queue",
        default_priority: JobPriority = JobPriority.NORMAL,
        abort_timeout: float = 5.0,
    ):
        super().__init__(default_priority=default_priority)
        self.redis_settings = redis_settings
        self.queue_name = queue_name
        self.abort_timeout = abort_timeout
        self._redis: Optional[ArqRedis] = None

    async def initialize(self) -> None:
        if self._redis is not None:
            return

        self._redis = await create_pool(self.redis_settings, default_queue_name=self.queue_name)
        self._initialized = True
        logger.info(
            f"Job producer connected to redis on host {self.redis_settings.host}"
            f" and port {self.redis_settings.port}",
            extra={"queue_name": self.queue_name},
        )

    def is_ready(self) -> bool:
        return self._initialized and self._redis is not None

    async def _dispatch(self, job: Job) -> EnqueuedJob:
        if job.options.unique:
            job = job.model_copy(update={"id": f"{job.name}:{job.options.unique}"})

        arq_job = await self._redis.enqueue_job(
            job.name, job.to_message(), _job_id=job.id, _queue_name=self.queue_name
        )
        if arq_job is None:
            # A job with this id is already queued, running or kept as a result
            logger.info(
                f"Job {job.id} already exists, not enqueued again",
                extra={"job_id": job.id, "job_name": job.name},
            )
            return EnqueuedJob.from_job(job, 0)

        return EnqueuedJob.from_job(job, 1)

    def _job(self, job_id: str) -> ArqJob:
        return ArqJob(job_id, self._redis, _queue_name=self.queue_name)

    async def get_job_status(self, job_id: str) -> Optional[JobStatusSnapshot]:
        self._ensure_initialized()

        arq_job = self._job(job_id)
        arq_status = await arq_job.status()
        if arq_status == ArqJobStatus.not_found:
            return None

        info = await arq_job.info()
        snapshot = JobStatusSnapshot(id=job_id, status=STATUS_MAP.get(arq_status, JobStatus.QUEUED))
        if info is None:
            return snapshot

        snapshot.name = info.function
        snapshot.enqueued_at = info.enqueue_time
        if info.args:
            try:
                envelope = Job.from_message(info.args[0])
                snapshot.data = envelope.data
            except (JobMessageException, TypeError):
                logger.debug("Job record has no readable envelope", extra={"job_id": job_id})

        # Only finished jobs carry a result record
        if getattr(info, "success", None) is not None:
            snapshot.started_at = info.start_time
            snapshot.finished_at = info.finish_time
            snapshot.success = info.success
            snapshot.status = JobStatus.COMPLETED if info.success else JobStatus.FAILED

        return snapshot

    async def cancel_job(self, job_id: str) -> bool:
        self._ensure_initialized()

        arq_job = self._job(job_id)
        if await arq_job.status() == ArqJobStatus.not_found:
            return False

        try:
            aborted = await arq_job.abort(timeout=self.abort_timeout)
        except asyncio.TimeoutError:
            # Abort is flagged; the worker picks it up when it next checks
            logger.info(
                "Abort requested, job has not stopped yet",
                extra={"job_id": job_id, "timeout_seconds": self.abort_timeout},
            )
            return True

        logger.info("Job abort processed", extra={"job_id": job_id, "aborted": aborted})
        return aborted

    async def shutdown(self) -> None:
        self._initialized = False
        if self._redis is None:
            return
        await self._redis.aclose()
        self._redis = None

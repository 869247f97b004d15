from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from prospector.jobs.broker import JobBroker
from prospector.jobs.job import (
    EnqueuedJob,
    Job,
    JobOptions,
    JobPriority,
    JobStatusSnapshot,
)
from prospector.main.exceptions import NotReadyException
from prospector.main.logging import get_logger

logger = get_logger(__name__)

Options = Union[JobOptions, dict[str, Any], None]


class BaseJobProducer(ABC):
    """Builds canonical jobs and hands them to a transport."""

    def __init__(self, default_priority: JobPriority = JobPriority.NORMAL):
        self.default_priority = JobPriority(default_priority)
        self._initialized = False

    @abstractmethod
    async def initialize(self) -> None: ...

    @abstractmethod
    def is_ready(self) -> bool: ...

    @abstractmethod
    async def _dispatch(self, job: Job) -> EnqueuedJob: ...

    @abstractmethod
    async def get_job_status(self, job_id: str) -> Optional[JobStatusSnapshot]: ...

    @abstractmethod
    async def cancel_job(self, job_id: str) -> bool: ...

    @abstractmethod
    async def shutdown(self) -> None: ...

    def _ensure_initialized(self):
        if not self._initialized:
            raise NotReadyException("Producer not initialized. Call initialize() first.")

    def build_job(self, name: str, data: Optional[dict[str, Any]], options: Options) -> Job:
        job = Job.create(name, data, options)
        if job.options.priority is None:
            job.options.priority = self.default_priority
        return job

    async def create_job(
        self,
        name: str,
        data: Optional[dict[str, Any]] = None,
        options: Options = None,
    ) -> EnqueuedJob:
        self._ensure_initialized()

        job = self.build_job(name, data, options)
        enqueued = await self._dispatch(job)

        logger.info(
            f"Enqueued job {name}",
            extra={
                "job_id": enqueued.id,
                "job_name": name,
                "priority": job.options.priority.value,
                "subscribers": enqueued.subscribers,
            },
        )
        return enqueued

    async def now(
        self,
        name: str,
        data: Optional[dict[str, Any]] = None,
        options: Options = None,
    ) -> EnqueuedJob:
        """Enqueue for immediate processing, ahead of normal work where the backend orders."""
        return await self.priority(name, data, JobPriority.HIGH, options)

    async def priority(
        self,
        name: str,
        data: Optional[dict[str, Any]],
        priority: Union[JobPriority, str],
        options: Options = None,
    ) -> EnqueuedJob:
        job_options = JobOptions.coerce(options)
        job_options.priority = JobPriority(priority)
        return await self.create_job(name, data, job_options)

    async def unique(
        self,
        name: str,
        unique_key: str,
        data: Optional[dict[str, Any]] = None,
        options: Options = None,
    ) -> EnqueuedJob:
        """Enqueue with a uniqueness key carried in the payload and options.

        The job keeps its name so consumers still route it. Whether duplicates
        are rejected depends on the backend.
        """
        payload = dict(data or {})
        payload["unique_key"] = unique_key
        job_options = JobOptions.coerce(options)
        job_options.unique = unique_key
        return await self.create_job(name, payload, job_options)


class JobProducer(BaseJobProducer):
    """Publishes jobs over a broker channel.

    Delivery is at-most-once: a job published while no consumer listens, or
    while every consumer is at its concurrency ceiling, is lost.
    """

    def __init__(
        self,
        broker: JobBroker,
        job_channel: str = "job_queue",
        default_priority: JobPriority = JobPriority.NORMAL,
    ):
        super().__init__(default_priority=default_priority)
        self.broker = broker
        self.job_channel = job_channel

    async def initialize(self) -> None:
        await self.broker.connect()
        self._initialized = True
        logger.info("Job producer initialized", extra={"channel": self.job_channel})

    def is_ready(self) -> bool:
        return self._initialized and self.broker.is_ready()

    async def _dispatch(self, job: Job) -> EnqueuedJob:
        subscribers = await self.broker.publish(self.job_channel, job.to_message())
        if subscribers == 0:
            logger.warning(
                f"No consumers listening on {self.job_channel}, job {job.name} will not run",
                extra={"job_id": job.id, "job_name": job.name, "channel": self.job_channel},
            )
        return EnqueuedJob.from_job(job, subscribers)

    async def publish(self, channel: str, message: Any) -> int:
        self._ensure_initialized()
        return await self.broker.publish(channel, message)

    async def get_job_status(self, job_id: str) -> Optional[JobStatusSnapshot]:
        # Broadcasts leave no record to look up
        return None

    async def cancel_job(self, job_id: str) -> bool:
        logger.debug(
            "Published jobs cannot be cancelled", extra={"job_id": job_id}
        )
        return False

    async def shutdown(self) -> None:
        self._initialized = False
        await self.broker.graceful_shutdown()

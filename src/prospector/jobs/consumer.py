import asyncio
import time
from collections import Counter
from typing import Any, Optional, Union

from prospector.jobs.broker import JobBroker
from prospector.jobs.job import Job, JobHandler, JobOptions
from prospector.jobs.registry import JobDefinition, JobRegistry
from prospector.main.exceptions import JobMessageException, NotReadyException
from prospector.main.job_context import job_context
from prospector.main.logging import get_logger

logger = get_logger(__name__)


class JobConsumer:
    """Receives jobs from the broker channel and runs their handlers.

    Handlers run as independent tasks. A job that arrives while the consumer
    is at its concurrency ceiling is dropped, not queued.
    """

    def __init__(
        self,
        broker: JobBroker,
        job_channel: str = "job_queue",
        default_concurrency: int = 5,
        drain_timeout: float = 30.0,
        registry: Optional[JobRegistry] = None,
    ):
        if default_concurrency < 1:
            raise ValueError("Concurrency must be at least 1")

        self.broker = broker
        self.job_channel = job_channel
        self.concurrency = default_concurrency
        self.drain_timeout = drain_timeout
        self.registry = registry if registry is not None else JobRegistry()

        self._initialized = False
        self._processing = False
        self._active_tasks: set[asyncio.Task] = set()
        self._active_by_name: Counter[str] = Counter()
        self._stats: Counter[str] = Counter()

    async def initialize(self) -> None:
        await self.broker.connect()
        self.broker.add_shutdown_hook(self.stop_processing)
        self._initialized = True
        logger.info("Job consumer initialized", extra={"channel": self.job_channel})

    def is_ready(self) -> bool:
        return self._initialized and self.broker.is_ready()

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def active_job_count(self) -> int:
        return len(self._active_tasks)

    def define_job(
        self,
        name: str,
        options: Union[JobOptions, dict[str, Any], None],
        handler: JobHandler,
    ) -> JobDefinition:
        if not self._initialized:
            raise NotReadyException("Consumer not initialized. Call initialize() first.")
        if not self.broker.is_ready():
            raise NotReadyException(f"{self.broker.name} not connected")

        definition = self.registry.register(name, handler, options)
        logger.info(
            f"Defined job {name}",
            extra={
                "job_name": name,
                "concurrency": definition.concurrency,
                "priority": definition.options.priority,
            },
        )
        return definition

    def define(
        self,
        name: str,
        handler: JobHandler,
        options: Union[JobOptions, dict[str, Any], None] = None,
    ) -> JobDefinition:
        return self.define_job(name, options, handler)

    def registered_jobs(self) -> list[str]:
        return self.registry.names()

    def has_job(self, name: str) -> bool:
        return name in self.registry

    def get_job_definition(self, name: str) -> Optional[JobDefinition]:
        return self.registry.get(name)

    def set_concurrency(self, concurrency: int) -> None:
        if concurrency < 1:
            raise ValueError("Concurrency must be at least 1")
        self.concurrency = concurrency
        logger.info("Consumer concurrency updated", extra={"concurrency": concurrency})

    async def start_processing(self) -> None:
        if not self._initialized:
            raise NotReadyException("Consumer not initialized. Call initialize() first.")
        if self._processing:
            logger.info("Consumer is already processing jobs")
            return

        await self.broker.subscribe(self.job_channel, self._on_message)
        self._processing = True
        logger.info(
            "Started processing jobs",
            extra={"channel": self.job_channel, "concurrency": self.concurrency},
        )

    async def _on_message(self, message: str, channel: str) -> None:
        self._stats["received"] += 1

        # Draining: nothing new starts once stop_processing has begun
        if not self._processing:
            self._stats["dropped_stopped"] += 1
            logger.warning(
                "Consumer is stopping, dropping job message", extra={"channel": channel}
            )
            return

        try:
            job = Job.from_message(message)
        except JobMessageException:
            self._stats["malformed"] += 1
            logger.exception("Dropping malformed job message", extra={"channel": channel})
            return

        definition = self.registry.get(job.name)
        if definition is None:
            self._stats["dropped_unknown"] += 1
            logger.warning(
                f"No handler defined for job {job.name}, dropping",
                extra={"job_id": job.id, "job_name": job.name},
            )
            return

        if self.active_job_count >= self.concurrency:
            self._stats["dropped_overflow"] += 1
            logger.warning(
                "Concurrency limit reached, dropping job",
                extra={
                    "job_id": job.id,
                    "job_name": job.name,
                    "active_jobs": self.active_job_count,
                    "concurrency": self.concurrency,
                },
            )
            return

        if (
            definition.concurrency is not None
            and self._active_by_name[job.name] >= definition.concurrency
        ):
            self._stats["dropped_overflow"] += 1
            logger.warning(
                f"Concurrency limit for {job.name} reached, dropping job",
                extra={
                    "job_id": job.id,
                    "job_name": job.name,
                    "active_jobs": self._active_by_name[job.name],
                    "concurrency": definition.concurrency,
                },
            )
            return

        self._dispatch(definition, job)

    def _dispatch(self, definition: JobDefinition, job: Job) -> asyncio.Task:
        task = asyncio.create_task(self._run(definition, job), name=f"job:{job.name}:{job.id}")
        self._active_tasks.add(task)
        self._active_by_name[job.name] += 1
        self._stats["dispatched"] += 1

        def _on_done(finished: asyncio.Task):
            self._active_tasks.discard(finished)
            self._active_by_name[job.name] -= 1
            if self._active_by_name[job.name] <= 0:
                del self._active_by_name[job.name]
            # Failures are already logged by _run
            if not finished.cancelled():
                finished.exception()

        task.add_done_callback(_on_done)
        return task

    async def _run(self, definition: JobDefinition, job: Job) -> Any:
        with job_context(job):
            started = time.perf_counter()
            logger.info(f"Processing job {job.name}")

            try:
                result = await definition.handler(job)
            except Exception as e:
                self._stats["failed"] += 1
                logger.exception(
                    f"Job {job.name} failed",
                    extra={
                        "duration_ms": int((time.perf_counter() - started) * 1000),
                        "error": str(e),
                    },
                )
                raise

            self._stats["succeeded"] += 1
            logger.info(
                f"Job {job.name} completed",
                extra={"duration_ms": int((time.perf_counter() - started) * 1000)},
            )
            return result

    async def _wait_for_active_jobs(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.drain_timeout

        # The live set, not a snapshot: a task started after the drain began is waited on too
        while self._active_tasks:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(
                    "Drain timed out with jobs still running",
                    extra={
                        "active_jobs": len(self._active_tasks),
                        "timeout_seconds": self.drain_timeout,
                    },
                )
                return
            await asyncio.wait(set(self._active_tasks), timeout=remaining)

    async def stop_processing(self) -> None:
        if not self._processing:
            return

        self._processing = False
        if self._active_tasks:
            logger.info(
                "Waiting for active jobs to finish",
                extra={
                    "active_jobs": len(self._active_tasks),
                    "timeout_seconds": self.drain_timeout,
                },
            )
            await self._wait_for_active_jobs()

        await self.broker.unsubscribe(self.job_channel)
        logger.info("Stopped processing jobs", extra={"channel": self.job_channel})

    async def get_stats(self) -> dict[str, Any]:
        return {
            "initialized": self._initialized,
            "processing": self._processing,
            "channel": self.job_channel,
            "concurrency": self.concurrency,
            "active_jobs": self.active_job_count,
            "registered_jobs": self.registered_jobs(),
            "received": self._stats["received"],
            "dispatched": self._stats["dispatched"],
            "succeeded": self._stats["succeeded"],
            "failed": self._stats["failed"],
            "dropped_unknown": self._stats["dropped_unknown"],
            "dropped_overflow": self._stats["dropped_overflow"],
            "dropped_stopped": self._stats["dropped_stopped"],
            "malformed": self._stats["malformed"],
            "broker": await self.broker.get_stats(),
        }

    async def shutdown(self) -> None:
        await self.stop_processing()
        self._initialized = False

from typing import Any, Optional

from arq import cron
from arq.worker import Function, func
from pydantic import BaseModel

from prospector.jobs.job import Job
from prospector.jobs.registry import JobDefinition, JobRegistry
from prospector.main.config import Settings, get_settings
from prospector.main.container import (
    Container,
    create_container,
    start_resources,
    stop_resources,
)
from prospector.main.job_context import job_context
from prospector.main.logging import get_logger
from prospector.redis.connection import build_arq_redis_settings
from prospector.worker.consumers import register_jobs

logger = get_logger(__name__)

# Every ten minutes
SWEEP_MINUTES = set(range(0, 60, 10))


def _to_function(definition: JobDefinition) -> Function:
    async def run(ctx: dict, envelope: str) -> Any:
        job = Job.from_message(envelope)
        with job_context(job):
            logger.info(f"Processing job {job.name}", extra={"job_try": ctx.get("job_try", 1)})
            result = await definition.handler(job)

        if isinstance(result, BaseModel):
            return result.model_dump(mode="json")
        return result

    timeout = None
    if definition.options.lock_lifetime is not None:
        timeout = definition.options.lock_lifetime / 1000

    return func(run, name=definition.name, max_tries=1, timeout=timeout)


def build_worker_settings(
    registry: JobRegistry,
    settings: Settings,
    container: Optional[Container] = None,
) -> type:
    """Build an arq WorkerSettings class running the registered jobs.

    With a container the worker also owns the DB and HTTP lifecycles and
    sweeps stuck workflows on a cron.
    """
    concurrencies = [d.concurrency for d in registry if d.concurrency is not None]
    max_jobs = max(concurrencies) if concurrencies else settings.worker_max_jobs

    async def startup(ctx: dict) -> None:
        if container is not None:
            await start_resources(container)
        logger.info(
            "arq worker started",
            extra={"registered_jobs": registry.names(), "max_jobs": max_jobs},
        )

    async def shutdown(ctx: dict) -> None:
        if container is not None:
            await stop_resources(container)
        logger.info("arq worker stopped")

    cron_jobs = []
    if container is not None:

        async def sweep_stuck_workflows(ctx: dict) -> int:
            return len(await container.workflow_sweeper().sweep())

        cron_jobs.append(cron(sweep_stuck_workflows, minute=SWEEP_MINUTES, run_at_startup=True))

    return type(
        "WorkerSettings",
        (),
        {
            "functions": [_to_function(definition) for definition in registry],
            "cron_jobs": cron_jobs,
            "redis_settings": build_arq_redis_settings(settings),
            "queue_name": settings.arq_queue_name,
            "on_startup": startup,
            "on_shutdown": shutdown,
            "retry_jobs": False,
            "max_tries": 1,
            "max_jobs": max_jobs,
            "allow_abort_jobs": True,
            "job_completion_wait": int(settings.job_shutdown_timeout_seconds),
            "health_check_interval": 60,
        },
    )


def create_worker_settings(settings: Optional[Settings] = None) -> type:
    settings = settings or get_settings()
    container = create_container(settings)
    registry = register_jobs(container.job_registry(), container.lead_discovery_handler())
    return build_worker_settings(registry, settings, container)

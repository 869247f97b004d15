from prospector.jobs.consumer import JobConsumer
from prospector.jobs.job import JobOptions, JobPriority
from prospector.jobs.registry import JobRegistry
from prospector.lead_discovery.lead_discovery_handler import (
    LEAD_DISCOVERY_JOB,
    LeadDiscoveryHandler,
)
from prospector.main.logging import get_logger

logger = get_logger(__name__)

LEAD_DISCOVERY_OPTIONS = JobOptions(
    concurrency=3,
    priority=JobPriority.NORMAL,
    lock_lifetime=30 * 60 * 1000,
)


def register_jobs(registry: JobRegistry, handler: LeadDiscoveryHandler) -> JobRegistry:
    """Register every job this service runs. Used directly by the arq worker."""
    registry.register(LEAD_DISCOVERY_JOB, handler, LEAD_DISCOVERY_OPTIONS)
    return registry


async def initiate_consumers(consumer: JobConsumer, handler: LeadDiscoveryHandler) -> None:
    consumer.define_job(LEAD_DISCOVERY_JOB, LEAD_DISCOVERY_OPTIONS, handler)
    await consumer.start_processing()

    logger.info(
        "Job consumers initiated",
        extra={"registered_jobs": consumer.registered_jobs()},
    )

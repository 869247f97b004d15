from contextlib import asynccontextmanager

from fastapi import FastAPI

from prospector.main.config import get_settings
from prospector.main.container import (
    Container,
    create_container,
    start_resources,
    stop_resources,
)
from prospector.main.logging import get_logger
from prospector.worker.consumers import initiate_consumers

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    container = getattr(app.state, "container", None)
    if container is None:
        container = create_container(get_settings())
        app.state.container = container

    await startup(container)
    yield
    await shutdown(container)


def _consumes_in_process(container: Container) -> bool:
    settings = container.settings()
    return settings.run_consumer_in_api and settings.job_backend == "pubsub"


async def startup(container: Container):
    await start_resources(container)
    await container.producer().initialize()

    if _consumes_in_process(container):
        consumer = container.consumer()
        await consumer.initialize()
        await container.workflow_sweeper().sweep()
        await initiate_consumers(consumer, container.lead_discovery_handler())

    logger.info(
        "Application started",
        extra={
            "job_backend": container.settings().job_backend,
            "consumer_in_process": _consumes_in_process(container),
        },
    )


async def shutdown(container: Container):
    # For pubsub this also drains the in-process consumer through the broker's hooks
    await container.producer().shutdown()
    await stop_resources(container)

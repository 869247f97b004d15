import asyncio
from typing import Optional

from arq import run_worker as run_arq_worker

from prospector.main.config import Settings, get_settings
from prospector.main.container import create_container, start_resources, stop_resources
from prospector.main.logging import get_logger
from prospector.worker.arq import create_worker_settings
from prospector.worker.consumers import initiate_consumers

logger = get_logger(__name__)


async def run_consumer(settings: Optional[Settings] = None) -> None:
    """Consume jobs from the broker channel until SIGTERM/SIGINT."""
    settings = settings or get_settings()
    container = create_container(settings)
    await start_resources(container)

    broker = container.broker()
    consumer = container.consumer()
    try:
        await consumer.initialize()
        broker.install_signal_handlers()

        await container.workflow_sweeper().sweep()
        await initiate_consumers(consumer, container.lead_discovery_handler())

        logger.info("Consumer worker running", extra={"channel": settings.job_channel})
        await broker.wait_closed()
    finally:
        await broker.graceful_shutdown()
        await stop_resources(container)


def main() -> None:
    settings = get_settings()
    if settings.job_backend == "arq":
        run_arq_worker(create_worker_settings(settings))
        return

    asyncio.run(run_consumer(settings))


if __name__ == "__main__":
    main()

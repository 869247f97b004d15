from dependency_injector import containers, providers

from prospector.credits.credit_balance_repo import CreditBalanceRepository
from prospector.database.database import DatabaseSessionManager
from prospector.jobs.arq_producer import ArqJobProducer
from prospector.jobs.consumer import JobConsumer
from prospector.jobs.producer import JobProducer
from prospector.jobs.redis_broker import RedisBroker
from prospector.jobs.registry import JobRegistry
from prospector.lead_discovery.lead_discovery_client import LeadDiscoveryClient
from prospector.lead_discovery.lead_discovery_handler import LeadDiscoveryHandler
from prospector.main.aiohttp_client import AioHttpClient
from prospector.main.config import Settings
from prospector.redis.connection import build_arq_redis_settings
from prospector.workflows.workflow_config_repo import WorkflowConfigRepository
from prospector.workflows.workflow_repo import WorkflowRepository
from prospector.workflows.workflow_service import WorkflowService
from prospector.workflows.workflow_sweeper import WorkflowSweeper


def _job_backend(settings: Settings) -> str:
    return settings.job_backend


class Container(containers.DeclarativeContainer):
    """Per-process object graph. Build one with ``Container(settings=providers.Object(settings))``."""

    settings = providers.Dependency(instance_of=Settings)

    # Infrastructure
    sessionmanager = providers.Singleton(DatabaseSessionManager)
    aiohttp_client = providers.Singleton(AioHttpClient)
    broker = providers.Singleton(RedisBroker, settings=settings)
    job_registry = providers.Singleton(JobRegistry)

    # Jobs
    producer = providers.Selector(
        providers.Callable(_job_backend, settings),
        pubsub=providers.Singleton(
            JobProducer,
            broker=broker,
            job_channel=settings.provided.job_channel,
        ),
        arq=providers.Singleton(
            ArqJobProducer,
            redis_settings=providers.Callable(build_arq_redis_settings, settings),
            queue_name=settings.provided.arq_queue_name,
        ),
    )
    consumer = providers.Singleton(
        JobConsumer,
        broker=broker,
        job_channel=settings.provided.job_channel,
        default_concurrency=settings.provided.worker_max_jobs,
        drain_timeout=settings.provided.job_shutdown_timeout_seconds,
        registry=job_registry,
    )

    # Repositories
    workflow_repo = providers.Singleton(WorkflowRepository, sessionmanager=sessionmanager)
    workflow_config_repo = providers.Singleton(
        WorkflowConfigRepository, sessionmanager=sessionmanager
    )
    credit_balance_repo = providers.Singleton(
        CreditBalanceRepository, sessionmanager=sessionmanager
    )

    # Lead discovery
    lead_discovery_client = providers.Singleton(
        LeadDiscoveryClient,
        http_client=aiohttp_client,
        base_url=settings.provided.agent_api_base_url,
        auth_token=settings.provided.agent_api_auth_token,
        llm_type=settings.provided.agent_llm_type,
        timeout_seconds=settings.provided.agent_api_timeout_seconds,
    )
    lead_discovery_handler = providers.Singleton(
        LeadDiscoveryHandler,
        workflow_repo=workflow_repo,
        workflow_config_repo=workflow_config_repo,
        credit_balance_repo=credit_balance_repo,
        client=lead_discovery_client,
    )

    # Services
    workflow_service = providers.Factory(
        WorkflowService,
        workflow_repo=workflow_repo,
        workflow_config_repo=workflow_config_repo,
        producer=producer,
    )
    workflow_sweeper = providers.Singleton(
        WorkflowSweeper,
        workflow_repo=workflow_repo,
        timeout_minutes=settings.provided.stuck_workflow_timeout_minutes,
    )


def create_container(settings: Settings) -> Container:
    return Container(settings=providers.Object(settings))


async def start_resources(container: Container) -> None:
    """Open the connections every process needs before handling work."""
    settings = container.settings()
    container.aiohttp_client().start()
    container.sessionmanager().init(
        settings.database_url,
        pool_size=settings.postgres_pool_size,
        max_overflow=settings.postgres_max_overflow,
    )


async def stop_resources(container: Container) -> None:
    await container.sessionmanager().close()
    await container.aiohttp_client().stop()

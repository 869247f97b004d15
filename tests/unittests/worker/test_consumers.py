import asyncio
from uuid import uuid4

import pytest
import pytest_asyncio

from prospector.jobs.consumer import JobConsumer
from prospector.jobs.job import JobPriority
from prospector.jobs.producer import JobProducer
from prospector.jobs.registry import JobRegistry
from prospector.lead_discovery.lead_discovery_handler import (
    LEAD_DISCOVERY_JOB,
    LeadDiscoveryHandler,
)
from prospector.main.models import WorkflowStatus
from prospector.worker.consumers import (
    LEAD_DISCOVERY_OPTIONS,
    initiate_consumers,
    register_jobs,
)
from tests.unittests.fakes import (
    FakeBroker,
    FakeLeadDiscoveryClient,
    InMemoryCreditBalanceRepository,
    InMemoryWorkflowConfigRepository,
    InMemoryWorkflowRepository,
)


async def _noop(job):
    return None


@pytest_asyncio.fixture
async def consumer():
    broker = FakeBroker()
    consumer = JobConsumer(broker, job_channel="job_queue", default_concurrency=5)
    await consumer.initialize()
    yield consumer
    await broker.graceful_shutdown()


@pytest.mark.asyncio
async def test_initiate_consumers_defines_lead_discovery_and_starts(consumer):
    await initiate_consumers(consumer, _noop)

    definition = consumer.get_job_definition(LEAD_DISCOVERY_JOB)
    assert definition.handler is _noop
    assert definition.concurrency == 3
    assert definition.options.priority == JobPriority.NORMAL
    assert definition.options.lock_lifetime == 30 * 60 * 1000
    assert consumer.is_processing
    assert "job_queue" in consumer.broker.callbacks


def test_register_jobs_fills_registry_without_a_broker():
    registry = register_jobs(JobRegistry(), _noop)

    assert registry.names() == [LEAD_DISCOVERY_JOB]
    assert registry.get(LEAD_DISCOVERY_JOB).options == LEAD_DISCOVERY_OPTIONS


@pytest.mark.asyncio
async def test_published_workflow_runs_through_consumer_and_handler(consumer):
    broker = consumer.broker
    workflow_repo = InMemoryWorkflowRepository()
    config_repo = InMemoryWorkflowConfigRepository()
    credit_repo = InMemoryCreditBalanceRepository()

    organisation_id = uuid4()
    config = config_repo.add(organisation_id)
    workflow = workflow_repo.add(organisation_id, config.workflow_config_id)
    credit_repo.balances[organisation_id] = 50

    handler = LeadDiscoveryHandler(
        workflow_repo=workflow_repo,
        workflow_config_repo=config_repo,
        credit_balance_repo=credit_repo,
        client=FakeLeadDiscoveryClient(leads=4),
    )
    await initiate_consumers(consumer, handler)

    producer = JobProducer(broker, job_channel="job_queue")
    await producer.initialize()
    enqueued = await producer.now(
        LEAD_DISCOVERY_JOB,
        {
            "workflow_config_id": str(config.workflow_config_id),
            "workflow_id": str(workflow.workflow_id),
            "organisation_id": str(organisation_id),
        },
    )
    assert enqueued.subscribers == 1

    channel, message = broker.published[0]
    await broker.deliver(channel, message)
    await asyncio.gather(*list(consumer._active_tasks))

    assert workflow_repo.workflows[workflow.workflow_id].status == WorkflowStatus.FINISHED
    assert credit_repo.balances[organisation_id] == 46
    stats = await consumer.get_stats()
    assert stats["succeeded"] == 1
    assert stats["failed"] == 0

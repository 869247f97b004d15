from uuid import uuid4

import pytest

from prospector.jobs.job import Job
from prospector.lead_discovery.lead_discovery_handler import (
    LEAD_DISCOVERY_JOB,
    LeadDiscoveryHandler,
)
from prospector.main.exceptions import (
    InsufficientCreditsException,
    LeadDiscoveryException,
    NotFoundException,
    ValidationException,
)
from prospector.main.models import WorkflowStatus
from tests.unittests.fakes import (
    FakeLeadDiscoveryClient,
    InMemoryCreditBalanceRepository,
    InMemoryWorkflowConfigRepository,
    InMemoryWorkflowRepository,
)


class World:
    """One organisation with a config, a queued workflow and a balance."""

    def __init__(self, balance: float | None = 100, leads: int = 5, error: Exception | None = None):
        self.organisation_id = uuid4()
        self.workflow_repo = InMemoryWorkflowRepository()
        self.config_repo = InMemoryWorkflowConfigRepository()
        self.credit_repo = InMemoryCreditBalanceRepository()
        self.client = FakeLeadDiscoveryClient(leads=leads, error=error)

        self.config = self.config_repo.add(self.organisation_id)
        self.workflow = self.workflow_repo.add(self.organisation_id, self.config.workflow_config_id)
        if balance is not None:
            self.credit_repo.balances[self.organisation_id] = balance

        self.handler = LeadDiscoveryHandler(
            workflow_repo=self.workflow_repo,
            workflow_config_repo=self.config_repo,
            credit_balance_repo=self.credit_repo,
            client=self.client,
        )

    def job(self, **overrides) -> Job:
        data = {
            "workflow_config_id": str(self.config.workflow_config_id),
            "workflow_id": str(self.workflow.workflow_id),
            "organisation_id": str(self.organisation_id),
        }
        data.update(overrides)
        return Job.create(LEAD_DISCOVERY_JOB, {k: v for k, v in data.items() if v is not None})

    @property
    def current(self):
        return self.workflow_repo.workflows[self.workflow.workflow_id]

    @property
    def statuses(self):
        return [status for _, status in self.workflow_repo.transitions]


@pytest.mark.asyncio
async def test_successful_run_debits_leads_and_finishes():
    world = World(balance=100, leads=5)

    outcome = await world.handler(world.job())

    assert world.statuses == [WorkflowStatus.RUNNING, WorkflowStatus.FINISHED]
    assert world.current.status == WorkflowStatus.FINISHED
    assert world.current.finished_at > world.current.started_at
    assert world.credit_repo.balances[world.organisation_id] == 95

    assert outcome.success is True
    assert outcome.leads_generated == 5
    assert outcome.credits_used == 5
    assert outcome.previous_balance == 100
    assert outcome.new_balance == 95
    assert outcome.finished_at > outcome.started_at

    transaction = world.credit_repo.transactions[0]
    assert transaction["transaction_type"] == "D"
    assert transaction["credit_amount"] == 5
    assert transaction["workflow_id"] == world.workflow.workflow_id
    assert outcome.transaction_id == transaction["transaction_id"]


@pytest.mark.asyncio
async def test_external_call_uses_config_fields():
    world = World()

    await world.handler(world.job())

    request = world.client.requests[0]
    assert request.workflow_id == world.workflow.workflow_id
    assert request.organisation_id == world.organisation_id
    assert request.domains == world.config.domains
    assert request.lead_count == world.config.leads_count
    assert request.company_name == world.config.company_name


@pytest.mark.asyncio
async def test_external_failure_finishes_workflow_and_reraises():
    world = World(balance=100, error=LeadDiscoveryException("Lead discovery API call failed: 500"))

    with pytest.raises(LeadDiscoveryException):
        await world.handler(world.job())

    assert world.statuses == [WorkflowStatus.RUNNING, WorkflowStatus.FINISHED]
    assert world.current.status == WorkflowStatus.FINISHED
    assert world.credit_repo.balances[world.organisation_id] == 100
    assert world.credit_repo.transactions == []


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["workflow_config_id", "workflow_id", "organisation_id"])
async def test_missing_field_fails_before_any_io(missing):
    world = World()

    with pytest.raises(ValidationException, match=f"{missing} is required"):
        await world.handler(world.job(**{missing: None}))

    assert world.config_repo.calls == 0
    assert world.credit_repo.calls == 0
    assert world.workflow_repo.transitions == []
    assert world.client.requests == []


@pytest.mark.asyncio
async def test_malformed_id_is_rejected():
    world = World()

    with pytest.raises(ValidationException):
        await world.handler(world.job(workflow_id="not-a-uuid"))

    assert world.workflow_repo.transitions == []


@pytest.mark.asyncio
@pytest.mark.parametrize("balance", [0, -3, None])
async def test_no_credit_leaves_workflow_queued(balance):
    world = World(balance=balance)

    with pytest.raises(InsufficientCreditsException):
        await world.handler(world.job())

    assert world.current.status == WorkflowStatus.QUEUED
    assert world.workflow_repo.transitions == []
    assert world.client.requests == []


@pytest.mark.asyncio
async def test_missing_config_leaves_workflow_queued():
    world = World()

    with pytest.raises(NotFoundException, match="Workflow config not found"):
        await world.handler(world.job(workflow_config_id=str(uuid4())))

    assert world.current.status == WorkflowStatus.QUEUED
    assert world.client.requests == []


@pytest.mark.asyncio
async def test_config_of_other_organisation_is_not_visible():
    world = World()
    other = World()

    with pytest.raises(NotFoundException):
        await world.handler(world.job(workflow_config_id=str(other.config.workflow_config_id)))


@pytest.mark.asyncio
async def test_missing_workflow_is_not_found_and_not_called():
    world = World()

    with pytest.raises(NotFoundException, match="Workflow not found"):
        await world.handler(world.job(workflow_id=str(uuid4())))

    assert world.client.requests == []


@pytest.mark.asyncio
async def test_failure_to_mark_finished_keeps_original_error():
    world = World(error=LeadDiscoveryException("Lead discovery API call failed: timeout"))
    world.workflow_repo.failing_statuses = {WorkflowStatus.FINISHED}

    with pytest.raises(LeadDiscoveryException, match="timeout"):
        await world.handler(world.job())

    assert world.statuses == [WorkflowStatus.RUNNING, WorkflowStatus.FINISHED]


@pytest.mark.asyncio
async def test_zero_leads_records_no_transaction():
    world = World(balance=10, leads=0)

    outcome = await world.handler(world.job())

    assert outcome.credits_used == 0
    assert outcome.transaction_id is None
    assert world.credit_repo.balances[world.organisation_id] == 10
    assert world.credit_repo.transactions == []
    assert world.current.status == WorkflowStatus.FINISHED


@pytest.mark.asyncio
async def test_balance_may_go_negative():
    world = World(balance=2, leads=5)

    outcome = await world.handler(world.job())

    assert outcome.new_balance == -3
    assert world.current.status == WorkflowStatus.FINISHED


@pytest.mark.asyncio
async def test_repeated_finish_transition_is_harmless():
    world = World()
    await world.handler(world.job())
    first_finish = world.current.finished_at

    again = await world.workflow_repo.update_status(
        world.workflow.workflow_id, WorkflowStatus.FINISHED, world.organisation_id
    )

    assert again.status == WorkflowStatus.FINISHED
    assert again.finished_at >= first_finish


@pytest.mark.asyncio
async def test_two_jobs_for_one_workflow_both_run():
    world = World(balance=100, leads=5)

    await world.handler(world.job())
    await world.handler(world.job())

    assert world.statuses == [
        WorkflowStatus.RUNNING,
        WorkflowStatus.FINISHED,
        WorkflowStatus.RUNNING,
        WorkflowStatus.FINISHED,
    ]
    assert world.credit_repo.balances[world.organisation_id] == 90

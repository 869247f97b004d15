import time
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from prospector.credits.credit_balance_repo import CreditBalanceRepository
from prospector.jobs.job import Job
from prospector.lead_discovery.lead_discovery_client import (
    LeadDiscoveryClient,
    LeadDiscoveryRequest,
)
from prospector.main.exceptions import (
    InsufficientCreditsException,
    NotFoundException,
    ValidationException,
)
from prospector.main.job_context import set_job_context
from prospector.main.logging import get_logger
from prospector.main.models import WorkflowStatus
from prospector.workflows.workflow_config_repo import WorkflowConfigRepository
from prospector.workflows.workflow_repo import WorkflowRepository

logger = get_logger(__name__)

LEAD_DISCOVERY_JOB = "lead_discovery_handler"

REQUIRED_FIELDS = ("workflow_config_id", "workflow_id", "organisation_id")


class LeadDiscoveryOutcome(BaseModel):
    success: bool
    workflow_id: UUID
    workflow_config_id: UUID
    organisation_id: UUID
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    leads_generated: int
    credits_used: float
    previous_balance: float
    new_balance: float
    transaction_id: Optional[UUID] = None


def _parse_ids(data: dict[str, Any]) -> tuple[UUID, UUID, UUID]:
    ids = []
    for field in REQUIRED_FIELDS:
        value = data.get(field)
        if not value:
            raise ValidationException(f"{field} is required")
        try:
            ids.append(value if isinstance(value, UUID) else UUID(str(value)))
        except ValueError as e:
            raise ValidationException(f"{field} is not a valid id: {value}") from e
    return ids[0], ids[1], ids[2]


class LeadDiscoveryHandler:
    """Runs one lead discovery workflow.

    QUEUED -> RUNNING -> FINISHED. Anything that fails before the workflow
    is RUNNING leaves it QUEUED. Anything that fails afterwards still ends
    it FINISHED. The error that stopped the run is re-raised in both cases.
    """

    def __init__(
        self,
        workflow_repo: WorkflowRepository,
        workflow_config_repo: WorkflowConfigRepository,
        credit_balance_repo: CreditBalanceRepository,
        client: LeadDiscoveryClient,
    ):
        self.workflow_repo = workflow_repo
        self.workflow_config_repo = workflow_config_repo
        self.credit_balance_repo = credit_balance_repo
        self.client = client

    async def __call__(self, job: Job) -> LeadDiscoveryOutcome:
        try:
            workflow_config_id, workflow_id, organisation_id = _parse_ids(job.data)
        except ValidationException as e:
            logger.error(
                f"Rejected lead discovery job: {e}",
                extra={"job_id": job.id, "data_keys": sorted(job.data)},
            )
            raise

        set_job_context(workflow_id=str(workflow_id), organisation_id=str(organisation_id))
        log_context = {
            "workflow_id": str(workflow_id),
            "workflow_config_id": str(workflow_config_id),
            "organisation_id": str(organisation_id),
        }
        started = time.perf_counter()
        running = False

        logger.info("Starting lead discovery process", extra=log_context)

        try:
            config = await self.workflow_config_repo.get(workflow_config_id, organisation_id)
            if config is None:
                raise NotFoundException(
                    f"Workflow config not found: {workflow_config_id}"
                    f" for organisation: {organisation_id}"
                )

            balance = await self.credit_balance_repo.get_by_organisation(organisation_id)
            if balance is None or balance.credit_balance <= 0:
                raise InsufficientCreditsException(
                    f"No credit balance found for this organisation: {organisation_id}"
                )

            workflow = await self.workflow_repo.update_status(
                workflow_id, WorkflowStatus.RUNNING, organisation_id
            )
            if workflow is None:
                raise NotFoundException(
                    f"Workflow not found: {workflow_id} for organisation: {organisation_id}"
                )
            running = True
            started_at = workflow.started_at or datetime.now(timezone.utc)
            logger.info("Updated workflow status to RUNNING", extra=log_context)

            result = await self.client.generate_leads(
                LeadDiscoveryRequest(
                    organisation_id=config.organisation_id,
                    workflow_id=workflow_id,
                    domains=config.domains or [],
                    locations=config.locations or [],
                    designations=config.designations or [],
                    lead_count=config.leads_count or 0,
                    company_name=config.company_name,
                    company_website=config.company_website,
                    custom_instructions=config.custom_instructions or [],
                )
            )
            leads_generated = result.leads_generated

            debit = await self.credit_balance_repo.debit(
                organisation_id, leads_generated, workflow_id
            )
            logger.info(
                "Debited organisation credits",
                extra={
                    **log_context,
                    "credits_used": debit.credits_used,
                    "previous_balance": debit.previous_balance,
                    "new_balance": debit.new_balance,
                },
            )

            finished = await self.workflow_repo.update_status(
                workflow_id, WorkflowStatus.FINISHED, organisation_id
            )
            finished_at = (
                finished.finished_at
                if finished is not None and finished.finished_at is not None
                else datetime.now(timezone.utc)
            )
        except Exception as e:
            if running:
                logger.exception(
                    f"Lead discovery failed, marking workflow FINISHED: {e}", extra=log_context
                )
                await self._force_finished(workflow_id, organisation_id, log_context)
            else:
                logger.exception(
                    f"Lead discovery failed before the workflow started: {e}", extra=log_context
                )
            raise

        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "Lead discovery completed",
            extra={**log_context, "leads_generated": leads_generated, "duration_ms": duration_ms},
        )

        return LeadDiscoveryOutcome(
            success=True,
            workflow_id=workflow_id,
            workflow_config_id=workflow_config_id,
            organisation_id=organisation_id,
            started_at=started_at,
            finished_at=finished_at,
            duration_ms=duration_ms,
            leads_generated=leads_generated,
            credits_used=debit.credits_used,
            previous_balance=debit.previous_balance,
            new_balance=debit.new_balance,
            transaction_id=debit.transaction_id,
        )

    async def _force_finished(
        self, workflow_id: UUID, organisation_id: UUID, log_context: dict[str, str]
    ):
        try:
            await self.workflow_repo.update_status(
                workflow_id, WorkflowStatus.FINISHED, organisation_id
            )
        except Exception:
            # The caller re-raises the failure that stopped the run
            logger.exception("Could not mark failed workflow FINISHED", extra=log_context)

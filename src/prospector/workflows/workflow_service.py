from typing import Optional
from uuid import UUID

from prospector.jobs.job import JobStatusSnapshot
from prospector.jobs.producer import BaseJobProducer
from prospector.lead_discovery.lead_discovery_handler import LEAD_DISCOVERY_JOB
from prospector.main.exceptions import BadRequestException, NotFoundException
from prospector.main.logging import get_logger
from prospector.main.models import PaginatedResponse, WorkflowStatus
from prospector.workflows.workflow import WorkflowInDB, WorkflowRun
from prospector.workflows.workflow_config_repo import WorkflowConfigRepository
from prospector.workflows.workflow_repo import WorkflowRepository

logger = get_logger(__name__)


class WorkflowService:
    def __init__(
        self,
        workflow_repo: WorkflowRepository,
        workflow_config_repo: WorkflowConfigRepository,
        producer: BaseJobProducer,
    ):
        self.workflow_repo = workflow_repo
        self.workflow_config_repo = workflow_config_repo
        self.producer = producer

    async def run_workflow(self, organisation_id: UUID, workflow_config_id: UUID) -> WorkflowRun:
        config = await self.workflow_config_repo.get(workflow_config_id, organisation_id)
        if config is None:
            raise NotFoundException("Workflow config not found")

        workflow = await self.workflow_repo.create(organisation_id, workflow_config_id)
        job = await self.producer.now(
            LEAD_DISCOVERY_JOB,
            {
                "workflow_config_id": str(workflow_config_id),
                "workflow_id": str(workflow.workflow_id),
                "organisation_id": str(organisation_id),
            },
        )

        logger.info(
            "Workflow queued",
            extra={
                "workflow_id": str(workflow.workflow_id),
                "workflow_config_id": str(workflow_config_id),
                "organisation_id": str(organisation_id),
                "job_id": job.id,
            },
        )

        return WorkflowRun(
            workflow_id=workflow.workflow_id,
            job_id=job.id,
            workflow_config_id=workflow_config_id,
            status=workflow.status,
        )

    async def get_workflow(self, workflow_id: UUID, organisation_id: UUID) -> WorkflowInDB:
        workflow = await self.workflow_repo.get(workflow_id, organisation_id)
        if workflow is None:
            raise NotFoundException("Workflow not found")
        return workflow

    async def list_workflows(
        self,
        organisation_id: UUID,
        status: Optional[WorkflowStatus] = None,
        workflow_config_id: Optional[UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> PaginatedResponse[WorkflowInDB]:
        workflows, total_count = await self.workflow_repo.list(
            organisation_id,
            status=status,
            workflow_config_id=workflow_config_id,
            limit=limit,
            offset=offset,
        )
        return PaginatedResponse[WorkflowInDB](
            items=workflows, total_count=total_count, limit=limit, offset=offset
        )

    async def delete_workflow(self, workflow_id: UUID, organisation_id: UUID) -> None:
        workflow = await self.get_workflow(workflow_id, organisation_id)
        if workflow.status != WorkflowStatus.QUEUED:
            raise BadRequestException(
                f"Only QUEUED workflows can be deleted, workflow is {workflow.status.value}"
            )

        deleted = await self.workflow_repo.delete(
            workflow_id, organisation_id, only_status=WorkflowStatus.QUEUED
        )
        if not deleted:
            # Picked up by a consumer between the read and the delete
            raise BadRequestException("Only QUEUED workflows can be deleted")

    def _belongs_to(self, snapshot: JobStatusSnapshot, organisation_id: UUID) -> bool:
        owner = snapshot.data.get("organisation_id")
        return owner is None or owner == str(organisation_id)

    async def get_job_status(self, job_id: str, organisation_id: UUID) -> JobStatusSnapshot:
        snapshot = await self.producer.get_job_status(job_id)
        if snapshot is None or not self._belongs_to(snapshot, organisation_id):
            raise NotFoundException("Job not found or status unavailable")
        return snapshot

    async def cancel_job(self, job_id: str, organisation_id: UUID) -> None:
        snapshot = await self.producer.get_job_status(job_id)
        if snapshot is not None and not self._belongs_to(snapshot, organisation_id):
            raise NotFoundException("Job not found or cannot be cancelled")

        if not await self.producer.cancel_job(job_id):
            raise NotFoundException("Job not found or cannot be cancelled")

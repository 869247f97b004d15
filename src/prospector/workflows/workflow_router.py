from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from prospector.jobs.job import JobStatusSnapshot
from prospector.main.container import Container
from prospector.main.models import PaginatedResponse, WorkflowStatus
from prospector.server.dependencies import get_container, get_organisation_id
from prospector.workflows.workflow import WorkflowPublic, WorkflowRun

router = APIRouter()


@router.post(
    "/workflow-configs/{workflow_config_id}/run",
    response_model=WorkflowRun,
    status_code=status.HTTP_202_ACCEPTED,
)
async def run_workflow(
    workflow_config_id: UUID,
    organisation_id: UUID = Depends(get_organisation_id),
    container: Container = Depends(get_container()),
):
    service = container.workflow_service()
    return await service.run_workflow(organisation_id, workflow_config_id)


@router.get("/workflows", response_model=PaginatedResponse[WorkflowPublic])
async def list_workflows(
    status: Optional[WorkflowStatus] = None,
    workflow_config_id: Optional[UUID] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    organisation_id: UUID = Depends(get_organisation_id),
    container: Container = Depends(get_container()),
):
    service = container.workflow_service()
    return await service.list_workflows(
        organisation_id,
        status=status,
        workflow_config_id=workflow_config_id,
        limit=limit,
        offset=offset,
    )


@router.get("/workflows/{workflow_id}", response_model=WorkflowPublic)
async def get_workflow(
    workflow_id: UUID,
    organisation_id: UUID = Depends(get_organisation_id),
    container: Container = Depends(get_container()),
):
    service = container.workflow_service()
    return await service.get_workflow(workflow_id, organisation_id)


@router.delete("/workflows/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workflow(
    workflow_id: UUID,
    organisation_id: UUID = Depends(get_organisation_id),
    container: Container = Depends(get_container()),
):
    service = container.workflow_service()
    await service.delete_workflow(workflow_id, organisation_id)


@router.get("/jobs/{job_id}", response_model=JobStatusSnapshot)
async def get_job_status(
    job_id: str,
    organisation_id: UUID = Depends(get_organisation_id),
    container: Container = Depends(get_container()),
):
    service = container.workflow_service()
    return await service.get_job_status(job_id, organisation_id)


@router.delete("/jobs/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_job(
    job_id: str,
    organisation_id: UUID = Depends(get_organisation_id),
    container: Container = Depends(get_container()),
):
    service = container.workflow_service()
    await service.cancel_job(job_id, organisation_id)

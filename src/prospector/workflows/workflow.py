from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from prospector.main.models import InDB, WorkflowStatus


class WorkflowConfig(InDB):
    workflow_config_id: UUID
    organisation_id: UUID
    domains: list[str] = []
    locations: list[str] = []
    designations: list[str] = []
    runs_at: Optional[datetime] = None
    leads_count: int = 0
    company_name: Optional[str] = None
    company_website: Optional[str] = None
    custom_instructions: list[str] = []
    created_by: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WorkflowInDB(InDB):
    workflow_id: UUID
    organisation_id: UUID
    workflow_config_id: UUID
    status: WorkflowStatus
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WorkflowPublic(WorkflowInDB):
    pass


class WorkflowRun(BaseModel):
    workflow_id: UUID
    job_id: str
    workflow_config_id: UUID
    status: WorkflowStatus

from typing import Optional
from uuid import UUID

from sqlalchemy import select

from prospector.database.database import DatabaseSessionManager
from prospector.database.tables.workflow_config_table import WorkflowConfigs
from prospector.workflows.workflow import WorkflowConfig


class WorkflowConfigRepository:
    def __init__(self, sessionmanager: DatabaseSessionManager):
        self.sessionmanager = sessionmanager

    async def get(self, workflow_config_id: UUID, organisation_id: UUID) -> Optional[WorkflowConfig]:
        stmt = select(WorkflowConfigs).where(
            WorkflowConfigs.workflow_config_id == workflow_config_id,
            WorkflowConfigs.organisation_id == organisation_id,
        )

        async with self.sessionmanager.transaction() as session:
            record = await session.scalar(stmt)
            if record is None:
                return None
            return WorkflowConfig.model_validate(record)

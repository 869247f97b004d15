from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import delete, func, insert, select, update

from prospector.database.database import DatabaseSessionManager
from prospector.database.tables.workflow_table import Workflows
from prospector.main.models import WorkflowStatus
from prospector.workflows.workflow import WorkflowInDB


class WorkflowRepository:
    """Workflow rows. Every call runs in its own transaction."""

    def __init__(self, sessionmanager: DatabaseSessionManager):
        self.sessionmanager = sessionmanager

    async def create(self, organisation_id: UUID, workflow_config_id: UUID) -> WorkflowInDB:
        now = datetime.now(timezone.utc)
        stmt = (
            insert(Workflows)
            .values(
                workflow_id=uuid4(),
                organisation_id=organisation_id,
                workflow_config_id=workflow_config_id,
                status=WorkflowStatus.QUEUED,
                started_at=now,
                updated_at=now,
            )
            .returning(Workflows)
        )

        async with self.sessionmanager.transaction() as session:
            record = await session.scalar(stmt)
            return WorkflowInDB.model_validate(record)

    async def get(self, workflow_id: UUID, organisation_id: UUID) -> Optional[WorkflowInDB]:
        stmt = select(Workflows).where(
            Workflows.workflow_id == workflow_id,
            Workflows.organisation_id == organisation_id,
        )

        async with self.sessionmanager.transaction() as session:
            record = await session.scalar(stmt)
            if record is None:
                return None
            return WorkflowInDB.model_validate(record)

    async def list(
        self,
        organisation_id: UUID,
        status: Optional[WorkflowStatus] = None,
        workflow_config_id: Optional[UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[WorkflowInDB], int]:
        conditions = [Workflows.organisation_id == organisation_id]
        if status is not None:
            conditions.append(Workflows.status == status)
        if workflow_config_id is not None:
            conditions.append(Workflows.workflow_config_id == workflow_config_id)

        stmt = (
            select(Workflows)
            .where(*conditions)
            .order_by(Workflows.updated_at.desc())
            .limit(limit)
            .offset(offset)
        )
        count_stmt = select(func.count()).select_from(Workflows).where(*conditions)

        async with self.sessionmanager.transaction() as session:
            records = await session.scalars(stmt)
            total_count = await session.scalar(count_stmt)
            return [WorkflowInDB.model_validate(record) for record in records], total_count or 0

    async def update_status(
        self,
        workflow_id: UUID,
        status: WorkflowStatus,
        organisation_id: UUID,
    ) -> Optional[WorkflowInDB]:
        """Set the status and stamp the matching timestamp.

        Plain update, so repeating a transition overwrites the timestamp
        instead of failing.
        """
        now = datetime.now(timezone.utc)
        values = {"status": status, "updated_at": now}
        if status == WorkflowStatus.RUNNING:
            values["started_at"] = now
        elif status == WorkflowStatus.FINISHED:
            values["finished_at"] = now

        stmt = (
            update(Workflows)
            .where(
                Workflows.workflow_id == workflow_id,
                Workflows.organisation_id == organisation_id,
            )
            .values(**values)
            .returning(Workflows)
            .execution_options(synchronize_session=False)
        )

        async with self.sessionmanager.transaction() as session:
            record = await session.scalar(stmt)
            if record is None:
                return None
            return WorkflowInDB.model_validate(record)

    async def delete(
        self,
        workflow_id: UUID,
        organisation_id: UUID,
        only_status: Optional[WorkflowStatus] = None,
    ) -> bool:
        conditions = [
            Workflows.workflow_id == workflow_id,
            Workflows.organisation_id == organisation_id,
        ]
        if only_status is not None:
            conditions.append(Workflows.status == only_status)

        stmt = (
            delete(Workflows)
            .where(*conditions)
            .returning(Workflows.workflow_id)
            .execution_options(synchronize_session=False)
        )

        async with self.sessionmanager.transaction() as session:
            deleted = await session.scalar(stmt)
            return deleted is not None

    async def mark_stuck_running_finished(self, older_than: datetime) -> list[UUID]:
        now = datetime.now(timezone.utc)
        stmt = (
            update(Workflows)
            .where(
                Workflows.status == WorkflowStatus.RUNNING,
                Workflows.started_at < older_than,
            )
            .values(status=WorkflowStatus.FINISHED, finished_at=now, updated_at=now)
            .returning(Workflows.workflow_id)
            .execution_options(synchronize_session=False)
        )

        async with self.sessionmanager.transaction() as session:
            result = await session.scalars(stmt)
            return list(result)

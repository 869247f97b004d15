from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, Enum, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from prospector.database.tables.base_class import Base
from prospector.database.tables.workflow_config_table import WorkflowConfigs
from prospector.main.models import WorkflowStatus


class Workflows(Base):
    __tablename__ = "workflows"

    workflow_id: Mapped[UUID] = mapped_column(primary_key=True)
    organisation_id: Mapped[UUID] = mapped_column(index=True)
    workflow_config_id: Mapped[UUID] = mapped_column(
        ForeignKey(WorkflowConfigs.workflow_config_id, ondelete="CASCADE"), index=True
    )
    status: Mapped[WorkflowStatus] = mapped_column(
        Enum(WorkflowStatus, name="workflow_status"),
        default=WorkflowStatus.QUEUED,
        server_default=WorkflowStatus.QUEUED.value,
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

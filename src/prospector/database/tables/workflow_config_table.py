from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, Integer, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from prospector.database.tables.base_class import Base, TimestampMixin


class WorkflowConfigs(TimestampMixin, Base):
    """Search criteria an organisation runs lead discovery with."""

    __tablename__ = "workflow_config"

    workflow_config_id: Mapped[UUID] = mapped_column(primary_key=True)
    organisation_id: Mapped[UUID] = mapped_column(index=True)
    domains: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list)
    locations: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list)
    designations: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list)
    runs_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    leads_count: Mapped[int] = mapped_column(Integer)
    company_name: Mapped[Optional[str]] = mapped_column(Text)
    company_website: Mapped[Optional[str]] = mapped_column(Text)
    custom_instructions: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list)
    created_by: Mapped[Optional[UUID]] = mapped_column()

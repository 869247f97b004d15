from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, Float, String, func
from sqlalchemy.orm import Mapped, mapped_column

from prospector.database.tables.base_class import Base, TimestampMixin


class OrganisationCreditBalance(TimestampMixin, Base):
    __tablename__ = "organisation_credit_balance"

    organisation_id: Mapped[UUID] = mapped_column(primary_key=True)
    credit_balance: Mapped[float] = mapped_column(Float, default=0.0)


class OrganisationCreditTransactions(Base):
    """Ledger of credit top-ups ("C") and debits ("D")."""

    __tablename__ = "organisation_credit_transactions"

    transaction_id: Mapped[UUID] = mapped_column(primary_key=True)
    organisation_id: Mapped[UUID] = mapped_column(index=True)
    transaction_type: Mapped[str] = mapped_column(String(1))
    credit_amount: Mapped[float] = mapped_column(Float)
    # Debits reference the workflow run, credits carry the purchase amount
    workflow_id: Mapped[Optional[UUID]] = mapped_column(index=True)
    dollar_amount: Mapped[Optional[float]] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

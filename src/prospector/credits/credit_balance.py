from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from prospector.main.models import InDB


class CreditBalance(InDB):
    organisation_id: UUID
    credit_balance: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CreditDebit(BaseModel):
    organisation_id: UUID
    credits_used: float
    previous_balance: float
    new_balance: float
    # None when nothing was debited
    transaction_id: Optional[UUID] = None

from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import insert, select, update

from prospector.credits.credit_balance import CreditBalance, CreditDebit
from prospector.database.database import DatabaseSessionManager
from prospector.database.tables.credit_table import (
    OrganisationCreditBalance,
    OrganisationCreditTransactions,
)
from prospector.main.exceptions import InsufficientCreditsException
from prospector.main.logging import get_logger
from prospector.main.models import TransactionType

logger = get_logger(__name__)


class CreditBalanceRepository:
    def __init__(self, sessionmanager: DatabaseSessionManager):
        self.sessionmanager = sessionmanager

    async def get_by_organisation(self, organisation_id: UUID) -> Optional[CreditBalance]:
        stmt = select(OrganisationCreditBalance).where(
            OrganisationCreditBalance.organisation_id == organisation_id
        )

        async with self.sessionmanager.transaction() as session:
            record = await session.scalar(stmt)
            if record is None:
                return None
            return CreditBalance.model_validate(record)

    async def debit(self, organisation_id: UUID, amount: float, workflow_id: UUID) -> CreditDebit:
        """Subtract ``amount`` and record a debit transaction atomically.

        The balance row is locked for the duration of the transaction so
        concurrent debits for the same organisation serialise.
        """
        lock_stmt = (
            select(OrganisationCreditBalance.credit_balance)
            .where(OrganisationCreditBalance.organisation_id == organisation_id)
            .with_for_update()
        )

        async with self.sessionmanager.transaction() as session:
            previous_balance = await session.scalar(lock_stmt)
            if previous_balance is None:
                raise InsufficientCreditsException(
                    f"No credit balance found for this organisation: {organisation_id}"
                )

            if amount <= 0:
                return CreditDebit(
                    organisation_id=organisation_id,
                    credits_used=0,
                    previous_balance=previous_balance,
                    new_balance=previous_balance,
                )

            new_balance = previous_balance - amount
            await session.execute(
                update(OrganisationCreditBalance)
                .where(OrganisationCreditBalance.organisation_id == organisation_id)
                .values(credit_balance=new_balance)
                .execution_options(synchronize_session=False)
            )

            transaction_id = uuid4()
            await session.execute(
                insert(OrganisationCreditTransactions).values(
                    transaction_id=transaction_id,
                    organisation_id=organisation_id,
                    transaction_type=TransactionType.DEBIT.value,
                    credit_amount=amount,
                    workflow_id=workflow_id,
                    dollar_amount=None,
                )
            )

        if new_balance < 0:
            logger.warning(
                "Credit balance is negative after debit",
                extra={
                    "organisation_id": str(organisation_id),
                    "workflow_id": str(workflow_id),
                    "new_balance": new_balance,
                },
            )

        return CreditDebit(
            organisation_id=organisation_id,
            credits_used=amount,
            previous_balance=previous_balance,
            new_balance=new_balance,
            transaction_id=transaction_id,
        )

"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal  # noqa: TC003
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select

from opportunity_escrow.domain.balances import quantize
from opportunity_escrow.infrastructure.database.orm_models import (
    EscrowAccount,
    EscrowTransaction,
    MilestoneRecord,
    OpportunityRecord,
    ReleaseCondition,
)

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from opportunity_escrow.domain.enums import EscrowStatus


class EscrowAccountRepository:
    """Data access for escrow accounts."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, account: EscrowAccount) -> EscrowAccount:
        """Insert a new escrow account."""
        self._session.add(account)
        await self._session.flush()
        return account

    async def get_by_id(self, account_id: uuid.UUID) -> EscrowAccount | None:
        """Fetch an account by its UUID."""
        result = await self._session.execute(
            select(EscrowAccount).where(EscrowAccount.id == account_id)
        )
        return result.scalar_one_or_none()

    async def get_by_status(self, statuses: Iterable[EscrowStatus]) -> list[EscrowAccount]:
        """Fetch all accounts in any of the given statuses, oldest first."""
        values = [s.value for s in statuses]
        result = await self._session.execute(
            select(EscrowAccount)
            .where(EscrowAccount.status.in_(values))
            .order_by(EscrowAccount.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_by_user(self, user_id: str, role: str | None = None) -> list[EscrowAccount]:
        """Fetch accounts where the user is the investor, the entrepreneur, or either."""
        if role == "investor":
            clause = EscrowAccount.investor_id == user_id
        elif role == "entrepreneur":
            clause = EscrowAccount.entrepreneur_id == user_id
        else:
            clause = or_(
                EscrowAccount.investor_id == user_id,
                EscrowAccount.entrepreneur_id == user_id,
            )
        result = await self._session.execute(
            select(EscrowAccount).where(clause).order_by(EscrowAccount.created_at.desc())
        )
        return list(result.scalars().all())


class TransactionRepository:
    """Data access for the append-only transaction log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, transaction: EscrowTransaction) -> EscrowTransaction:
        """Append a transaction. This is the ONLY write operation allowed."""
        self._session.add(transaction)
        await self._session.flush()
        return transaction

    async def get_by_account(self, account_id: uuid.UUID) -> list[EscrowTransaction]:
        """Fetch all transactions for an account, newest first."""
        result = await self._session.execute(
            select(EscrowTransaction)
            .where(EscrowTransaction.account_id == account_id)
            .order_by(EscrowTransaction.transaction_date.desc())
        )
        return list(result.scalars().all())

    async def totals_by_type(self, account_id: uuid.UUID) -> dict[str, Decimal]:
        """Sum of amounts per transaction type for an account."""
        result = await self._session.execute(
            select(EscrowTransaction.type, func.sum(EscrowTransaction.amount))
            .where(EscrowTransaction.account_id == account_id)
            .group_by(EscrowTransaction.type)
        )
        return {tx_type: quantize(total) for tx_type, total in result.all()}


class ReleaseConditionRepository:
    """Data access for escrow release conditions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, condition: ReleaseCondition) -> ReleaseCondition:
        self._session.add(condition)
        await self._session.flush()
        return condition

    async def get_by_id(self, condition_id: uuid.UUID) -> ReleaseCondition | None:
        result = await self._session.execute(
            select(ReleaseCondition).where(ReleaseCondition.id == condition_id)
        )
        return result.scalar_one_or_none()

    async def get_by_account(self, account_id: uuid.UUID) -> list[ReleaseCondition]:
        """Fetch all conditions of an account in attachment order."""
        result = await self._session.execute(
            select(ReleaseCondition)
            .where(ReleaseCondition.account_id == account_id)
            .order_by(ReleaseCondition.position.asc())
        )
        return list(result.scalars().all())

    async def next_position(self, account_id: uuid.UUID) -> int:
        """Position for a condition attached after the existing ones."""
        result = await self._session.execute(
            select(func.max(ReleaseCondition.position)).where(
                ReleaseCondition.account_id == account_id
            )
        )
        current = result.scalar_one_or_none()
        return 0 if current is None else current + 1

    async def get_unmet_by_reference(
        self,
        condition_type: str,
        reference_id: str,
        account_id: uuid.UUID | None = None,
    ) -> list[ReleaseCondition]:
        """Unmet conditions waiting on a given milestone id or document type."""
        stmt = select(ReleaseCondition).where(
            ReleaseCondition.condition_type == condition_type,
            ReleaseCondition.reference_id == reference_id,
            ReleaseCondition.is_met.is_(False),
        )
        if account_id is not None:
            stmt = stmt.where(ReleaseCondition.account_id == account_id)
        result = await self._session.execute(
            stmt.order_by(ReleaseCondition.created_at.asc(), ReleaseCondition.position.asc())
        )
        return list(result.scalars().all())

    async def get_overdue(self, now: datetime) -> list[ReleaseCondition]:
        """Unmet conditions whose due date has passed."""
        result = await self._session.execute(
            select(ReleaseCondition)
            .where(
                ReleaseCondition.is_met.is_(False),
                ReleaseCondition.due_date.is_not(None),
                ReleaseCondition.due_date < now,
            )
            .order_by(ReleaseCondition.due_date.asc())
        )
        return list(result.scalars().all())


class OpportunityRepository:
    """Data access for opportunities and their milestones."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, opportunity: OpportunityRecord) -> OpportunityRecord:
        self._session.add(opportunity)
        await self._session.flush()
        return opportunity

    async def get_by_id(self, opportunity_id: uuid.UUID) -> OpportunityRecord | None:
        result = await self._session.execute(
            select(OpportunityRecord).where(OpportunityRecord.id == opportunity_id)
        )
        return result.scalar_one_or_none()

    async def get_by_owner(self, owner_id: str) -> list[OpportunityRecord]:
        result = await self._session.execute(
            select(OpportunityRecord)
            .where(OpportunityRecord.owner_id == owner_id)
            .order_by(OpportunityRecord.created_at.desc())
        )
        return list(result.scalars().all())


class MilestoneRepository:
    """Data access for milestones."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, milestone: MilestoneRecord) -> MilestoneRecord:
        self._session.add(milestone)
        await self._session.flush()
        return milestone

    async def get_by_id(self, milestone_id: uuid.UUID) -> MilestoneRecord | None:
        result = await self._session.execute(
            select(MilestoneRecord).where(MilestoneRecord.id == milestone_id)
        )
        return result.scalar_one_or_none()

    async def next_position(self, opportunity_id: uuid.UUID) -> int:
        """Position for a milestone appended to the end of the plan."""
        result = await self._session.execute(
            select(func.max(MilestoneRecord.position)).where(
                MilestoneRecord.opportunity_id == opportunity_id
            )
        )
        current = result.scalar_one_or_none()
        return 0 if current is None else current + 1

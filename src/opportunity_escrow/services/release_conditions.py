"""Release Condition Tracker — records which escrow prerequisites are satisfied.

Conditions are satisfied by milestone completion events, document uploads, or
an explicit manual approval. Marking a condition met never moves money; the
AutoReleaseScheduler decides whether a fully satisfied account is released.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from opportunity_escrow.domain.enums import ConditionType
from opportunity_escrow.domain.exceptions import NotFoundError
from opportunity_escrow.infrastructure.database.orm_models import ReleaseCondition
from opportunity_escrow.infrastructure.database.repositories import (
    EscrowAccountRepository,
    ReleaseConditionRepository,
)
from opportunity_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from opportunity_escrow.domain.models import ConditionSpec

logger = get_logger(__name__)


class ReleaseConditionTracker:
    """Tracks the release conditions attached to escrow accounts."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(UTC))

    async def check_release_conditions(self, account_id: uuid.UUID) -> bool:
        """True iff the account has conditions and every one of them is met.

        An account without conditions is never considered releasable.
        """
        conditions = await self.get_release_conditions(account_id)
        if not conditions:
            logger.warning("conditions.none_attached", account_id=str(account_id))
            return False
        return all(c.is_met for c in conditions)

    async def get_release_conditions(self, account_id: uuid.UUID) -> list[ReleaseCondition]:
        async with self._session_factory() as session:
            if await EscrowAccountRepository(session).get_by_id(account_id) is None:
                raise NotFoundError("Escrow account", str(account_id))
            return await ReleaseConditionRepository(session).get_by_account(account_id)

    async def add_release_condition(
        self, account_id: uuid.UUID, spec: ConditionSpec
    ) -> ReleaseCondition:
        """Attach another condition to an existing account."""
        async with self._session_factory.begin() as session:
            if await EscrowAccountRepository(session).get_by_id(account_id) is None:
                raise NotFoundError("Escrow account", str(account_id))
            conditions = ReleaseConditionRepository(session)
            condition = await conditions.create(
                ReleaseCondition(
                    account_id=account_id,
                    position=await conditions.next_position(account_id),
                    condition_type=spec.condition_type.value,
                    description=spec.description,
                    reference_id=spec.reference_id,
                    required_documents=list(spec.required_documents),
                    due_date=spec.due_date,
                )
            )

        logger.info(
            "conditions.added",
            account_id=str(account_id),
            condition_id=str(condition.id),
            condition_type=condition.condition_type,
        )
        return condition

    async def mark_condition_met(self, condition_id: uuid.UUID) -> ReleaseCondition:
        """Mark a condition as met. Repeating the call keeps the first completed_at.

        Raises:
            NotFoundError: If the condition does not exist.
        """
        async with self._session_factory.begin() as session:
            condition = await ReleaseConditionRepository(session).get_by_id(condition_id)
            if condition is None:
                raise NotFoundError("Release condition", str(condition_id))
            if condition.is_met:
                logger.debug("conditions.already_met", condition_id=str(condition_id))
                return condition
            self._mark(condition)

        logger.info(
            "conditions.met",
            condition_id=str(condition_id),
            account_id=str(condition.account_id),
        )
        return condition

    async def handle_milestone_completed(self, milestone_id: str) -> list[uuid.UUID]:
        """Mark every unmet milestone_completion condition for the milestone.

        Returns the ids of the accounts whose conditions changed.
        """
        return await self._satisfy_by_reference(ConditionType.MILESTONE_COMPLETION, milestone_id)

    async def handle_document_uploaded(
        self, account_id: uuid.UUID, document_type: str
    ) -> list[uuid.UUID]:
        """Mark the account's unmet document_upload conditions for this document type."""
        return await self._satisfy_by_reference(
            ConditionType.DOCUMENT_UPLOAD, document_type, account_id=account_id
        )

    async def get_overdue_conditions(
        self, now: datetime | None = None
    ) -> list[ReleaseCondition]:
        """Unmet conditions whose due date has passed."""
        async with self._session_factory() as session:
            return await ReleaseConditionRepository(session).get_overdue(now or self._clock())

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _satisfy_by_reference(
        self,
        condition_type: ConditionType,
        reference_id: str,
        account_id: uuid.UUID | None = None,
    ) -> list[uuid.UUID]:
        async with self._session_factory.begin() as session:
            conditions = await ReleaseConditionRepository(session).get_unmet_by_reference(
                condition_type.value, str(reference_id), account_id=account_id
            )
            for condition in conditions:
                self._mark(condition)

        accounts = list(dict.fromkeys(c.account_id for c in conditions))
        logger.info(
            "conditions.satisfied_by_event",
            condition_type=condition_type.value,
            reference_id=str(reference_id),
            conditions=len(conditions),
            accounts=len(accounts),
        )
        return accounts

    def _mark(self, condition: ReleaseCondition) -> None:
        condition.is_met = True
        condition.completed_at = self._clock()

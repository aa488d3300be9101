"""Opportunity Service — persistence around the rule engine.

Opportunities and milestones are stored rows; validation runs the engine on
an immutable snapshot and writes the outcome (risk score, risk level, full
result) back onto the opportunity.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from opportunity_escrow.domain.balances import quantize
from opportunity_escrow.domain.enums import (
    MilestoneStatus,
    OpportunityStatus,
    OpportunityType,
)
from opportunity_escrow.domain.exceptions import InvalidStateError, NotFoundError
from opportunity_escrow.domain.milestones import evaluate_milestone_status
from opportunity_escrow.domain.models import Milestone, Opportunity, as_utc
from opportunity_escrow.infrastructure.database.orm_models import (
    MilestoneRecord,
    OpportunityRecord,
)
from opportunity_escrow.infrastructure.database.repositories import (
    MilestoneRepository,
    OpportunityRepository,
)
from opportunity_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from opportunity_escrow.domain.validation import ValidationResult
    from opportunity_escrow.rules.engine import RuleEngine

logger = get_logger(__name__)

# Stored statuses that evaluation never overrides
_SETTLED_MILESTONE_STATUSES = {MilestoneStatus.COMPLETED.value, MilestoneStatus.CANCELLED.value}

_MILESTONE_FIELDS = frozenset(
    {
        "title",
        "description",
        "target_date",
        "status",
        "completion_percentage",
        "dependencies",
        "budget",
        "actual_cost",
        "progress_notes",
    }
)


class OpportunityService:
    """Manages opportunities, their milestone plans and their validation."""

    def __init__(self, session: AsyncSession, engine: RuleEngine) -> None:
        self._session = session
        self._engine = engine
        self._opportunity_repo = OpportunityRepository(session)
        self._milestone_repo = MilestoneRepository(session)

    # ------------------------------------------------------------------
    # Opportunities
    # ------------------------------------------------------------------

    async def create_opportunity(
        self,
        owner_id: str,
        title: str,
        type: OpportunityType,
        fields: dict[str, Any] | None = None,
        status: OpportunityStatus = OpportunityStatus.DRAFT,
    ) -> OpportunityRecord:
        """Store a new opportunity without milestones."""
        opportunity = await self._opportunity_repo.create(
            OpportunityRecord(
                owner_id=owner_id,
                title=title,
                type=OpportunityType(type).value,
                status=OpportunityStatus(status).value,
                fields=dict(fields or {}),
                milestones=[],
            )
        )
        logger.info(
            "opportunity.created",
            opportunity_id=str(opportunity.id),
            type=opportunity.type,
            status=opportunity.status,
        )
        return opportunity

    async def get_opportunity(self, opportunity_id: uuid.UUID) -> OpportunityRecord:
        """Get an opportunity or raise NotFoundError."""
        opportunity = await self._opportunity_repo.get_by_id(opportunity_id)
        if opportunity is None:
            raise NotFoundError("Opportunity", str(opportunity_id))
        return opportunity

    async def list_opportunities(self, owner_id: str) -> list[OpportunityRecord]:
        """Opportunities submitted by one owner, newest first."""
        return await self._opportunity_repo.get_by_owner(owner_id)

    async def update_fields(
        self, opportunity_id: uuid.UUID, changes: dict[str, Any]
    ) -> OpportunityRecord:
        """Merge changes into the opportunity's free-form fields."""
        opportunity = await self._get_mutable(opportunity_id, "update opportunity")
        opportunity.fields = {**opportunity.fields, **changes}
        await self._session.flush()
        return opportunity

    async def set_status(
        self, opportunity_id: uuid.UUID, status: OpportunityStatus
    ) -> OpportunityRecord:
        """Move the opportunity to another status. Closed opportunities stay closed."""
        opportunity = await self._get_mutable(opportunity_id, "change status")
        old_status = opportunity.status
        opportunity.status = OpportunityStatus(status).value
        await self._session.flush()
        logger.info(
            "opportunity.status_changed",
            opportunity_id=str(opportunity_id),
            old_status=old_status,
            new_status=opportunity.status,
        )
        return opportunity

    # ------------------------------------------------------------------
    # Milestones
    # ------------------------------------------------------------------

    async def add_milestone(
        self,
        opportunity_id: uuid.UUID,
        title: str,
        target_date: datetime,
        description: str | None = None,
        completion_percentage: float | None = None,
        dependencies: Iterable[str] = (),
        budget: Decimal | None = None,
        actual_cost: Decimal | None = None,
    ) -> MilestoneRecord:
        """Append a milestone to the end of the opportunity's plan."""
        opportunity = await self._get_mutable(opportunity_id, "add milestone")
        milestone = MilestoneRecord(
            opportunity_id=opportunity.id,
            position=await self._milestone_repo.next_position(opportunity.id),
            title=title,
            description=description,
            target_date=target_date,
            status=MilestoneStatus.PENDING.value,
            completion_percentage=completion_percentage,
            dependencies=[str(d) for d in dependencies],
            budget=budget,
            actual_cost=actual_cost,
        )
        milestone = await self._milestone_repo.create(milestone)
        await self._session.refresh(opportunity, attribute_names=["milestones"])

        logger.info(
            "opportunity.milestone_added",
            opportunity_id=str(opportunity_id),
            milestone_id=str(milestone.id),
            position=milestone.position,
        )
        return milestone

    async def update_milestone(
        self, milestone_id: uuid.UUID, changes: dict[str, Any]
    ) -> MilestoneRecord:
        """Apply a partial update to a milestone.

        Raises:
            ValueError: If ``changes`` names a field that cannot be updated.
        """
        unknown = set(changes) - _MILESTONE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update milestone field(s): {', '.join(sorted(unknown))}")

        milestone = await self._get_mutable_milestone(milestone_id, "update milestone")
        for key, value in changes.items():
            if key == "status":
                value = MilestoneStatus(value).value
            elif key == "dependencies":
                value = [str(d) for d in value]
            setattr(milestone, key, value)
        if milestone.status != MilestoneStatus.COMPLETED.value:
            milestone.completed_at = None
        elif milestone.completed_at is None:
            milestone.completed_at = datetime.now(UTC)
        await self._session.flush()
        return milestone

    async def complete_milestone(
        self, milestone_id: uuid.UUID, notes: str | None = None
    ) -> MilestoneRecord:
        """Mark a milestone completed. Completing it twice is a no-op."""
        milestone = await self._get_mutable_milestone(milestone_id, "complete milestone")
        if milestone.status == MilestoneStatus.COMPLETED.value:
            return milestone

        milestone.status = MilestoneStatus.COMPLETED.value
        milestone.completion_percentage = 100.0
        milestone.completed_at = datetime.now(UTC)
        if notes:
            milestone.progress_notes = notes
        await self._session.flush()

        logger.info(
            "opportunity.milestone_completed",
            opportunity_id=str(milestone.opportunity_id),
            milestone_id=str(milestone_id),
        )
        return milestone

    async def refresh_milestone_statuses(
        self, opportunity_id: uuid.UUID, now: datetime | None = None
    ) -> list[MilestoneRecord]:
        """Store the evaluated status of every milestone. Returns the changed ones."""
        opportunity = await self._get_mutable(opportunity_id, "refresh milestones")
        now = now or datetime.now(UTC)

        changed: list[MilestoneRecord] = []
        for record in opportunity.milestones:
            if record.status in _SETTLED_MILESTONE_STATUSES:
                continue
            evaluated = evaluate_milestone_status(_milestone_snapshot(record), now).value
            if evaluated != record.status:
                record.status = evaluated
                changed.append(record)
        await self._session.flush()

        if changed:
            logger.info(
                "opportunity.milestones_refreshed",
                opportunity_id=str(opportunity_id),
                changed=len(changed),
            )
        return changed

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate_opportunity(
        self, opportunity_id: uuid.UUID, now: datetime | None = None
    ) -> ValidationResult:
        """Run the rule engine and store the result on the opportunity."""
        opportunity = await self.get_opportunity(opportunity_id)
        result = self._engine.validate_opportunity(to_snapshot(opportunity), now=now)

        opportunity.risk_score = result.risk_score
        opportunity.risk_level = result.risk_level.value
        opportunity.last_validation = result.to_dict()
        opportunity.validated_at = datetime.now(UTC)
        await self._session.flush()

        logger.info(
            "opportunity.validated",
            opportunity_id=str(opportunity_id),
            valid=result.valid,
            risk_score=result.risk_score,
            compliance=result.compliance_status.value,
        )
        return result

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_mutable(self, opportunity_id: uuid.UUID, operation: str) -> OpportunityRecord:
        opportunity = await self.get_opportunity(opportunity_id)
        if OpportunityStatus(opportunity.status).is_terminal:
            raise InvalidStateError(opportunity.status, operation)
        return opportunity

    async def _get_mutable_milestone(
        self, milestone_id: uuid.UUID, operation: str
    ) -> MilestoneRecord:
        milestone = await self._milestone_repo.get_by_id(milestone_id)
        if milestone is None:
            raise NotFoundError("Milestone", str(milestone_id))
        await self._get_mutable(milestone.opportunity_id, operation)
        return milestone


def to_snapshot(record: OpportunityRecord) -> Opportunity:
    """Immutable view of a stored opportunity for the rule engine."""
    return Opportunity(
        id=str(record.id),
        title=record.title,
        type=OpportunityType(record.type),
        status=OpportunityStatus(record.status),
        fields=dict(record.fields or {}),
        milestones=tuple(_milestone_snapshot(m) for m in record.milestones),
    )


def _milestone_snapshot(record: MilestoneRecord) -> Milestone:
    return Milestone(
        id=str(record.id),
        title=record.title,
        target_date=as_utc(record.target_date),
        status=MilestoneStatus(record.status),
        completion_percentage=record.completion_percentage,
        dependencies=tuple(record.dependencies or ()),
        budget=_money(record.budget),
        actual_cost=_money(record.actual_cost),
    )


def _money(value: Decimal | None) -> Decimal | None:
    return None if value is None else quantize(value)

"""Opportunity and milestone snapshots consumed by the rule engine.

These are immutable views built from persisted rows (or from request payloads)
so that validation never touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from opportunity_escrow.domain.enums import (
    ConditionType,
    MilestoneStatus,
    OpportunityStatus,
    OpportunityType,
)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@dataclass(frozen=True)
class Milestone:
    """A dated deliverable of one opportunity.

    Attributes:
        id: Stable identifier, referenced by other milestones' dependencies.
        title: Short human-readable name.
        target_date: When the milestone is due (timezone-aware).
        status: Stored status; see domain/milestones.py for the evaluated one.
        completion_percentage: Optional progress, expected within [0, 100].
        dependencies: Ids of milestones that must be completed first.
        budget: Optional planned spend.
        actual_cost: Optional spend so far.
    """

    id: str
    title: str
    target_date: datetime
    status: MilestoneStatus = MilestoneStatus.PENDING
    completion_percentage: float | None = None
    dependencies: tuple[str, ...] = ()
    budget: Decimal | None = None
    actual_cost: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_date", as_utc(self.target_date))
        object.__setattr__(self, "status", MilestoneStatus(self.status))
        object.__setattr__(self, "dependencies", tuple(self.dependencies))


@dataclass(frozen=True)
class Opportunity:
    """An investment opportunity as submitted by an entrepreneur.

    Domain attributes (equity_offered, expected_roi, description,
    primary_currency, order_details, partner_roles, kyc_status, ...) live in
    the free-form ``fields`` map.
    """

    id: str
    title: str
    type: OpportunityType
    status: OpportunityStatus = OpportunityStatus.DRAFT
    fields: dict[str, Any] = field(default_factory=dict)
    milestones: tuple[Milestone, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", OpportunityType(self.type))
        object.__setattr__(self, "status", OpportunityStatus(self.status))
        object.__setattr__(self, "milestones", tuple(self.milestones))

    def get(self, key: str, default: Any = None) -> Any:
        """Shorthand for reading a domain attribute from ``fields``."""
        return self.fields.get(key, default)

    def milestone_by_id(self, milestone_id: str) -> Milestone | None:
        for milestone in self.milestones:
            if milestone.id == milestone_id:
                return milestone
        return None


@dataclass(frozen=True)
class ConditionSpec:
    """A release condition requested when an escrow account is opened.

    ``reference_id`` links the condition to the event that satisfies it: a
    milestone id for milestone_completion, a document type for
    document_upload. Manual approvals carry no reference.
    """

    condition_type: ConditionType
    description: str
    reference_id: str | None = None
    required_documents: tuple[str, ...] = ()
    due_date: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "condition_type", ConditionType(self.condition_type))
        object.__setattr__(self, "required_documents", tuple(self.required_documents))
        if self.due_date is not None:
            object.__setattr__(self, "due_date", as_utc(self.due_date))

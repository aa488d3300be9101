"""SQLAlchemy 2.0 ORM models for the opportunity escrow core.

Five tables:
    1. opportunities              — Submitted investment opportunities + last validation.
    2. milestones                 — Ordered deliverables of an opportunity.
    3. escrow_accounts            — Custodial balances for one investor/entrepreneur pair.
    4. escrow_transactions        — Append-only money movements of an account.
    5. escrow_release_conditions  — Prerequisites gating automatic release.

Design decisions:
    - UUIDs as primary keys.
    - Decimal for money (Numeric(18, 2)), never floats.
    - JSON columns (JSONB on PostgreSQL) for free-form opportunity fields,
      validation results and transaction metadata.
    - escrow_accounts.version is a SQLAlchemy version counter: every UPDATE is
      conditional on the version read, so concurrent writers cannot both win.
    - escrow_transactions is append-only: no UPDATE or DELETE at the application level.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")
Money = Numeric(18, 2)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# Helper: auto-set updated_at on flush
# ---------------------------------------------------------------------------
def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = _utcnow()


# ---------------------------------------------------------------------------
# 1. opportunities
# ---------------------------------------------------------------------------
class OpportunityRecord(Base):
    """An investment opportunity submitted by an entrepreneur."""

    __tablename__ = "opportunities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    owner_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Submitting party (entrepreneur user id)",
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="going_concern | order_fulfillment | project_partnership",
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    fields: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Free-form domain attributes (equity_offered, expected_roi, ...)",
    )

    # --- Derived from the last validation ---
    risk_score: Mapped[int | None] = mapped_column(Integer, nullable=True, default=None)
    risk_level: Mapped[str | None] = mapped_column(String(10), nullable=True, default=None)
    last_validation: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
        default=None,
        comment="ValidationResult.to_dict() of the most recent evaluation",
    )
    validated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    milestones: Mapped[list[MilestoneRecord]] = relationship(
        "MilestoneRecord",
        back_populates="opportunity",
        cascade="all, delete-orphan",
        order_by="MilestoneRecord.position.asc()",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'under_review', 'published', 'funded', 'closed')",
            name="ck_opportunity_valid_status",
        ),
        CheckConstraint(
            "risk_score IS NULL OR (risk_score >= 0 AND risk_score <= 100)",
            name="ck_opportunity_risk_bounds",
        ),
        Index("idx_opportunity_owner", "owner_id"),
        Index("idx_opportunity_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Opportunity id={self.id} status={self.status} risk={self.risk_level}>"


# ---------------------------------------------------------------------------
# 2. milestones
# ---------------------------------------------------------------------------
class MilestoneRecord(Base):
    """A dated deliverable belonging to exactly one opportunity."""

    __tablename__ = "milestones"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    opportunity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("opportunities.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    completion_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    dependencies: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="Ids of milestones that must complete first",
    )
    budget: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    actual_cost: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    progress_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    opportunity: Mapped[OpportunityRecord] = relationship(
        "OpportunityRecord", back_populates="milestones"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'overdue', 'cancelled')",
            name="ck_milestone_valid_status",
        ),
        Index("idx_milestone_opportunity", "opportunity_id"),
    )

    def __repr__(self) -> str:
        return f"<Milestone id={self.id} title={self.title!r} status={self.status}>"


# ---------------------------------------------------------------------------
# 3. escrow_accounts
# ---------------------------------------------------------------------------
class EscrowAccount(Base):
    """Custodial account holding one investor's funds for one opportunity."""

    __tablename__ = "escrow_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)

    # --- Participants ---
    opportunity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, nullable=False, comment="Opportunity this escrow funds"
    )
    investor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    entrepreneur_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # --- Financials ---
    escrow_type: Mapped[str] = mapped_column(String(20), nullable=False, default="investment")
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        comment="Current lifecycle state (guarded by EscrowStateMachine)",
    )
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    available_balance: Mapped[Decimal] = mapped_column(Money, nullable=False)
    held_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    auto_release_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    conditions: Mapped[list[ReleaseCondition]] = relationship(
        "ReleaseCondition",
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="ReleaseCondition.position.asc()",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'funded', 'active', 'released', 'disputed', 'cancelled')",
            name="ck_escrow_valid_status",
        ),
        CheckConstraint("total_amount > 0", name="ck_escrow_positive_total"),
        CheckConstraint(
            "available_balance >= 0 AND held_amount >= 0",
            name="ck_escrow_non_negative_balances",
        ),
        Index("idx_escrow_status", "status"),
        Index("idx_escrow_investor", "investor_id"),
        Index("idx_escrow_entrepreneur", "entrepreneur_id"),
        Index("idx_escrow_opportunity", "opportunity_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<EscrowAccount id={self.id} status={self.status} "
            f"available={self.available_balance} held={self.held_amount} {self.currency}>"
        )


# ---------------------------------------------------------------------------
# 4. escrow_transactions (Append-Only)
# ---------------------------------------------------------------------------
class EscrowTransaction(Base):
    """Immutable record of one money movement on an escrow account.

    This table is APPEND-ONLY. Replaying an account's rows must reproduce
    available_balance + held_amount.
    """

    __tablename__ = "escrow_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("escrow_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )

    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="deposit | withdrawal | release | refund | fee",
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    reference: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="completed")
    fee_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True, default=None)
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        default=None,
        comment="Recipient id, operator notes",
    )

    transaction_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    __table_args__ = (
        CheckConstraint(
            "type IN ('deposit', 'withdrawal', 'release', 'refund', 'fee')",
            name="ck_transaction_valid_type",
        ),
        CheckConstraint("amount > 0", name="ck_transaction_positive_amount"),
        Index("idx_transaction_account", "account_id"),
        Index("idx_transaction_date", "transaction_date"),
    )

    def __repr__(self) -> str:
        return f"<EscrowTransaction id={self.id} type={self.type} amount={self.amount}>"


# ---------------------------------------------------------------------------
# 5. escrow_release_conditions
# ---------------------------------------------------------------------------
class ReleaseCondition(Base):
    """A named prerequisite that must be met before automatic release."""

    __tablename__ = "escrow_release_conditions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("escrow_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    condition_type: Mapped[str] = mapped_column(String(40), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    reference_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        default=None,
        comment="Milestone id or document type whose event satisfies the condition",
    )
    required_documents: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    is_met: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    account: Mapped[EscrowAccount] = relationship("EscrowAccount", back_populates="conditions")

    __table_args__ = (
        Index("idx_condition_account", "account_id"),
        Index("idx_condition_reference", "condition_type", "reference_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReleaseCondition id={self.id} type={self.condition_type} met={self.is_met}>"
        )


# ---------------------------------------------------------------------------
# Register the auto-update listener for updated_at
# ---------------------------------------------------------------------------
for _model in (OpportunityRecord, MilestoneRecord, EscrowAccount, ReleaseCondition):
    event.listen(_model, "before_update", _set_updated_at)

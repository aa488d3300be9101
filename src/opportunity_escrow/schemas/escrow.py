"""Pydantic schemas for the Escrow API.

These schemas define the request/response shapes for the REST API. They are
separate from the ORM models to maintain clean boundaries between the API
and database layers.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves annotations at runtime
from datetime import datetime  # noqa: TC003
from decimal import Decimal  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from opportunity_escrow.domain.enums import ConditionType, EscrowType
from opportunity_escrow.domain.models import ConditionSpec

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class ReleaseConditionRequest(BaseModel):
    """A release condition to attach to an escrow account."""

    condition_type: ConditionType = Field(
        ...,
        description="What satisfies the condition",
        examples=["milestone_completion"],
    )
    description: str = Field(..., min_length=1, max_length=2000)
    reference_id: str | None = Field(
        default=None,
        max_length=64,
        description="Milestone id (milestone_completion) or document type (document_upload)",
    )
    required_documents: list[str] = Field(default_factory=list)
    due_date: datetime | None = None

    def to_spec(self) -> ConditionSpec:
        return ConditionSpec(
            condition_type=self.condition_type,
            description=self.description,
            reference_id=self.reference_id,
            required_documents=tuple(self.required_documents),
            due_date=self.due_date,
        )


class CreateEscrowRequest(BaseModel):
    """Request body for opening an escrow account."""

    opportunity_id: uuid.UUID
    investor_id: str = Field(..., min_length=1, max_length=64)
    entrepreneur_id: str = Field(..., min_length=1, max_length=64)
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Pledged amount held in escrow",
        examples=[25000.00],
    )
    currency: str | None = Field(
        default=None,
        min_length=3,
        max_length=3,
        description="ISO 4217 code; defaults to the configured currency",
        examples=["USD"],
    )
    escrow_type: EscrowType = EscrowType.INVESTMENT
    conditions: list[ReleaseConditionRequest] = Field(
        default_factory=list,
        description="At least one condition is required",
    )
    auto_release_date: datetime | None = None
    admin_notes: str | None = Field(default=None, max_length=5000)


class FundEscrowRequest(BaseModel):
    """Request body for recording the investor's deposit."""

    amount: Decimal = Field(..., gt=0, decimal_places=2)
    reference: str | None = Field(
        default=None,
        max_length=64,
        description="Payment processor reference of the deposit",
    )


class ReleaseFundsRequest(BaseModel):
    """Request body for releasing escrowed funds."""

    amount: Decimal = Field(..., gt=0, decimal_places=2)
    recipient_id: str = Field(..., min_length=1, max_length=64)
    reason: str = Field(..., min_length=1, max_length=2000)
    idempotency_key: str | None = Field(
        default=None,
        max_length=128,
        description="Optional idempotency key to prevent a duplicate payout",
    )


class ChargeFeeRequest(BaseModel):
    """Request body for deducting the escrow fee."""

    amount: Decimal | None = Field(
        default=None,
        gt=0,
        decimal_places=2,
        description="Explicit fee; omitted means the configured percentage fee",
    )
    reason: str = Field(default="Escrow service fee", max_length=2000)


class ReasonRequest(BaseModel):
    """Request body for disputes and cancellations."""

    reason: str = Field(..., min_length=1, max_length=2000)


class DocumentUploadedRequest(BaseModel):
    """Notification that a document of a given type was uploaded for an account."""

    document_type: str = Field(..., min_length=1, max_length=64)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class ReleaseConditionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    account_id: uuid.UUID
    position: int
    condition_type: str
    description: str
    reference_id: str | None
    required_documents: list[str]
    is_met: bool
    due_date: datetime | None
    completed_at: datetime | None


class EscrowAccountResponse(BaseModel):
    """Response schema for an escrow account."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    account_number: str
    opportunity_id: uuid.UUID
    investor_id: str
    entrepreneur_id: str
    escrow_type: str
    status: str
    total_amount: Decimal
    available_balance: Decimal
    held_amount: Decimal
    currency: str
    auto_release_date: datetime | None
    admin_notes: str | None
    conditions: list[ReleaseConditionResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class EscrowTransactionResponse(BaseModel):
    """Response schema for one ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    account_id: uuid.UUID
    type: str
    amount: Decimal
    currency: str
    reference: str
    description: str | None
    status: str
    fee_amount: Decimal | None
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    transaction_date: datetime
    processed_at: datetime | None


class EscrowStatusResponse(BaseModel):
    """Lightweight status check response."""

    account_id: uuid.UUID
    status: str
    available_balance: Decimal
    held_amount: Decimal
    conditions_met: bool
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )


class AutoReleaseResponse(BaseModel):
    account_id: uuid.UUID
    released: bool
    blocking_reasons: list[str] = Field(default_factory=list)


class EscrowStatsResponse(BaseModel):
    total_accounts: int
    funded_accounts: int
    active_accounts: int
    disputed_accounts: int
    total_amount: Decimal
    available_balance: Decimal
    held_amount: Decimal


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"

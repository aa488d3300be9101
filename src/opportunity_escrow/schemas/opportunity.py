"""Pydantic schemas for the Opportunity API."""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves annotations at runtime
from datetime import datetime  # noqa: TC003
from decimal import Decimal  # noqa: TC003
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from opportunity_escrow.domain.enums import (
    ComplianceStatus,
    MilestoneStatus,
    OpportunityStatus,
    OpportunityType,
    RiskLevel,
)

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateOpportunityRequest(BaseModel):
    """Request body for submitting an opportunity.

    The title may be blank: a missing title is reported by validation, not
    rejected at the door.
    """

    owner_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(default="", max_length=255)
    type: OpportunityType = Field(..., examples=["going_concern"])
    status: OpportunityStatus = OpportunityStatus.DRAFT
    fields: dict[str, Any] = Field(
        default_factory=dict,
        description="Domain attributes such as equity_offered, expected_roi, funding_goal",
        examples=[{"equity_offered": 20, "expected_roi": 18, "primary_currency": "USD"}],
    )


class UpdateStatusRequest(BaseModel):
    status: OpportunityStatus


class AddMilestoneRequest(BaseModel):
    """Request body for appending a milestone to an opportunity's plan."""

    title: str = Field(..., min_length=1, max_length=255)
    target_date: datetime
    description: str | None = Field(default=None, max_length=5000)
    completion_percentage: float | None = None
    dependencies: list[str] = Field(
        default_factory=list,
        description="Ids of milestones that must be completed first",
    )
    budget: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    actual_cost: Decimal | None = Field(default=None, ge=0, decimal_places=2)


class UpdateMilestoneRequest(BaseModel):
    """Partial milestone update; only the fields sent are changed."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    target_date: datetime | None = None
    status: MilestoneStatus | None = None
    completion_percentage: float | None = None
    dependencies: list[str] | None = None
    budget: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    actual_cost: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    progress_notes: str | None = None


class CompleteMilestoneRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=5000)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class MilestoneResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    opportunity_id: uuid.UUID
    position: int
    title: str
    description: str | None
    target_date: datetime
    status: str
    completion_percentage: float | None
    dependencies: list[str]
    budget: Decimal | None
    actual_cost: Decimal | None
    progress_notes: str | None
    completed_at: datetime | None


class OpportunityResponse(BaseModel):
    """Response schema for an opportunity and its milestone plan."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    owner_id: str
    title: str
    type: str
    status: str
    fields: dict[str, Any]
    risk_score: int | None
    risk_level: str | None
    last_validation: dict[str, Any] | None
    validated_at: datetime | None
    milestones: list[MilestoneResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ValidationResultResponse(BaseModel):
    """Outcome of one rule engine evaluation."""

    valid: bool
    errors: list[str]
    warnings: list[str]
    info: list[str]
    risk_score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    recommendations: list[str]
    compliance_status: ComplianceStatus
    skipped_rules: list[str] = Field(default_factory=list)


class CompleteMilestoneResponse(BaseModel):
    milestone: MilestoneResponse
    released_accounts: list[uuid.UUID] = Field(
        default_factory=list,
        description="Escrow accounts paid out because this completion met their last condition",
    )

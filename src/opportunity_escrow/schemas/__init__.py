"""Pydantic API schemas."""

from opportunity_escrow.schemas.escrow import (
    AutoReleaseResponse,
    ChargeFeeRequest,
    CreateEscrowRequest,
    DocumentUploadedRequest,
    EscrowAccountResponse,
    EscrowStatsResponse,
    EscrowStatusResponse,
    EscrowTransactionResponse,
    FundEscrowRequest,
    HealthResponse,
    ReasonRequest,
    ReleaseConditionRequest,
    ReleaseConditionResponse,
    ReleaseFundsRequest,
)
from opportunity_escrow.schemas.opportunity import (
    AddMilestoneRequest,
    CompleteMilestoneRequest,
    CompleteMilestoneResponse,
    CreateOpportunityRequest,
    MilestoneResponse,
    OpportunityResponse,
    UpdateMilestoneRequest,
    UpdateStatusRequest,
    ValidationResultResponse,
)

__all__ = [
    "AddMilestoneRequest",
    "AutoReleaseResponse",
    "ChargeFeeRequest",
    "CompleteMilestoneRequest",
    "CompleteMilestoneResponse",
    "CreateEscrowRequest",
    "CreateOpportunityRequest",
    "DocumentUploadedRequest",
    "EscrowAccountResponse",
    "EscrowStatsResponse",
    "EscrowStatusResponse",
    "EscrowTransactionResponse",
    "FundEscrowRequest",
    "HealthResponse",
    "MilestoneResponse",
    "OpportunityResponse",
    "ReasonRequest",
    "ReleaseConditionRequest",
    "ReleaseConditionResponse",
    "ReleaseFundsRequest",
    "UpdateMilestoneRequest",
    "UpdateStatusRequest",
    "ValidationResultResponse",
]

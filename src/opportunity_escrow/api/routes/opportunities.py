"""Opportunity REST API routes.

Routes:
    POST   /api/v1/opportunities                              — Submit an opportunity
    GET    /api/v1/opportunities?owner_id=…                   — List an owner's opportunities
    GET    /api/v1/opportunities/{id}                         — Get it with its milestone plan
    PATCH  /api/v1/opportunities/{id}/status                  — Move it to another status
    POST   /api/v1/opportunities/{id}/validate                — Run the rule engine
    POST   /api/v1/opportunities/{id}/milestones              — Append a milestone
    POST   /api/v1/opportunities/{id}/milestones/refresh      — Store evaluated milestone statuses
    PATCH  /api/v1/opportunities/milestones/{mid}             — Update a milestone
    POST   /api/v1/opportunities/milestones/{mid}/complete    — Complete a milestone
"""

from __future__ import annotations

import uuid  # noqa: TC003 - FastAPI resolves path parameter annotations at runtime

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: TC002

from opportunity_escrow.api.deps import (
    get_auto_release_scheduler,
    get_db_session,
    get_opportunity_service,
)
from opportunity_escrow.domain.enums import MilestoneStatus
from opportunity_escrow.logging_config import get_logger
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
from opportunity_escrow.services.auto_release import AutoReleaseScheduler  # noqa: TC001
from opportunity_escrow.services.opportunity_service import OpportunityService  # noqa: TC001

router = APIRouter(prefix="/api/v1/opportunities", tags=["Opportunities"])
logger = get_logger(__name__)


@router.post(
    "",
    response_model=OpportunityResponse,
    status_code=201,
    summary="Submit an opportunity",
)
async def create_opportunity(
    request: CreateOpportunityRequest,
    svc: OpportunityService = Depends(get_opportunity_service),
) -> OpportunityResponse:
    opportunity = await svc.create_opportunity(
        owner_id=request.owner_id,
        title=request.title,
        type=request.type,
        fields=request.fields,
        status=request.status,
    )
    return OpportunityResponse.model_validate(opportunity)


@router.get(
    "",
    response_model=list[OpportunityResponse],
    summary="List an owner's opportunities",
)
async def list_opportunities(
    owner_id: str,
    svc: OpportunityService = Depends(get_opportunity_service),
) -> list[OpportunityResponse]:
    opportunities = await svc.list_opportunities(owner_id)
    return [OpportunityResponse.model_validate(o) for o in opportunities]


@router.get(
    "/{opportunity_id}",
    response_model=OpportunityResponse,
    summary="Get an opportunity",
)
async def get_opportunity(
    opportunity_id: uuid.UUID,
    svc: OpportunityService = Depends(get_opportunity_service),
) -> OpportunityResponse:
    opportunity = await svc.get_opportunity(opportunity_id)
    return OpportunityResponse.model_validate(opportunity)


@router.patch(
    "/{opportunity_id}/status",
    response_model=OpportunityResponse,
    summary="Change the opportunity status",
)
async def update_status(
    opportunity_id: uuid.UUID,
    request: UpdateStatusRequest,
    svc: OpportunityService = Depends(get_opportunity_service),
) -> OpportunityResponse:
    """Closed opportunities cannot change status (409)."""
    opportunity = await svc.set_status(opportunity_id, request.status)
    return OpportunityResponse.model_validate(opportunity)


@router.post(
    "/{opportunity_id}/validate",
    response_model=ValidationResultResponse,
    summary="Validate an opportunity",
)
async def validate_opportunity(
    opportunity_id: uuid.UUID,
    svc: OpportunityService = Depends(get_opportunity_service),
) -> ValidationResultResponse:
    """Run every rule and milestone check. The result is also stored on the opportunity."""
    result = await svc.validate_opportunity(opportunity_id)
    return ValidationResultResponse(**result.to_dict())


# ---------------------------------------------------------------------------
# Milestones
# ---------------------------------------------------------------------------


@router.post(
    "/{opportunity_id}/milestones",
    response_model=MilestoneResponse,
    status_code=201,
    summary="Append a milestone",
)
async def add_milestone(
    opportunity_id: uuid.UUID,
    request: AddMilestoneRequest,
    svc: OpportunityService = Depends(get_opportunity_service),
) -> MilestoneResponse:
    milestone = await svc.add_milestone(
        opportunity_id,
        title=request.title,
        target_date=request.target_date,
        description=request.description,
        completion_percentage=request.completion_percentage,
        dependencies=request.dependencies,
        budget=request.budget,
        actual_cost=request.actual_cost,
    )
    return MilestoneResponse.model_validate(milestone)


@router.post(
    "/{opportunity_id}/milestones/refresh",
    response_model=list[MilestoneResponse],
    summary="Store evaluated milestone statuses",
)
async def refresh_milestones(
    opportunity_id: uuid.UUID,
    svc: OpportunityService = Depends(get_opportunity_service),
) -> list[MilestoneResponse]:
    """Returns the milestones whose stored status changed."""
    changed = await svc.refresh_milestone_statuses(opportunity_id)
    return [MilestoneResponse.model_validate(m) for m in changed]


@router.patch(
    "/milestones/{milestone_id}",
    response_model=MilestoneResponse,
    summary="Update a milestone",
)
async def update_milestone(
    milestone_id: uuid.UUID,
    request: UpdateMilestoneRequest,
    session: AsyncSession = Depends(get_db_session),
    svc: OpportunityService = Depends(get_opportunity_service),
    scheduler: AutoReleaseScheduler = Depends(get_auto_release_scheduler),
) -> MilestoneResponse:
    """Setting the status to completed also satisfies the milestone's release conditions."""
    changes = request.model_dump(exclude_unset=True)
    milestone = await svc.update_milestone(milestone_id, changes)
    if "status" in changes and milestone.status == MilestoneStatus.COMPLETED.value:
        await session.commit()
        released = await scheduler.on_milestone_completed(str(milestone.id))
        logger.info(
            "opportunities.milestone_completed_by_update",
            milestone_id=str(milestone.id),
            released=len(released),
        )
    return MilestoneResponse.model_validate(milestone)


@router.post(
    "/milestones/{milestone_id}/complete",
    response_model=CompleteMilestoneResponse,
    summary="Complete a milestone",
)
async def complete_milestone(
    milestone_id: uuid.UUID,
    request: CompleteMilestoneRequest,
    session: AsyncSession = Depends(get_db_session),
    svc: OpportunityService = Depends(get_opportunity_service),
    scheduler: AutoReleaseScheduler = Depends(get_auto_release_scheduler),
) -> CompleteMilestoneResponse:
    """Complete the milestone, then release every escrow account it was the last condition of."""
    milestone = await svc.complete_milestone(milestone_id, notes=request.notes)
    # The scheduler reads through its own sessions
    await session.commit()
    released = await scheduler.on_milestone_completed(str(milestone.id))
    return CompleteMilestoneResponse(
        milestone=MilestoneResponse.model_validate(milestone),
        released_accounts=released,
    )

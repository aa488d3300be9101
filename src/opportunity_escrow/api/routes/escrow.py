"""Escrow account REST API routes.

These endpoints are a thin HTTP layer over the EscrowLedger,
ReleaseConditionTracker and AutoReleaseScheduler. Every ledger call runs in
its own database transaction, so these routes do not take a request session.

Routes:
    POST   /api/v1/escrow                           — Open an escrow account
    GET    /api/v1/escrow/users/{user_id}           — Accounts of a user
    GET    /api/v1/escrow/users/{user_id}/stats     — Portfolio summary of a user
    GET    /api/v1/escrow/{id}                      — Get account details
    GET    /api/v1/escrow/{id}/status               — Lightweight status check
    GET    /api/v1/escrow/{id}/transactions         — Transaction log
    GET    /api/v1/escrow/{id}/conditions           — Release conditions
    POST   /api/v1/escrow/{id}/conditions           — Attach a release condition
    POST   /api/v1/escrow/conditions/{cid}/met      — Mark a condition met
    POST   /api/v1/escrow/{id}/documents            — Record a document upload
    POST   /api/v1/escrow/{id}/fund                 — Record the investor deposit
    POST   /api/v1/escrow/{id}/release              — Release funds
    POST   /api/v1/escrow/{id}/fee                  — Charge the escrow fee
    POST   /api/v1/escrow/{id}/dispute              — Raise a dispute
    POST   /api/v1/escrow/{id}/cancel               — Cancel and refund
    POST   /api/v1/escrow/{id}/auto-release         — Release if all conditions are met
"""

from __future__ import annotations

import uuid  # noqa: TC003 - FastAPI resolves path parameter annotations at runtime
from typing import Literal

import redis.asyncio as aioredis  # noqa: TC002
from fastapi import APIRouter, Depends

from opportunity_escrow.api.deps import (
    get_auto_release_scheduler,
    get_condition_tracker,
    get_ledger,
    get_redis_client,
)
from opportunity_escrow.domain.exceptions import PortalError
from opportunity_escrow.domain.state_machine import EscrowStateMachine
from opportunity_escrow.infrastructure.redis_client import (
    claim_idempotency_key,
    release_idempotency_key,
)
from opportunity_escrow.logging_config import get_logger
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
    ReasonRequest,
    ReleaseConditionRequest,
    ReleaseConditionResponse,
    ReleaseFundsRequest,
)
from opportunity_escrow.services.auto_release import AutoReleaseScheduler  # noqa: TC001
from opportunity_escrow.services.ledger import EscrowLedger  # noqa: TC001
from opportunity_escrow.services.release_conditions import (  # noqa: TC001
    ReleaseConditionTracker,
)

router = APIRouter(prefix="/api/v1/escrow", tags=["Escrow"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=EscrowAccountResponse,
    status_code=201,
    summary="Open an escrow account",
)
async def create_escrow(
    request: CreateEscrowRequest,
    ledger: EscrowLedger = Depends(get_ledger),
) -> EscrowAccountResponse:
    """Open a pending account holding the pledged amount."""
    account = await ledger.create_account(
        opportunity_id=request.opportunity_id,
        investor_id=request.investor_id,
        entrepreneur_id=request.entrepreneur_id,
        amount=request.amount,
        conditions=[c.to_spec() for c in request.conditions],
        escrow_type=request.escrow_type,
        currency=request.currency,
        auto_release_date=request.auto_release_date,
        admin_notes=request.admin_notes,
    )
    return EscrowAccountResponse.model_validate(account)


# ---------------------------------------------------------------------------
# Per-user views
# ---------------------------------------------------------------------------


@router.get(
    "/users/{user_id}",
    response_model=list[EscrowAccountResponse],
    summary="List a user's escrow accounts",
)
async def list_user_accounts(
    user_id: str,
    role: Literal["investor", "entrepreneur"] | None = None,
    ledger: EscrowLedger = Depends(get_ledger),
) -> list[EscrowAccountResponse]:
    accounts = await ledger.get_accounts_by_user(user_id, role)
    return [EscrowAccountResponse.model_validate(a) for a in accounts]


@router.get(
    "/users/{user_id}/stats",
    response_model=EscrowStatsResponse,
    summary="Summarise a user's escrow portfolio",
)
async def get_user_stats(
    user_id: str,
    role: Literal["investor", "entrepreneur"] | None = None,
    ledger: EscrowLedger = Depends(get_ledger),
) -> EscrowStatsResponse:
    stats = await ledger.get_escrow_stats(user_id, role)
    return EscrowStatsResponse(**stats)


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/{account_id}",
    response_model=EscrowAccountResponse,
    summary="Get account details",
)
async def get_escrow(
    account_id: uuid.UUID,
    ledger: EscrowLedger = Depends(get_ledger),
) -> EscrowAccountResponse:
    account = await ledger.get_account(account_id)
    return EscrowAccountResponse.model_validate(account)


@router.get(
    "/{account_id}/status",
    response_model=EscrowStatusResponse,
    summary="Get lightweight status check",
)
async def get_status(
    account_id: uuid.UUID,
    ledger: EscrowLedger = Depends(get_ledger),
    tracker: ReleaseConditionTracker = Depends(get_condition_tracker),
) -> EscrowStatusResponse:
    """Return the balances, the allowed next events and whether conditions are met."""
    account = await ledger.get_account(account_id)
    return EscrowStatusResponse(
        account_id=account.id,
        status=account.status,
        available_balance=account.available_balance,
        held_amount=account.held_amount,
        conditions_met=await tracker.check_release_conditions(account_id),
        allowed_events=EscrowStateMachine(current_status=account.status).get_allowed_events(),
    )


@router.get(
    "/{account_id}/transactions",
    response_model=list[EscrowTransactionResponse],
    summary="Get the transaction log",
)
async def get_transactions(
    account_id: uuid.UUID,
    ledger: EscrowLedger = Depends(get_ledger),
) -> list[EscrowTransactionResponse]:
    """Return every ledger entry of the account, newest first."""
    transactions = await ledger.get_transactions(account_id)
    return [EscrowTransactionResponse.model_validate(t) for t in transactions]


# ---------------------------------------------------------------------------
# Release conditions
# ---------------------------------------------------------------------------


@router.get(
    "/{account_id}/conditions",
    response_model=list[ReleaseConditionResponse],
    summary="List release conditions",
)
async def get_conditions(
    account_id: uuid.UUID,
    tracker: ReleaseConditionTracker = Depends(get_condition_tracker),
) -> list[ReleaseConditionResponse]:
    conditions = await tracker.get_release_conditions(account_id)
    return [ReleaseConditionResponse.model_validate(c) for c in conditions]


@router.post(
    "/{account_id}/conditions",
    response_model=ReleaseConditionResponse,
    status_code=201,
    summary="Attach a release condition",
)
async def add_condition(
    account_id: uuid.UUID,
    request: ReleaseConditionRequest,
    tracker: ReleaseConditionTracker = Depends(get_condition_tracker),
) -> ReleaseConditionResponse:
    condition = await tracker.add_release_condition(account_id, request.to_spec())
    return ReleaseConditionResponse.model_validate(condition)


@router.post(
    "/conditions/{condition_id}/met",
    response_model=ReleaseConditionResponse,
    summary="Mark a release condition met",
)
async def mark_condition_met(
    condition_id: uuid.UUID,
    tracker: ReleaseConditionTracker = Depends(get_condition_tracker),
) -> ReleaseConditionResponse:
    """Manual approval of a condition. Calling it again changes nothing."""
    condition = await tracker.mark_condition_met(condition_id)
    return ReleaseConditionResponse.model_validate(condition)


@router.post(
    "/{account_id}/documents",
    response_model=list[ReleaseConditionResponse],
    summary="Record a document upload",
)
async def document_uploaded(
    account_id: uuid.UUID,
    request: DocumentUploadedRequest,
    tracker: ReleaseConditionTracker = Depends(get_condition_tracker),
) -> list[ReleaseConditionResponse]:
    """Mark the account's document conditions for this type met and return all conditions."""
    await tracker.handle_document_uploaded(account_id, request.document_type)
    conditions = await tracker.get_release_conditions(account_id)
    return [ReleaseConditionResponse.model_validate(c) for c in conditions]


# ---------------------------------------------------------------------------
# Money movements
# ---------------------------------------------------------------------------


@router.post(
    "/{account_id}/fund",
    response_model=EscrowAccountResponse,
    summary="Record the investor deposit",
)
async def fund_escrow(
    account_id: uuid.UUID,
    request: FundEscrowRequest,
    ledger: EscrowLedger = Depends(get_ledger),
) -> EscrowAccountResponse:
    """Transitions pending -> funded."""
    account = await ledger.fund_account(account_id, request.amount, request.reference)
    return EscrowAccountResponse.model_validate(account)


@router.post(
    "/{account_id}/release",
    response_model=EscrowAccountResponse,
    summary="Release funds",
)
async def release_funds(
    account_id: uuid.UUID,
    request: ReleaseFundsRequest,
    ledger: EscrowLedger = Depends(get_ledger),
    redis_client: aioredis.Redis | None = Depends(get_redis_client),
) -> EscrowAccountResponse:
    """Pay out part or all of the available balance.

    With an idempotency key, a replay of the same request is rejected with
    409 instead of paying out twice.
    """
    key = f"release:{account_id}:{request.idempotency_key}" if request.idempotency_key else None
    if key is not None:
        if redis_client is None:
            logger.warning("idempotency.redis_unavailable", account_id=str(account_id))
        else:
            await claim_idempotency_key(redis_client, key)

    try:
        account = await ledger.release_funds(
            account_id,
            request.amount,
            recipient_id=request.recipient_id,
            reason=request.reason,
        )
    except PortalError:
        if key is not None and redis_client is not None:
            await release_idempotency_key(redis_client, key)
        raise
    return EscrowAccountResponse.model_validate(account)


@router.post(
    "/{account_id}/fee",
    response_model=EscrowAccountResponse,
    summary="Charge the escrow fee",
)
async def charge_fee(
    account_id: uuid.UUID,
    request: ChargeFeeRequest,
    ledger: EscrowLedger = Depends(get_ledger),
) -> EscrowAccountResponse:
    account = await ledger.charge_fee(account_id, request.amount, request.reason)
    return EscrowAccountResponse.model_validate(account)


@router.post(
    "/{account_id}/dispute",
    response_model=EscrowAccountResponse,
    summary="Raise a dispute",
)
async def raise_dispute(
    account_id: uuid.UUID,
    request: ReasonRequest,
    ledger: EscrowLedger = Depends(get_ledger),
) -> EscrowAccountResponse:
    """Valid from funded or active."""
    account = await ledger.dispute_account(account_id, request.reason)
    return EscrowAccountResponse.model_validate(account)


@router.post(
    "/{account_id}/cancel",
    response_model=EscrowAccountResponse,
    summary="Cancel and refund",
)
async def cancel_escrow(
    account_id: uuid.UUID,
    request: ReasonRequest,
    ledger: EscrowLedger = Depends(get_ledger),
) -> EscrowAccountResponse:
    """Valid from pending, funded or active. Any available balance goes back to the investor."""
    account = await ledger.cancel_account(account_id, request.reason)
    return EscrowAccountResponse.model_validate(account)


@router.post(
    "/{account_id}/auto-release",
    response_model=AutoReleaseResponse,
    summary="Release if all conditions are met",
)
async def auto_release(
    account_id: uuid.UUID,
    ledger: EscrowLedger = Depends(get_ledger),
    scheduler: AutoReleaseScheduler = Depends(get_auto_release_scheduler),
) -> AutoReleaseResponse:
    """Returns released=false with the blocking reasons when the account is not ready."""
    await ledger.get_account(account_id)
    blocking = await scheduler.validate_release(account_id)
    released = False if blocking else await scheduler.auto_release_if_conditions_met(account_id)
    return AutoReleaseResponse(account_id=account_id, released=released, blocking_reasons=blocking)

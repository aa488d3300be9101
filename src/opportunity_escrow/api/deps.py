"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
services and the Redis client. Long-lived collaborators (the rule engine,
the ledger and the scheduler) are built once in main.py and kept on
app.state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Depends, Request

from opportunity_escrow.infrastructure.database.engine import get_async_session
from opportunity_escrow.infrastructure.redis_client import get_optional_redis
from opportunity_escrow.services.opportunity_service import OpportunityService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import redis.asyncio as aioredis
    from sqlalchemy.ext.asyncio import AsyncSession

    from opportunity_escrow.rules.engine import RuleEngine
    from opportunity_escrow.services.auto_release import AutoReleaseScheduler
    from opportunity_escrow.services.ledger import EscrowLedger
    from opportunity_escrow.services.release_conditions import ReleaseConditionTracker


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_rule_engine(request: Request) -> RuleEngine:
    return request.app.state.rule_engine


def get_ledger(request: Request) -> EscrowLedger:
    return request.app.state.ledger


def get_condition_tracker(request: Request) -> ReleaseConditionTracker:
    return request.app.state.condition_tracker


def get_auto_release_scheduler(request: Request) -> AutoReleaseScheduler:
    return request.app.state.auto_release


async def get_opportunity_service(
    session: AsyncSession = Depends(get_db_session),
    engine: RuleEngine = Depends(get_rule_engine),
) -> OpportunityService:
    """Provide an OpportunityService bound to the current session."""
    return OpportunityService(session, engine)


def get_redis_client() -> aioredis.Redis | None:
    """Provide the Redis client, or None when it is not connected."""
    return get_optional_redis()

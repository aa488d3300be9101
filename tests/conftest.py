"""Shared test fixtures for the opportunity escrow test suite.

Provides:
    - A file-backed SQLite database per test (aiosqlite), schema created
      from the ORM metadata
    - Ledger, condition tracker and auto-release scheduler bound to it
    - A rule engine with a fixed clock and a clean baseline opportunity
    - Async test support via pytest-asyncio
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from opportunity_escrow.config import Settings
from opportunity_escrow.domain.enums import ConditionType, OpportunityStatus, OpportunityType
from opportunity_escrow.domain.models import ConditionSpec, Milestone, Opportunity
from opportunity_escrow.infrastructure.database.engine import create_session_factory
from opportunity_escrow.infrastructure.database.orm_models import Base
from opportunity_escrow.rules.engine import RuleEngine
from opportunity_escrow.services.auto_release import AutoReleaseScheduler
from opportunity_escrow.services.ledger import EscrowLedger
from opportunity_escrow.services.release_conditions import ReleaseConditionTracker

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from opportunity_escrow.infrastructure.database.orm_models import EscrowAccount

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a throwaway SQLite file, ignoring any .env."""
    return Settings(
        _env_file=None,
        app_env="development",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'escrow.db'}",
        ledger_conflict_retries=3,
        auto_release_interval_seconds=1,
    )


@pytest_asyncio.fixture
async def db_engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


# ---------------------------------------------------------------------------
# Service Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def ledger(session_factory: async_sessionmaker[AsyncSession], settings: Settings) -> EscrowLedger:
    return EscrowLedger(session_factory, settings=settings)


@pytest.fixture
def tracker(session_factory: async_sessionmaker[AsyncSession]) -> ReleaseConditionTracker:
    return ReleaseConditionTracker(session_factory)


@pytest.fixture
def scheduler(ledger: EscrowLedger, tracker: ReleaseConditionTracker) -> AutoReleaseScheduler:
    return AutoReleaseScheduler(ledger, tracker, interval_seconds=0.01)


@pytest.fixture
def milestone_condition() -> ConditionSpec:
    return ConditionSpec(
        condition_type=ConditionType.MILESTONE_COMPLETION,
        description="Factory fit-out completed",
        reference_id="milestone-fit-out",
    )


@pytest.fixture
def open_account(
    ledger: EscrowLedger, milestone_condition: ConditionSpec
) -> Callable[..., Awaitable[EscrowAccount]]:
    """Factory: open (and optionally fund) an account with one milestone condition."""

    async def _open(
        amount: Decimal = Decimal("1000.00"),
        fund: bool = True,
        conditions: list[ConditionSpec] | None = None,
    ) -> EscrowAccount:
        account = await ledger.create_account(
            opportunity_id=uuid.uuid4(),
            investor_id="investor-1",
            entrepreneur_id="entrepreneur-1",
            amount=amount,
            conditions=conditions if conditions is not None else [milestone_condition],
        )
        if fund:
            account = await ledger.fund_account(account.id, amount, reference="DEP-TEST")
        return account

    return _open


# ---------------------------------------------------------------------------
# Rule Engine Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def rule_engine() -> RuleEngine:
    """Built-in rules evaluated at a fixed instant."""
    return RuleEngine(clock=lambda: NOW)


@pytest.fixture
def clean_opportunity() -> Opportunity:
    """A going-concern opportunity under review that passes every built-in rule."""
    return Opportunity(
        id="opp-1",
        title="Harare Solar Cold Storage",
        type=OpportunityType.GOING_CONCERN,
        status=OpportunityStatus.UNDER_REVIEW,
        fields={
            "equity_offered": 20,
            "expected_roi": 18,
            "funding_goal": 250000,
            "primary_currency": "USD",
            "description": "Expansion of an operating cold storage business",
            "kyc_status": "approved",
        },
        milestones=(
            Milestone(
                id="m-1",
                title="Site lease signed",
                target_date=NOW + timedelta(days=30),
            ),
        ),
    )

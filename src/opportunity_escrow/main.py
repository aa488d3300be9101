"""FastAPI application entry point for the opportunity escrow core.

Lifecycle:
    1. Startup: Initialize logging, database, Redis, create tables (dev mode),
       build the rule engine and escrow services, start the auto-release sweep.
    2. Running: Serve the REST API at /api/v1/*.
    3. Shutdown: Stop the sweep, close database and Redis connections gracefully.

Run with:
    uv run uvicorn opportunity_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from opportunity_escrow.config import Settings, get_settings
from opportunity_escrow.logging_config import get_logger, setup_logging_from_settings
from opportunity_escrow.rules import RuleEngine, default_rules
from opportunity_escrow.services.auto_release import AutoReleaseScheduler
from opportunity_escrow.services.ledger import EscrowLedger
from opportunity_escrow.services.release_conditions import ReleaseConditionTracker

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


def configure_services(
    app: FastAPI,
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> None:
    """Build the long-lived collaborators and attach them to app.state."""
    ledger = EscrowLedger(session_factory, settings=settings)
    tracker = ReleaseConditionTracker(session_factory)

    app.state.rule_engine = RuleEngine(
        rules=default_rules(supported_currencies=settings.supported_currency_list)
    )
    app.state.ledger = ledger
    app.state.condition_tracker = tracker
    app.state.auto_release = AutoReleaseScheduler(
        ledger,
        tracker,
        interval_seconds=settings.auto_release_interval_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging_from_settings(settings)
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
    )

    # 2. Initialize database
    from opportunity_escrow.infrastructure.database.engine import (
        close_db,
        get_session_factory,
        init_db,
    )

    await init_db()

    # 3. Initialize Redis
    from opportunity_escrow.infrastructure.redis_client import close_redis, init_redis

    try:
        await init_redis()
    except Exception as exc:
        logger.warning("app.redis_unavailable", error=str(exc))

    # 4. Services and the auto-release sweep
    configure_services(app, get_session_factory(), settings)

    stop_event = asyncio.Event()
    sweep: asyncio.Task[None] | None = None
    if settings.auto_release_enabled:
        sweep = asyncio.create_task(app.state.auto_release.run(stop_event))

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    stop_event.set()
    if sweep is not None:
        with contextlib.suppress(asyncio.CancelledError):
            await sweep
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Opportunity Escrow",
        description=(
            "Rule-based validation of investment opportunities and an escrow "
            "ledger that releases funds once milestones are met."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from opportunity_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from opportunity_escrow.api.routes.escrow import router as escrow_router
    from opportunity_escrow.api.routes.health import router as health_router
    from opportunity_escrow.api.routes.opportunities import router as opportunities_router

    app.include_router(health_router)
    app.include_router(opportunities_router)
    app.include_router(escrow_router)

    return app


# The app instance used by Uvicorn
app = create_app()

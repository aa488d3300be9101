"""Fixtures for exercising the HTTP API against the per-test SQLite database."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from opportunity_escrow.api.deps import get_db_session, get_redis_client
from opportunity_escrow.main import configure_services, create_app

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from fastapi import FastAPI
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from opportunity_escrow.config import Settings


@pytest_asyncio.fixture
async def app(
    session_factory: async_sessionmaker[AsyncSession], settings: Settings
) -> FastAPI:
    """App with services bound to the test database and Redis disconnected.

    The lifespan does not run under ASGITransport, so services are wired here.
    """
    application = create_app()
    configure_services(application, session_factory, settings)

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db_session] = _session
    application.dependency_overrides[get_redis_client] = lambda: None
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

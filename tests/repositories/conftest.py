"""Repository test fixtures — in-memory SQLite through the real session manager.

Invariants:
    - Every test gets a fresh in-memory database with all tables created
    - StaticPool keeps the single in-memory connection alive across sessions
"""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

import examops.models  # noqa: F401  (populates Base.metadata)
from examops.db.base import Base
from examops.infrastructure.database import DatabaseSessionManager


@pytest.fixture
async def db():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield DatabaseSessionManager.from_engine(engine)
    await engine.dispose()

"""Database failure translation — transient vs permanent store errors."""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from examops.core.errors import DatabaseError, StoreUnavailableError, TransientIOError
from examops.infrastructure.database import DatabaseSessionManager, translate_db_error


def test_operational_and_socket_failures_are_transient():
    assert isinstance(
        translate_db_error(OperationalError("SELECT 1", {}, Exception("gone"))),
        StoreUnavailableError,
    )
    assert isinstance(translate_db_error(ConnectionRefusedError()), TransientIOError)


def test_constraint_and_driver_failures_are_permanent():
    integrity = translate_db_error(IntegrityError("INSERT", {}, Exception("dup")))
    driver = translate_db_error(ProgrammingError("SELEC", {}, Exception("syntax")))

    assert isinstance(integrity, DatabaseError)
    assert integrity.operation == "commit"
    assert isinstance(driver, DatabaseError)
    assert not isinstance(driver, TransientIOError)


async def test_session_translates_and_health_check_reports():
    manager = DatabaseSessionManager.from_engine(
        create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool),
    )

    async with manager.session() as s:
        await s.execute(text("CREATE TABLE seats (seat_id INTEGER PRIMARY KEY)"))
        await s.execute(text("INSERT INTO seats VALUES (1)"))
        await s.commit()

    with pytest.raises(DatabaseError):
        async with manager.session() as s:
            await s.execute(text("INSERT INTO seats VALUES (1)"))
    assert await manager.health_check() is True

    await manager.dispose()

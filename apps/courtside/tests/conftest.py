"""
Shared pytest configuration for courtside tests.

Each test gets its own file-backed SQLite database unless TEST_DATABASE_URL
points somewhere else (e.g. a PostgreSQL test database, which exercises the
real row locks).

SAFETY: This module REFUSES to run against any database whose name does not
contain the substring "test".
"""

import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("EXPIRY_SWEEPER_ENABLED", "false")

import asyncio  # noqa: E402
import uuid  # noqa: E402
from typing import Optional  # noqa: E402

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from courtside.database.db import Base  # noqa: E402
from courtside.database.models import (  # noqa: E402
    League,
    LeagueSeason,
    LeagueStatus,
    Tournament,
    TournamentStatus,
)
from courtside.services import user_service  # noqa: E402


def _resolve_test_database_url(tmp_path) -> str:
    """Build the test database URL with safety checks.

    Raises ``RuntimeError`` if the resolved URL does not point to a database
    whose name contains "test".
    """
    url = os.getenv("TEST_DATABASE_URL", "")
    if not url:
        url = f"sqlite+aiosqlite:///{tmp_path / 'courtside_test.db'}"

    db_name = url.rsplit("/", 1)[-1].split("?")[0]
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"SAFETY: Refusing to run tests against database '{db_name}'. "
            f"The database name must contain 'test'. Resolved URL: {url}"
        )
    return url


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a fresh schema for one test and route db.AsyncSessionLocal to it."""
    # NullPool: every session gets its own connection, like separate API workers
    engine = create_async_engine(
        _resolve_test_database_url(tmp_path),
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        from courtside.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    from courtside.database import db

    test_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = test_session_maker

    yield engine

    db.AsyncSessionLocal = original_async_session_local

    await asyncio.sleep(0.05)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    finally:
        await engine.dispose(close=True)


@pytest_asyncio.fixture
async def db_session(test_engine):
    """A session on the test database. Rolled back and closed afterwards."""
    from courtside.database import db

    async with db.AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    """The patched session maker, for tests that need independent sessions."""
    from courtside.database import db

    return db.AsyncSessionLocal


# ---------------------------------------------------------------------------
# Seed helpers (each commits so other sessions can see the rows)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def make_user(db_session):
    async def _make_user(
        name: Optional[str] = None,
        email: Optional[str] = None,
        skill_level: Optional[str] = "intermediate",
        rating: Optional[float] = 1500.0,
    ):
        username = name or f"player_{uuid.uuid4().hex[:8]}"
        user = await user_service.create_user(
            db_session,
            username=username,
            display_name=username.replace("_", " ").title(),
            email=email,
            skill_level=skill_level,
            rating=rating,
        )
        await db_session.commit()
        return user

    return _make_user


@pytest_asyncio.fixture
async def make_tournament(db_session):
    async def _make_tournament(
        name: str = "Summer Slam",
        status: str = TournamentStatus.REGISTRATION_OPEN.value,
        max_participants: Optional[int] = None,
        game_format: str = "doubles",
    ):
        tournament = Tournament(
            name=name,
            status=status,
            max_participants=max_participants,
            current_participants=0,
            game_format=game_format,
        )
        db_session.add(tournament)
        await db_session.flush()
        await db_session.commit()
        return tournament

    return _make_tournament


@pytest_asyncio.fixture
async def make_league(db_session):
    async def _make_league(
        name: str = "Tuesday Night League",
        status: str = LeagueStatus.REGISTRATION_OPEN.value,
        seasons: int = 1,
    ):
        league = League(name=name, status=status, game_format="doubles")
        db_session.add(league)
        await db_session.flush()
        for number in range(1, seasons + 1):
            db_session.add(
                LeagueSeason(
                    league_id=league.id,
                    name=f"Season {number}",
                    season_number=number,
                    status=LeagueStatus.ACTIVE.value,
                )
            )
        await db_session.flush()
        await db_session.commit()
        return league

    return _make_league

"""
Shared pytest configuration for teamstats tests.

Uses an in-memory SQLite database (aiosqlite) per test. ENV=test must be set
before the app is imported so the rate limiter becomes a no-op.
"""

import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("AUTH_SECRET", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TEAM_TIMEZONE", "America/Vancouver")
os.environ.setdefault("ENABLE_EMAIL", "false")

import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from teamstats.database.db import Base, enable_sqlite_foreign_keys
from teamstats.database.models import Team, TeamSubscription, TeamUser
from teamstats.services import user_service


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Fresh in-memory database with all tables."""
    # StaticPool keeps the single in-memory connection alive for the whole test
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        from teamstats.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Database session bound to the per-test engine."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest_asyncio.fixture
async def admin_user(db_session):
    """A user who will administer the test team."""
    user_id = await user_service.create_user(
        db_session, "Coach Carter", "coach@example.com", "not-a-real-hash"
    )
    return await user_service.get_user_by_id(db_session, user_id)


@pytest_asyncio.fixture
async def other_user(db_session):
    """A signed-up user with no team memberships."""
    user_id = await user_service.create_user(
        db_session, "Sam Striker", "sam@example.com", "not-a-real-hash"
    )
    return await user_service.get_user_by_id(db_session, user_id)


@pytest_asyncio.fixture
async def team(db_session, admin_user):
    """A team administered by admin_user, without a subscription."""
    team = Team(name="Green Machine", slug="green-machine")
    db_session.add(team)
    await db_session.flush()
    db_session.add(TeamUser(team_id=team.id, user_id=admin_user["id"]))
    await db_session.commit()
    return {"id": team.id, "name": team.name, "slug": team.slug}


@pytest_asyncio.fixture
async def subscribed_team(db_session, team):
    """The test team with an active subscription."""
    db_session.add(
        TeamSubscription(
            team_id=team["id"],
            stripe_subscription_id="sub_test_1",
            status="active",
            cancel_at_period_end=False,
            period_end=1900000000,
        )
    )
    await db_session.commit()
    return team

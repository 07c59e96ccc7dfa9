"""Shared test fixtures. Single in-memory test DB for all test modules."""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Use a shared in-memory DB with check_same_thread=False and StaticPool
# so every connection sees the same database.
from sqlalchemy.pool import StaticPool

from affiliate_portal.db.engine import get_session
from affiliate_portal.db.tables import (
    AffiliateLinkRow,
    Base,
    ClickRow,
    CommissionTierRow,
    ConversionRow,
    ProfileRow,
    UserProgressionRow,
)
from affiliate_portal.services.commission_tiers import DEFAULT_TIERS
from affiliate_portal.services.notifier import notifier

TEST_DB_URL = "sqlite+aiosqlite:///file:affiliate_test?mode=memory&cache=shared&uri=true"

test_engine = create_async_engine(
    TEST_DB_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSession = async_sessionmaker(test_engine, expire_on_commit=False, class_=AsyncSession)


async def override_get_session():
    async with TestSession() as session:
        yield session


# Import app and override BEFORE any test module imports app
from affiliate_portal.api.main import app  # noqa: E402

app.dependency_overrides[get_session] = override_get_session

import affiliate_portal.db.engine as _engine_mod  # noqa: E402
_engine_mod.async_session = TestSession
_engine_mod.engine = test_engine


@asynccontextmanager
async def get_test_session():
    """Context manager for seeding data in tests."""
    async with TestSession() as session:
        yield session


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    notifier.reset()
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def tiers():
    """The default Bronze / Argent / Or / Platine ladder."""
    async with get_test_session() as session:
        for tier in DEFAULT_TIERS:
            session.add(CommissionTierRow(**tier))
        await session.commit()
    return DEFAULT_TIERS


# ── Seeding helpers ──────────────────────────────────────────────────────────

def hours_ago(hours: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(hours=hours)


async def seed_link(user_id: str, code: str, created_at: datetime | None = None) -> str:
    async with get_test_session() as session:
        row = AffiliateLinkRow(user_id=user_id, code=code, created_at=created_at or datetime.now(timezone.utc))
        session.add(row)
        await session.commit()
        return row.id


async def seed_profile(user_id: str, first_name: str | None, last_name: str | None) -> None:
    async with get_test_session() as session:
        session.add(ProfileRow(id=user_id, first_name=first_name, last_name=last_name))
        await session.commit()


async def seed_clicks(link_id: str, devices: list[str | None], created_at: datetime | None = None) -> None:
    async with get_test_session() as session:
        for device in devices:
            session.add(ClickRow(
                affiliate_link_id=link_id,
                device_type=device,
                created_at=created_at or datetime.now(timezone.utc),
            ))
        await session.commit()


async def seed_conversion(
    link_id: str,
    amount: float,
    status: str | None = "completed",
    product: str = "Pro",
    created_at: datetime | None = None,
) -> None:
    async with get_test_session() as session:
        session.add(ConversionRow(
            affiliate_link_id=link_id,
            product=product,
            amount=amount,
            status=status,
            created_at=created_at or datetime.now(timezone.utc),
        ))
        await session.commit()


async def seed_progression(user_id: str, tier_id: int | None, total_revenue: float) -> None:
    async with get_test_session() as session:
        session.add(UserProgressionRow(user_id=user_id, current_tier_id=tier_id, total_revenue=total_revenue))
        await session.commit()

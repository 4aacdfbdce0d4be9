import os

# Settings are read at import time; point them at throwaway values first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_scoring.db")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("WORKERS_ENABLED", "false")

import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Awaitable, Callable, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.models import Base, Lead
from app.repositories.lead_repository import LeadRepository
from app.repositories.scoring_rule_repository import ScoringRuleRepository
from app.schemas.event import ScoringEventIn
from app.services.lead_scoring import LeadScoringEngine
from app.services.rule_store import RuleStore

BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """A fixed point in time *minutes* after ``BASE_TIME``."""
    return BASE_TIME + timedelta(minutes=minutes)


def make_event(
    lead_id: uuid.UUID,
    event_type: str = "email_open",
    timestamp: Optional[datetime] = None,
    event_id: Optional[str] = None,
    **metadata,
) -> ScoringEventIn:
    return ScoringEventIn(
        event_id=event_id or f"evt_{uuid.uuid4().hex}",
        event_type=event_type,
        lead_id=lead_id,
        timestamp=timestamp or BASE_TIME,
        metadata=metadata,
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """A fresh file-backed SQLite database per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'scoring.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def seeded_rules(session_factory) -> None:
    """Load the default rule table."""
    async with session_factory() as session:
        await RuleStore(ScoringRuleRepository(session)).seed_defaults()


@pytest.fixture
def create_lead(session_factory) -> Callable[..., Awaitable[Lead]]:
    """Return an async factory that inserts a lead and returns it."""

    async def _create(**overrides) -> Lead:
        data = {
            "name": "Test Lead",
            "email": f"lead_{uuid.uuid4().hex[:10]}@example.com",
            "company": "Example Co",
        }
        data.update(overrides)
        async with session_factory() as session:
            lead = await LeadRepository(session).create(**data)
            await session.commit()
        return lead

    return _create


@pytest.fixture
def set_rule(session_factory) -> Callable[..., Awaitable[None]]:
    """Return an async helper that overwrites one rule's points/active flag."""

    async def _set(event_type: str, points: Optional[int] = None, active: Optional[bool] = None) -> None:
        async with session_factory() as session:
            rule = await ScoringRuleRepository(session).get(event_type)
            if points is not None:
                rule.points = points
            if active is not None:
                rule.active = active
            await session.commit()

    return _set


@pytest.fixture
def mock_notifier() -> AsyncMock:
    notifier = AsyncMock()
    notifier.broadcast = AsyncMock()
    return notifier


@pytest_asyncio.fixture
async def scoring_engine(session_factory, seeded_rules, mock_notifier) -> LeadScoringEngine:
    return LeadScoringEngine(session_factory, notifier=mock_notifier, max_score=1000)


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Return an ``AsyncMock`` that behaves like ``redis.asyncio.Redis``."""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    redis.ping = AsyncMock()
    return redis


@pytest_asyncio.fixture
async def async_client(session_factory, seeded_rules) -> AsyncGenerator[AsyncClient, None]:
    """Yield an ``httpx.AsyncClient`` wired to the FastAPI app and test DB.

    ``ASGITransport`` does not run the lifespan, so the service graph is
    built here against the per-test database.
    """
    from app.core.database import get_db
    from app.dependencies import build_scoring_services
    from app.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.services = build_scoring_services(session_factory)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()

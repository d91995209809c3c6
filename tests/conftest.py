"""Shared test fixtures for the work settlement test suite.

Provides:
    - In-memory SQLite database sessions (aiosqlite, savepoints enabled)
    - In-memory user directory and simulated payment rail
    - Services wired to the test session
    - Factory fixtures that drive an engagement to a given lifecycle step
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from work_settlement.config import Settings
from work_settlement.domain.collaborators import GeoPoint, UserProfile
from work_settlement.infrastructure.database.engine import build_engine
from work_settlement.infrastructure.database.orm_models import Base, Engagement
from work_settlement.services.contract_service import ContractService
from work_settlement.services.engagement_service import EngagementService
from work_settlement.services.negotiation_service import NegotiationService
from work_settlement.services.payment_rail import PixRail
from work_settlement.services.settlement_service import SettlementService
from work_settlement.services.user_directory import InMemoryUserDirectory

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

PRODUCER_ID = "producer-001"
WORKER_ID = "worker-001"

# ---------------------------------------------------------------------------
# Domain Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_engagement_data() -> dict:
    """Return valid engagement creation data (R$ 100,00 bid)."""
    return {
        "job_id": "job-colheita-cafe-42",
        "producer_id": PRODUCER_ID,
        "worker_id": WORKER_ID,
        "final_price_minor_units": 10000,
    }


@pytest.fixture
def location() -> GeoPoint:
    """A fix on a farm near Uruará, PA."""
    return GeoPoint(latitude=-3.7158, longitude=-53.7381, time=datetime(2026, 3, 2, 7, 0, tzinfo=UTC))


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        platform_fee_rate=Decimal("0.10"),
        charge_expiry_hours=24,
        platform_receiver_id="platform",
        platform_name="Empleitapp",
        payment_rail_simulate=True,
    )


@pytest.fixture
def user_directory() -> InMemoryUserDirectory:
    return InMemoryUserDirectory(
        [
            UserProfile(id=PRODUCER_ID, name="Maria Produtora"),
            UserProfile(id=WORKER_ID, name="João Trabalhador", pix_key="joao@pix.example"),
        ]
    )


@pytest.fixture
def payment_rail() -> PixRail:
    return PixRail(simulate=True)


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """A fresh in-memory database per test, schema created from the ORM models."""
    engine = build_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as s:
        yield s
        await s.rollback()


# ---------------------------------------------------------------------------
# Service Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engagement_service(session: AsyncSession) -> EngagementService:
    return EngagementService(session)


@pytest.fixture
def negotiation_service(session: AsyncSession) -> NegotiationService:
    return NegotiationService(session)


@pytest.fixture
def contract_service(
    session: AsyncSession, user_directory: InMemoryUserDirectory
) -> ContractService:
    return ContractService(session, user_directory)


@pytest.fixture
def settlement_service(
    session: AsyncSession,
    user_directory: InMemoryUserDirectory,
    payment_rail: PixRail,
    test_settings: Settings,
) -> SettlementService:
    return SettlementService(
        session,
        user_directory=user_directory,
        payment_rail=payment_rail,
        settings=test_settings,
    )


# ---------------------------------------------------------------------------
# Lifecycle Factories
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engagement(
    engagement_service: EngagementService, sample_engagement_data: dict
) -> Engagement:
    """A freshly assigned engagement."""
    return await engagement_service.create_engagement(**sample_engagement_data)


@pytest_asyncio.fixture
async def executed_engagement(
    engagement: Engagement, contract_service: ContractService
) -> Engagement:
    """An engagement whose contract both parties have signed."""
    await contract_service.sign(engagement.id, "producer", signer_id=PRODUCER_ID)
    await contract_service.sign(engagement.id, "worker", signer_id=WORKER_ID)
    return engagement


@pytest_asyncio.fixture
async def checked_out_engagement(
    executed_engagement: Engagement,
    engagement_service: EngagementService,
    location: GeoPoint,
) -> Engagement:
    """An engagement ready for settlement."""
    await engagement_service.check_in(executed_engagement.id, location, actor_id=WORKER_ID)
    await engagement_service.check_out(
        executed_engagement.id,
        location,
        evidence_photos=["photos/colheita-1.jpg"],
        actor_id=WORKER_ID,
    )
    return executed_engagement

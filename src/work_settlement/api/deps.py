"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
external collaborators, services, and configuration. Tests override
get_db_session, get_user_directory and get_payment_rail.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from work_settlement.config import Settings, get_settings
from work_settlement.domain.collaborators import PaymentRail, UserDirectory
from work_settlement.infrastructure.database.engine import get_async_session
from work_settlement.services.contract_service import ContractService
from work_settlement.services.engagement_service import EngagementService
from work_settlement.services.negotiation_service import NegotiationService
from work_settlement.services.payment_rail import PixRail
from work_settlement.services.settlement_service import SettlementService
from work_settlement.services.user_directory import HttpUserDirectory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


@lru_cache(maxsize=1)
def get_user_directory() -> UserDirectory:
    """Provide the identity/profile directory."""
    settings = get_settings()
    return HttpUserDirectory(
        settings.user_directory_url,
        timeout=settings.user_directory_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_payment_rail() -> PaymentRail:
    """Provide the PIX payment rail."""
    return PixRail.from_settings(get_settings())


def get_engagement_service(
    session: AsyncSession = Depends(get_db_session),
) -> EngagementService:
    return EngagementService(session)


def get_negotiation_service(
    session: AsyncSession = Depends(get_db_session),
) -> NegotiationService:
    return NegotiationService(session)


def get_contract_service(
    session: AsyncSession = Depends(get_db_session),
    directory: UserDirectory = Depends(get_user_directory),
) -> ContractService:
    return ContractService(session, directory)


def get_settlement_service(
    session: AsyncSession = Depends(get_db_session),
    directory: UserDirectory = Depends(get_user_directory),
    rail: PaymentRail = Depends(get_payment_rail),
    settings: Settings = Depends(get_app_settings),
) -> SettlementService:
    return SettlementService(session, user_directory=directory, payment_rail=rail, settings=settings)

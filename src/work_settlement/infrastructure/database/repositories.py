"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Loads that precede a state transition pass ``for_update=True``: on
PostgreSQL this takes a row lock (SELECT ... FOR UPDATE) for the rest of
the transaction; SQLite ignores the clause and serializes writers itself.
Either way the ``version`` column catches anything that slips through.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select

from work_settlement.domain.enums import ChargeStatus, ProposalStatus
from work_settlement.infrastructure.database.orm_models import (
    Contract,
    Engagement,
    EngagementEvent,
    NegotiationProposal,
    PaymentCharge,
)

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy import Select
    from sqlalchemy.ext.asyncio import AsyncSession

    from work_settlement.domain.enums import ChargeType, EventType


def _locking(stmt: Select, for_update: bool) -> Select:
    if not for_update:
        return stmt
    # populate_existing refreshes a row already sitting in the identity map
    return stmt.with_for_update().execution_options(populate_existing=True)


class EngagementRepository:
    """Data access for engagements."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, engagement: Engagement) -> Engagement:
        """Insert a new engagement."""
        self._session.add(engagement)
        await self._session.flush()
        return engagement

    async def get_by_id(
        self, engagement_id: uuid.UUID, *, for_update: bool = False
    ) -> Engagement | None:
        """Fetch an engagement by its UUID."""
        stmt = select(Engagement).where(Engagement.id == engagement_id)
        result = await self._session.execute(_locking(stmt, for_update))
        return result.scalar_one_or_none()

    async def get_by_party(self, user_id: str) -> list[Engagement]:
        """Fetch every engagement where the user is producer or worker, newest first."""
        result = await self._session.execute(
            select(Engagement)
            .where(or_(Engagement.producer_id == user_id, Engagement.worker_id == user_id))
            .order_by(Engagement.created_at.desc())
        )
        return list(result.scalars().all())


class ProposalRepository:
    """Data access for the append-only negotiation ledger."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, proposal: NegotiationProposal) -> NegotiationProposal:
        """Append a proposal to the ledger."""
        self._session.add(proposal)
        await self._session.flush()
        return proposal

    async def get_by_id(
        self, proposal_id: uuid.UUID, *, for_update: bool = False
    ) -> NegotiationProposal | None:
        stmt = select(NegotiationProposal).where(NegotiationProposal.id == proposal_id)
        result = await self._session.execute(_locking(stmt, for_update))
        return result.scalar_one_or_none()

    async def get_by_engagement(self, engagement_id: uuid.UUID) -> list[NegotiationProposal]:
        """Fetch the full ledger for an engagement in chronological order."""
        result = await self._session.execute(
            select(NegotiationProposal)
            .where(NegotiationProposal.engagement_id == engagement_id)
            .order_by(NegotiationProposal.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_latest_accepted(self, engagement_id: uuid.UUID) -> NegotiationProposal | None:
        """Fetch the most recently accepted proposal, if any."""
        result = await self._session.execute(
            select(NegotiationProposal)
            .where(
                NegotiationProposal.engagement_id == engagement_id,
                NegotiationProposal.status == ProposalStatus.ACCEPTED.value,
            )
            .order_by(
                NegotiationProposal.accepted_at.desc(),
                NegotiationProposal.created_at.desc(),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()


class ContractRepository:
    """Data access for generated contracts."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, contract: Contract) -> Contract:
        """Insert a freshly drafted contract."""
        self._session.add(contract)
        await self._session.flush()
        return contract

    async def get_by_id(
        self, contract_id: uuid.UUID, *, for_update: bool = False
    ) -> Contract | None:
        stmt = select(Contract).where(Contract.id == contract_id)
        result = await self._session.execute(_locking(stmt, for_update))
        return result.scalar_one_or_none()

    async def get_by_engagement(self, engagement_id: uuid.UUID) -> list[Contract]:
        """Fetch every contract of an engagement (superseded ones included), oldest first."""
        result = await self._session.execute(
            select(Contract)
            .where(Contract.engagement_id == engagement_id)
            .order_by(Contract.created_at.asc())
        )
        return list(result.scalars().all())


class ChargeRepository:
    """Data access for payment charges."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_many(self, charges: list[PaymentCharge]) -> list[PaymentCharge]:
        """Insert charges in one flush (the partial unique index applies)."""
        self._session.add_all(charges)
        await self._session.flush()
        return charges

    async def get_by_id(
        self, charge_id: uuid.UUID, *, for_update: bool = False
    ) -> PaymentCharge | None:
        stmt = select(PaymentCharge).where(PaymentCharge.id == charge_id)
        result = await self._session.execute(_locking(stmt, for_update))
        return result.scalar_one_or_none()

    async def get_by_engagement(self, engagement_id: uuid.UUID) -> list[PaymentCharge]:
        """Fetch every charge of an engagement, oldest first."""
        result = await self._session.execute(
            select(PaymentCharge)
            .where(PaymentCharge.engagement_id == engagement_id)
            .order_by(PaymentCharge.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_active_by_engagement(
        self, engagement_id: uuid.UUID, *, for_update: bool = False
    ) -> list[PaymentCharge]:
        """Fetch pending and paid charges of an engagement."""
        stmt = select(PaymentCharge).where(
            PaymentCharge.engagement_id == engagement_id,
            PaymentCharge.status.in_([s.value for s in ChargeStatus.active()]),
        )
        result = await self._session.execute(_locking(stmt, for_update))
        return list(result.scalars().all())

    async def has_any_of_type(self, engagement_id: uuid.UUID, charge_type: ChargeType) -> bool:
        result = await self._session.execute(
            select(func.count())
            .select_from(PaymentCharge)
            .where(
                PaymentCharge.engagement_id == engagement_id,
                PaymentCharge.charge_type == charge_type.value,
            )
        )
        return result.scalar_one() > 0

    async def get_stale_pending(self, now: datetime, limit: int = 500) -> list[PaymentCharge]:
        """Fetch pending charges whose expiry is at or before ``now``."""
        result = await self._session.execute(
            select(PaymentCharge)
            .where(
                PaymentCharge.status == ChargeStatus.PENDING.value,
                PaymentCharge.expires_at <= now,
            )
            .order_by(PaymentCharge.expires_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_by_user(self, user_id: str) -> list[PaymentCharge]:
        """Fetch every charge where the user pays or receives."""
        result = await self._session.execute(
            select(PaymentCharge)
            .where(or_(PaymentCharge.payer_id == user_id, PaymentCharge.receiver_id == user_id))
            .order_by(PaymentCharge.created_at.desc())
        )
        return list(result.scalars().all())


class EventRepository:
    """Data access for the append-only audit event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        engagement_id: uuid.UUID,
        event_type: EventType,
        old_status: str | None,
        new_status: str | None,
        actor: str = "SYSTEM",
        metadata: dict | None = None,
        subject: str = "engagement",
        subject_id: uuid.UUID | None = None,
    ) -> EngagementEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = EngagementEvent(
            engagement_id=engagement_id,
            event_type=event_type.value,
            subject=subject,
            subject_id=subject_id,
            old_status=old_status,
            new_status=new_status,
            actor=actor,
            metadata_json=metadata,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_engagement(self, engagement_id: uuid.UUID) -> list[EngagementEvent]:
        """Fetch all events for an engagement in chronological order."""
        result = await self._session.execute(
            select(EngagementEvent)
            .where(EngagementEvent.engagement_id == engagement_id)
            .order_by(EngagementEvent.created_at.asc())
        )
        return list(result.scalars().all())

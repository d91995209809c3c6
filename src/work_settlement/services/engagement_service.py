"""Engagement Service - the work-order lifecycle.

This is the application layer that coordinates between:
    - Domain state machine (transition guard)
    - Repositories (data access)
    - Event log (audit trail)

    assigned --check_in--> checked_in --check_out--> checked_out --complete--> completed

Check-in is gated on a fully executed contract. Completion is reached either
through the settlement engine (every required charge paid) or through an
explicit producer confirmation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from work_settlement.domain.enums import (
    CheckEventKind,
    ContractStatus,
    EngagementStatus,
    EventType,
    PartyRole,
)
from work_settlement.domain.exceptions import (
    ConcurrentModificationError,
    ContractNotExecutedError,
    EngagementNotFoundError,
    WorkSettlementError,
)
from work_settlement.domain.money import require_minor_units
from work_settlement.domain.state_machine import EngagementStateMachine
from work_settlement.infrastructure.database.orm_models import (
    CheckEvent,
    Contract,
    Engagement,
    EngagementEvent,
)
from work_settlement.infrastructure.database.repositories import (
    ContractRepository,
    EngagementRepository,
    EventRepository,
)
from work_settlement.logging_config import get_logger
from work_settlement.services.transitions import (
    ensure_party,
    fire_transition,
    flush_or_raise,
    utcnow,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from work_settlement.domain.collaborators import GeoPoint

logger = get_logger(__name__)


class EngagementService:
    """Manages the engagement (work order) lifecycle."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._engagement_repo = EngagementRepository(session)
        self._contract_repo = ContractRepository(session)
        self._event_repo = EventRepository(session)

    # ------------------------------------------------------------------
    # Creation (a confirmed bid)
    # ------------------------------------------------------------------

    async def create_engagement(
        self,
        job_id: str,
        producer_id: str,
        worker_id: str,
        final_price_minor_units: int,
    ) -> Engagement:
        """Create a new engagement in ASSIGNED state from an accepted bid."""
        require_minor_units(final_price_minor_units, "final_price_minor_units")
        if producer_id == worker_id:
            raise WorkSettlementError(
                "Producer and worker must be different users", code="INVALID_PARTIES"
            )

        engagement = Engagement(
            job_id=job_id,
            producer_id=producer_id,
            worker_id=worker_id,
            final_price_minor_units=final_price_minor_units,
            status=EngagementStatus.ASSIGNED.value,
            check_events=[],
        )
        engagement = await self._engagement_repo.create(engagement)

        await self._event_repo.record(
            engagement_id=engagement.id,
            event_type=EventType.ENGAGEMENT_CREATED,
            old_status=None,
            new_status=EngagementStatus.ASSIGNED,
            actor=producer_id,
            metadata={"job_id": job_id, "bid_price": final_price_minor_units},
        )

        logger.info(
            "engagement.created",
            engagement_id=str(engagement.id),
            price=final_price_minor_units,
        )
        return engagement

    # ------------------------------------------------------------------
    # On-site check-in / check-out
    # ------------------------------------------------------------------

    async def check_in(
        self,
        engagement_id: uuid.UUID,
        location: GeoPoint,
        actor_id: str | None = None,
    ) -> Engagement:
        """Record the worker's arrival and transition to CHECKED_IN.

        Raises:
            ContractNotExecutedError: Both parties have not signed yet. This is
                checked before anything else about the engagement.
        """
        engagement = await self._get_engagement_or_raise(engagement_id, for_update=True)
        contract = await self.get_current_contract(engagement)
        if contract is None or contract.status != ContractStatus.FULLY_EXECUTED:
            raise ContractNotExecutedError(
                str(engagement_id), contract.status if contract else None
            )

        ensure_party(engagement, PartyRole.WORKER, actor_id)
        self._fire_transition(engagement, "check_in")

        engagement.check_events.append(
            CheckEvent(
                engagement_id=engagement.id,
                kind=CheckEventKind.CHECK_IN.value,
                occurred_at=location.time,
                latitude=location.latitude,
                longitude=location.longitude,
                evidence_photos=[],
            )
        )
        engagement.status = EngagementStatus.CHECKED_IN.value
        await self._flush(engagement)

        await self._event_repo.record(
            engagement_id=engagement.id,
            event_type=EventType.CHECKED_IN,
            old_status=EngagementStatus.ASSIGNED,
            new_status=EngagementStatus.CHECKED_IN,
            actor=actor_id or engagement.worker_id,
            metadata={"latitude": location.latitude, "longitude": location.longitude},
        )

        logger.info("engagement.checked_in", engagement_id=str(engagement_id))
        return engagement

    async def check_out(
        self,
        engagement_id: uuid.UUID,
        location: GeoPoint,
        evidence_photos: list[str] | None = None,
        actor_id: str | None = None,
    ) -> Engagement:
        """Record the closing check event and transition to CHECKED_OUT.

        There is no duration limit; multi-day jobs are fine.
        """
        engagement = await self._get_engagement_or_raise(engagement_id, for_update=True)
        ensure_party(engagement, PartyRole.WORKER, actor_id)
        self._fire_transition(engagement, "check_out")

        photos = list(evidence_photos or [])
        engagement.check_events.append(
            CheckEvent(
                engagement_id=engagement.id,
                kind=CheckEventKind.CHECK_OUT.value,
                occurred_at=location.time,
                latitude=location.latitude,
                longitude=location.longitude,
                evidence_photos=photos,
            )
        )
        engagement.status = EngagementStatus.CHECKED_OUT.value
        await self._flush(engagement)

        await self._event_repo.record(
            engagement_id=engagement.id,
            event_type=EventType.CHECKED_OUT,
            old_status=EngagementStatus.CHECKED_IN,
            new_status=EngagementStatus.CHECKED_OUT,
            actor=actor_id or engagement.worker_id,
            metadata={
                "latitude": location.latitude,
                "longitude": location.longitude,
                "evidence_photos": len(photos),
            },
        )

        logger.info("engagement.checked_out", engagement_id=str(engagement_id))
        return engagement

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def mark_completed(self, engagement_id: uuid.UUID, confirmed_by: str) -> Engagement:
        """Producer confirms the work is done (manual override of settlement)."""
        engagement = await self._get_engagement_or_raise(engagement_id, for_update=True)
        ensure_party(engagement, PartyRole.PRODUCER, confirmed_by)
        return await self.complete(engagement, actor=confirmed_by, reason="producer_confirmation")

    async def complete(self, engagement: Engagement, actor: str, reason: str) -> Engagement:
        """Move a (locked) CHECKED_OUT engagement to COMPLETED."""
        self._fire_transition(engagement, "complete")
        engagement.status = EngagementStatus.COMPLETED.value
        engagement.completed_at = utcnow()
        await self._flush(engagement)

        await self._event_repo.record(
            engagement_id=engagement.id,
            event_type=EventType.ENGAGEMENT_COMPLETED,
            old_status=EngagementStatus.CHECKED_OUT,
            new_status=EngagementStatus.COMPLETED,
            actor=actor,
            metadata={"reason": reason},
        )

        logger.info("engagement.completed", engagement_id=str(engagement.id), reason=reason)
        return engagement

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_engagement(self, engagement_id: uuid.UUID) -> Engagement:
        """Get an engagement or raise."""
        return await self._get_engagement_or_raise(engagement_id)

    async def list_for_user(self, user_id: str) -> list[Engagement]:
        return await self._engagement_repo.get_by_party(user_id)

    async def get_status(self, engagement_id: uuid.UUID) -> dict:
        """Get engagement status with allowed events and contract progress."""
        engagement = await self._get_engagement_or_raise(engagement_id)
        contract = await self.get_current_contract(engagement)
        sm = EngagementStateMachine(current_status=engagement.status)
        return {
            "engagement_id": str(engagement.id),
            "status": engagement.status,
            "contract_status": contract.status if contract else None,
            "allowed_events": sm.get_allowed_events(),
        }

    async def get_events(self, engagement_id: uuid.UUID) -> list[EngagementEvent]:
        """Get audit trail."""
        await self._get_engagement_or_raise(engagement_id)
        return await self._event_repo.get_by_engagement(engagement_id)

    async def get_current_contract(
        self, engagement: Engagement, *, for_update: bool = False
    ) -> Contract | None:
        if engagement.current_contract_id is None:
            return None
        return await self._contract_repo.get_by_id(
            engagement.current_contract_id, for_update=for_update
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_engagement_or_raise(
        self, engagement_id: uuid.UUID, *, for_update: bool = False
    ) -> Engagement:
        engagement = await self._engagement_repo.get_by_id(engagement_id, for_update=for_update)
        if engagement is None:
            raise EngagementNotFoundError(str(engagement_id))
        return engagement

    def _fire_transition(self, engagement: Engagement, event_name: str) -> None:
        fire_transition(EngagementStateMachine, engagement.status, event_name)

    async def _flush(self, engagement: Engagement) -> None:
        engagement_id = str(engagement.id)
        await flush_or_raise(
            self._session,
            lambda: ConcurrentModificationError("Engagement", engagement_id),
        )

"""Settlement Service - split-payment charges and their lifecycle.

After check-out the final price is split (Money Breakdown) into a worker
payout, paid by the producer to the worker, and a platform fee, paid by the
producer to the platform. Each part becomes one PIX charge:

    pending --confirm_payment--> paid
    pending --expire-----------> expired
    pending --cancel-----------> cancelled

At most one active (pending or paid) charge per type may exist for an
engagement. The partial unique index on payment_charges enforces it; the
service checks first so the common case fails with a clear message.

Charges move asynchronously (payment confirmation, expiry sweep). Whichever
transition commits first wins; the other sees a terminal status or a stale
version and fails with ChargeAlreadyTerminalError.

Lock order is always engagement row first, then charge rows.
"""

from __future__ import annotations

import secrets
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from work_settlement.config import get_settings
from work_settlement.domain.collaborators import ChargeRequest
from work_settlement.domain.enums import (
    ChargeStatus,
    ChargeType,
    ContractStatus,
    EngagementStatus,
    EventType,
)
from work_settlement.domain.exceptions import (
    ChargeAlreadyTerminalError,
    ChargeNotFoundError,
    ContractNotExecutedError,
    EngagementNotFoundError,
    InvalidStateError,
    InvariantViolationError,
    WorkSettlementError,
)
from work_settlement.domain.money import compute_breakdown
from work_settlement.domain.state_machine import ChargeStateMachine
from work_settlement.infrastructure.database.orm_models import PaymentCharge
from work_settlement.infrastructure.database.repositories import (
    ChargeRepository,
    EngagementRepository,
    EventRepository,
)
from work_settlement.logging_config import get_logger
from work_settlement.services.engagement_service import EngagementService
from work_settlement.services.payment_rail import PixRail
from work_settlement.services.transitions import fire_transition, flush_or_raise, utcnow

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from work_settlement.config import Settings
    from work_settlement.domain.collaborators import PaymentCode, PaymentRail, UserDirectory
    from work_settlement.domain.money import MoneyBreakdown
    from work_settlement.infrastructure.database.orm_models import Contract, Engagement

logger = get_logger(__name__)

_CHARGE_ORDER = (ChargeType.WORKER_PAYOUT, ChargeType.PLATFORM_FEE)
_CORRELATION_PREFIX = {ChargeType.WORKER_PAYOUT: "EMP_W", ChargeType.PLATFORM_FEE: "EMP_P"}


class SettlementService:
    """Issues, settles and expires payment charges."""

    def __init__(
        self,
        session: AsyncSession,
        user_directory: UserDirectory | None = None,
        payment_rail: PaymentRail | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._directory = user_directory
        self._rail = payment_rail or PixRail.from_settings(self._settings)
        self._engagements = EngagementService(session)
        self._engagement_repo = EngagementRepository(session)
        self._charge_repo = ChargeRepository(session)
        self._event_repo = EventRepository(session)

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    async def issue_charges(
        self, engagement_id: uuid.UUID, actor: str = "SYSTEM"
    ) -> list[PaymentCharge]:
        """Create the worker payout and platform fee charges for an engagement.

        Preconditions: contract fully executed and engagement checked out.
        Calling again while both charges are active returns them unchanged.

        Raises:
            ContractNotExecutedError: The contract is missing or not fully signed.
            InvariantViolationError: Some but not all charge types are active.
            InvalidStateError: The engagement has not been checked out.
        """
        worker_pix_key = await self._worker_pix_key(engagement_id)

        engagement = await self._get_engagement_or_raise(engagement_id, for_update=True)
        contract = await self._executed_contract_or_raise(engagement)
        amounts = self._required_amounts(engagement)

        active = await self._charge_repo.get_active_by_engagement(engagement.id, for_update=True)
        if active:
            if {c.charge_type for c in active} == {t.value for t in amounts}:
                logger.info("settlement.issue_retry", engagement_id=str(engagement.id))
                return _in_charge_order(active)
            raise InvariantViolationError(
                f"Engagement {engagement.id} already has active charges "
                f"({', '.join(sorted(c.charge_type for c in active))}); use reissue"
            )

        if engagement.status == EngagementStatus.COMPLETED and not amounts:
            return []
        if engagement.status != EngagementStatus.CHECKED_OUT:
            raise InvalidStateError(engagement.status, "issue_charges")

        if not amounts:
            await self._engagements.complete(engagement, actor=actor, reason="nothing_to_charge")
            return []

        now = utcnow()
        charges = [
            self._build_charge(engagement, contract, charge_type, value, now, worker_pix_key)
            for charge_type, value in amounts.items()
        ]
        await self._insert(engagement, charges)

        for charge in charges:
            await self._record_charge_event(
                charge, EventType.CHARGE_ISSUED, None, ChargeStatus.PENDING, actor,
                metadata={"value": charge.value_minor_units, "charge_type": charge.charge_type},
            )

        logger.info(
            "settlement.charges_issued",
            engagement_id=str(engagement.id),
            charges={c.charge_type: c.value_minor_units for c in charges},
        )
        return charges

    async def reissue(
        self,
        engagement_id: uuid.UUID,
        charge_type: ChargeType | str,
        actor: str = "SYSTEM",
    ) -> PaymentCharge:
        """Replace an expired or cancelled charge of ``charge_type``.

        Only allowed while no active charge of that type exists.
        """
        charge_type = ChargeType(charge_type)
        worker_pix_key = await self._worker_pix_key(engagement_id)

        engagement = await self._get_engagement_or_raise(engagement_id, for_update=True)
        contract = await self._executed_contract_or_raise(engagement)
        if engagement.status != EngagementStatus.CHECKED_OUT:
            raise InvalidStateError(engagement.status, "reissue")

        active = await self._charge_repo.get_active_by_engagement(engagement.id, for_update=True)
        if any(c.charge_type == charge_type for c in active):
            raise InvariantViolationError(
                f"Engagement {engagement.id} already has an active {charge_type.value} charge"
            )
        if not await self._charge_repo.has_any_of_type(engagement.id, charge_type):
            raise InvalidStateError(
                engagement.status,
                "reissue",
                message=f"No {charge_type.value} charge to replace; use issue_charges",
            )

        value = self._required_amounts(engagement).get(charge_type, 0)
        if value <= 0:
            raise InvalidStateError(
                engagement.status,
                "reissue",
                message=f"Nothing to charge as {charge_type.value} for engagement {engagement.id}",
            )

        charge = self._build_charge(engagement, contract, charge_type, value, utcnow(), worker_pix_key)
        await self._insert(engagement, [charge])
        await self._record_charge_event(
            charge, EventType.CHARGE_ISSUED, None, ChargeStatus.PENDING, actor,
            metadata={"value": value, "charge_type": charge_type.value, "reissue": True},
        )

        logger.info(
            "settlement.charge_reissued",
            engagement_id=str(engagement.id),
            charge_id=str(charge.id),
            charge_type=charge_type.value,
        )
        return charge

    # ------------------------------------------------------------------
    # Charge transitions
    # ------------------------------------------------------------------

    async def mark_paid(
        self,
        charge_id: uuid.UUID,
        paid_at: datetime | None = None,
        actor: str = "SYSTEM",
    ) -> PaymentCharge:
        """Confirm payment of a pending charge; completes the engagement when settled.

        Raises:
            ChargeAlreadyTerminalError: The charge is paid, expired or cancelled.
        """
        engagement, charge = await self._lock_charge(charge_id)
        self._fire_transition(charge, "confirm_payment")

        charge.status = ChargeStatus.PAID.value
        charge.paid_at = paid_at or utcnow()
        await self._flush_charge(charge)
        await self._record_charge_event(
            charge, EventType.CHARGE_PAID, ChargeStatus.PENDING, ChargeStatus.PAID, actor
        )

        logger.info(
            "settlement.charge_paid",
            charge_id=str(charge.id),
            charge_type=charge.charge_type,
            value=charge.value_minor_units,
        )
        await self._complete_if_settled(engagement)
        return charge

    async def cancel_charge(self, charge_id: uuid.UUID, actor: str = "SYSTEM") -> PaymentCharge:
        """Cancel a pending charge so it can be reissued."""
        _, charge = await self._lock_charge(charge_id)
        self._fire_transition(charge, "cancel")

        charge.status = ChargeStatus.CANCELLED.value
        await self._flush_charge(charge)
        await self._record_charge_event(
            charge, EventType.CHARGE_CANCELLED, ChargeStatus.PENDING, ChargeStatus.CANCELLED, actor
        )

        logger.info("settlement.charge_cancelled", charge_id=str(charge.id))
        return charge

    async def expire_stale_charges(self, now: datetime | None = None) -> list[PaymentCharge]:
        """Expire every pending charge whose ``expires_at`` is at or before ``now``.

        Each charge is handled in its own savepoint. Failures are logged and
        skipped; this method never raises. Returns the charges it expired.
        """
        now = now or utcnow()
        try:
            stale = await self._charge_repo.get_stale_pending(now)
        except SQLAlchemyError:
            logger.exception("settlement.sweep_query_failed")
            return []

        expired: list[PaymentCharge] = []
        for charge in stale:
            charge_id = str(charge.id)
            try:
                async with self._session.begin_nested():
                    await self._expire_one(charge)
            except WorkSettlementError as exc:
                logger.info("settlement.expire_skipped", charge_id=charge_id, reason=exc.code)
                continue
            except Exception:  # noqa: BLE001 - a bad record is logged and skipped
                logger.exception("settlement.expire_failed", charge_id=charge_id)
                continue
            expired.append(charge)

        logger.info("settlement.sweep_finished", scanned=len(stale), expired=len(expired))
        return expired

    async def reconcile_charge(self, charge_id: uuid.UUID) -> PaymentCharge:
        """Pull the charge status from the payment rail and apply it locally."""
        charge = await self._get_charge_or_raise(charge_id)
        if charge.status != ChargeStatus.PENDING:
            return charge

        remote = await self._rail.fetch_status(charge.correlation_id)
        if remote == ChargeStatus.PAID:
            return await self.mark_paid(charge_id, actor="PAYMENT_RAIL")
        if remote == ChargeStatus.EXPIRED:
            _, charge = await self._lock_charge(charge_id)
            await self._expire_one(charge, actor="PAYMENT_RAIL")
        return charge

    # ------------------------------------------------------------------
    # Payment codes
    # ------------------------------------------------------------------

    async def render_payment_code(self, charge_id: uuid.UUID) -> PaymentCode:
        """Ask the payment rail for the code the payer scans or copies."""
        charge = await self._get_charge_or_raise(charge_id)
        if charge.status != ChargeStatus.PENDING:
            raise ChargeAlreadyTerminalError(str(charge.id), charge.status)
        return await self._rail.render(
            ChargeRequest(
                correlation_id=charge.correlation_id,
                value_minor_units=charge.value_minor_units,
                receiver_id=charge.receiver_id,
                receiver_name=charge.receiver_name,
                receiver_pix_key=charge.receiver_pix_key,
                description=charge.description,
                expires_at=charge.expires_at,
            )
        )

    # ------------------------------------------------------------------
    # Read helpers (pure, lock-free)
    # ------------------------------------------------------------------

    async def get_breakdown(
        self, engagement_id: uuid.UUID, advance_paid: int = 0
    ) -> MoneyBreakdown:
        """Money breakdown of the engagement's final price under the configured fee."""
        engagement = await self._get_engagement_or_raise(engagement_id)
        return compute_breakdown(
            engagement.final_price_minor_units,
            self._settings.platform_fee_rate,
            advance_paid=advance_paid,
        )

    async def list_charges(self, engagement_id: uuid.UUID) -> list[PaymentCharge]:
        await self._get_engagement_or_raise(engagement_id)
        return await self._charge_repo.get_by_engagement(engagement_id)

    async def get_charge(self, charge_id: uuid.UUID) -> PaymentCharge:
        return await self._get_charge_or_raise(charge_id)

    async def payment_summary(self, user_id: str) -> dict:
        """Totals of what a user received and paid, plus charge counts.

        Every paid charge the user is part of counts as completed; pending
        ones count as pending whatever side the user is on.
        """
        summary = {
            "total_received": 0,
            "total_paid": 0,
            "pending_payments": 0,
            "completed_payments": 0,
        }
        for charge in await self._charge_repo.get_by_user(user_id):
            if charge.status == ChargeStatus.PAID:
                summary["completed_payments"] += 1
                if charge.receiver_id == user_id:
                    summary["total_received"] += charge.value_minor_units
                elif charge.payer_id == user_id:
                    summary["total_paid"] += charge.value_minor_units
            elif charge.status == ChargeStatus.PENDING:
                summary["pending_payments"] += 1
        return summary

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _required_amounts(self, engagement: Engagement) -> dict[ChargeType, int]:
        breakdown = compute_breakdown(
            engagement.final_price_minor_units, self._settings.platform_fee_rate
        )
        amounts = {
            ChargeType.WORKER_PAYOUT: breakdown.worker_payout,
            ChargeType.PLATFORM_FEE: breakdown.platform_fee,
        }
        # zero-valued parts are not charged
        return {t: v for t, v in amounts.items() if v > 0}

    def _build_charge(
        self,
        engagement: Engagement,
        contract: Contract,
        charge_type: ChargeType,
        value: int,
        now: datetime,
        worker_pix_key: str | None,
    ) -> PaymentCharge:
        service = f"Serviço {engagement.job_id}"
        if charge_type is ChargeType.WORKER_PAYOUT:
            receiver_id = engagement.worker_id
            receiver_name = contract.worker_name
            receiver_pix_key = worker_pix_key
            description = f"{service} - Pagamento ao trabalhador"
        else:
            receiver_id = self._settings.platform_receiver_id
            receiver_name = self._settings.platform_name
            receiver_pix_key = self._settings.platform_pix_key or None
            description = f"{service} - Taxa da plataforma {self._settings.platform_name}"

        correlation_id = (
            f"{_CORRELATION_PREFIX[charge_type]}_{engagement.id.hex}_"
            f"{int(now.timestamp() * 1000)}_{secrets.token_hex(4)}"
        )
        return PaymentCharge(
            engagement_id=engagement.id,
            charge_type=charge_type.value,
            payer_id=engagement.producer_id,
            receiver_id=receiver_id,
            receiver_name=receiver_name,
            receiver_pix_key=receiver_pix_key,
            value_minor_units=value,
            description=description[:255],
            correlation_id=correlation_id,
            status=ChargeStatus.PENDING.value,
            created_at=now,
            expires_at=now + timedelta(hours=self._settings.charge_expiry_hours),
        )

    async def _insert(self, engagement: Engagement, charges: list[PaymentCharge]) -> None:
        try:
            async with self._session.begin_nested():
                await self._charge_repo.create_many(charges)
        except IntegrityError as err:
            logger.warning("settlement.duplicate_active_charge", engagement_id=str(engagement.id))
            raise InvariantViolationError(
                f"Engagement {engagement.id} already has an active charge of that type"
            ) from err

    async def _expire_one(self, charge: PaymentCharge, actor: str = "SYSTEM") -> None:
        # re-read under a row lock; a payment may have landed since the scan
        current = await self._charge_repo.get_by_id(charge.id, for_update=True)
        if current is None:
            raise ChargeNotFoundError(str(charge.id))
        self._fire_transition(current, "expire")
        current.status = ChargeStatus.EXPIRED.value
        await self._flush_charge(current)
        await self._record_charge_event(
            current, EventType.CHARGE_EXPIRED, ChargeStatus.PENDING, ChargeStatus.EXPIRED, actor,
            metadata={"expires_at": current.expires_at.isoformat()},
        )
        logger.info("settlement.charge_expired", charge_id=str(current.id))

    async def _complete_if_settled(self, engagement: Engagement) -> None:
        if engagement.status != EngagementStatus.CHECKED_OUT:
            return
        required = {t.value for t in self._required_amounts(engagement)}
        active = await self._charge_repo.get_active_by_engagement(engagement.id)
        paid = {c.charge_type for c in active if c.status == ChargeStatus.PAID}
        if required <= paid:
            await self._engagements.complete(engagement, actor="SYSTEM", reason="settled")

    async def _lock_charge(self, charge_id: uuid.UUID) -> tuple[Engagement, PaymentCharge]:
        charge = await self._get_charge_or_raise(charge_id)
        engagement = await self._get_engagement_or_raise(charge.engagement_id, for_update=True)
        charge = await self._get_charge_or_raise(charge_id, for_update=True)
        return engagement, charge

    async def _executed_contract_or_raise(self, engagement: Engagement) -> Contract:
        contract = await self._engagements.get_current_contract(engagement)
        if contract is None or contract.status != ContractStatus.FULLY_EXECUTED:
            raise ContractNotExecutedError(
                str(engagement.id), contract.status if contract else None
            )
        return contract

    async def _worker_pix_key(self, engagement_id: uuid.UUID) -> str | None:
        if self._directory is None:
            return None
        engagement = await self._get_engagement_or_raise(engagement_id)
        profile = await self._directory.get_user(engagement.worker_id)
        return profile.pix_key if profile else None

    async def _record_charge_event(
        self,
        charge: PaymentCharge,
        event_type: EventType,
        old_status: ChargeStatus | None,
        new_status: ChargeStatus,
        actor: str,
        metadata: dict | None = None,
    ) -> None:
        await self._event_repo.record(
            engagement_id=charge.engagement_id,
            event_type=event_type,
            old_status=old_status,
            new_status=new_status,
            actor=actor,
            metadata=metadata,
            subject="charge",
            subject_id=charge.id,
        )

    def _fire_transition(self, charge: PaymentCharge, event_name: str) -> None:
        if charge.status != ChargeStatus.PENDING:
            raise ChargeAlreadyTerminalError(str(charge.id), charge.status)
        fire_transition(ChargeStateMachine, charge.status, event_name)

    async def _flush_charge(self, charge: PaymentCharge) -> None:
        charge_id = str(charge.id)
        # a stale charge version means another transition already settled it
        await flush_or_raise(
            self._session, lambda: ChargeAlreadyTerminalError(charge_id, "settled")
        )

    async def _get_engagement_or_raise(
        self, engagement_id: uuid.UUID, *, for_update: bool = False
    ) -> Engagement:
        engagement = await self._engagement_repo.get_by_id(engagement_id, for_update=for_update)
        if engagement is None:
            raise EngagementNotFoundError(str(engagement_id))
        return engagement

    async def _get_charge_or_raise(
        self, charge_id: uuid.UUID, *, for_update: bool = False
    ) -> PaymentCharge:
        charge = await self._charge_repo.get_by_id(charge_id, for_update=for_update)
        if charge is None:
            raise ChargeNotFoundError(str(charge_id))
        return charge


def _in_charge_order(charges: list[PaymentCharge]) -> list[PaymentCharge]:
    order = {t.value: i for i, t in enumerate(_CHARGE_ORDER)}
    return sorted(charges, key=lambda c: order[c.charge_type])

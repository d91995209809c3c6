"""Tests for the charge expiry sweep.

These tests verify that:
    1. Only pending charges past their expiry are expired.
    2. A charge paid before the sweep reaches it stays paid.
    3. One failing charge does not stop the sweep.
    4. run_expiry_sweep commits its work and honours the distributed lock.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from work_settlement.domain.enums import ChargeStatus, EventType
from work_settlement.infrastructure.database.orm_models import PaymentCharge
from work_settlement.orchestration.expiry_sweeper import ExpirySweeper, run_expiry_sweep
from work_settlement.services.contract_service import ContractService
from work_settlement.services.engagement_service import EngagementService
from work_settlement.services.settlement_service import SettlementService


class HeldLock:
    async def acquire(self) -> bool:
        return False

    async def release(self) -> None:
        raise AssertionError("a lock that was never acquired must not be released")


class BusyRedis:
    """Redis double whose sweep lock is always held by another process."""

    def __init__(self) -> None:
        self.names: list[str] = []

    def lock(self, name: str, **kwargs) -> HeldLock:  # noqa: ANN003
        self.names.append(name)
        return HeldLock()


async def _seed_pending_charges(
    session_factory, user_directory, payment_rail, test_settings, location
) -> list[PaymentCharge]:  # noqa: ANN001
    """Commit a checked-out engagement with both charges pending."""
    async with session_factory() as session:
        engagements = EngagementService(session)
        contracts = ContractService(session, user_directory)
        engagement = await engagements.create_engagement(
            "job-poda-3", "producer-001", "worker-001", 20000
        )
        await contracts.sign(engagement.id, "producer")
        await contracts.sign(engagement.id, "worker")
        await engagements.check_in(engagement.id, location)
        await engagements.check_out(engagement.id, location)
        charges = await SettlementService(
            session,
            user_directory=user_directory,
            payment_rail=payment_rail,
            settings=test_settings,
        ).issue_charges(engagement.id)
        await session.commit()
    return charges


class TestExpireStaleCharges:
    @pytest.mark.asyncio
    async def test_nothing_expires_early(self, settlement_service, checked_out_engagement) -> None:
        charges = await settlement_service.issue_charges(checked_out_engagement.id)

        expired = await settlement_service.expire_stale_charges(
            now=charges[0].expires_at - timedelta(seconds=1)
        )

        assert expired == []
        assert all(c.status == ChargeStatus.PENDING for c in charges)

    @pytest.mark.asyncio
    async def test_overdue_charges_expire(
        self, settlement_service, engagement_service, checked_out_engagement
    ) -> None:
        charges = await settlement_service.issue_charges(checked_out_engagement.id)

        expired = await settlement_service.expire_stale_charges(
            now=charges[0].expires_at + timedelta(minutes=5)
        )

        assert {c.id for c in expired} == {c.id for c in charges}
        assert all(c.status == ChargeStatus.EXPIRED for c in charges)

        events = await engagement_service.get_events(checked_out_engagement.id)
        assert [e.event_type for e in events].count(EventType.CHARGE_EXPIRED) == 2

    @pytest.mark.asyncio
    async def test_paid_charge_is_left_alone(
        self, settlement_service, checked_out_engagement
    ) -> None:
        payout, fee = await settlement_service.issue_charges(checked_out_engagement.id)
        await settlement_service.mark_paid(payout.id)

        expired = await settlement_service.expire_stale_charges(
            now=payout.expires_at + timedelta(hours=1)
        )

        assert [c.id for c in expired] == [fee.id]
        assert payout.status == ChargeStatus.PAID

    @pytest.mark.asyncio
    async def test_failure_on_one_charge_does_not_stop_the_sweep(
        self, settlement_service, checked_out_engagement, monkeypatch
    ) -> None:
        payout, fee = await settlement_service.issue_charges(checked_out_engagement.id)
        original = SettlementService._expire_one

        async def flaky_expire_one(self, charge, actor="SYSTEM"):  # noqa: ANN001, ANN202
            if charge.id == payout.id:
                raise RuntimeError("disk on fire")
            return await original(self, charge, actor)

        monkeypatch.setattr(SettlementService, "_expire_one", flaky_expire_one)

        expired = await settlement_service.expire_stale_charges(
            now=payout.expires_at + timedelta(hours=1)
        )

        assert [c.id for c in expired] == [fee.id]
        assert fee.status == ChargeStatus.EXPIRED
        assert payout.status == ChargeStatus.PENDING


class TestRunExpirySweep:
    @pytest.mark.asyncio
    async def test_sweep_commits(
        self, session_factory, user_directory, payment_rail, test_settings, location
    ) -> None:
        charges = await _seed_pending_charges(
            session_factory, user_directory, payment_rail, test_settings, location
        )

        result = await run_expiry_sweep(
            session_factory, now=charges[0].expires_at + timedelta(seconds=1)
        )

        assert result["ran"] is True
        assert result["expired"] == 2
        assert set(result["charge_ids"]) == {str(c.id) for c in charges}
        assert result["error"] == ""

        async with session_factory() as session:
            rows = await session.execute(select(PaymentCharge.status))
            assert {status for (status,) in rows} == {ChargeStatus.EXPIRED.value}

    @pytest.mark.asyncio
    async def test_sweep_skips_when_lock_is_held(
        self, session_factory, user_directory, payment_rail, test_settings, location
    ) -> None:
        charges = await _seed_pending_charges(
            session_factory, user_directory, payment_rail, test_settings, location
        )
        redis = BusyRedis()

        result = await run_expiry_sweep(
            session_factory,
            now=charges[0].expires_at + timedelta(seconds=1),
            redis=redis,
        )

        assert result == {"ran": False, "expired": 0, "charge_ids": [], "error": ""}
        assert redis.names == ["lock:settlement:expiry-sweep"]

    @pytest.mark.asyncio
    async def test_sweep_reports_errors_instead_of_raising(self) -> None:
        def broken_factory():  # noqa: ANN202
            raise RuntimeError("database is gone")

        result = await run_expiry_sweep(broken_factory)  # type: ignore[arg-type]

        assert result["ran"] is False
        assert "database is gone" in result["error"]


class TestExpirySweeper:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, session_factory) -> None:
        sweeper = ExpirySweeper(interval_seconds=3600, session_factory=session_factory)

        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.05)

        await sweeper.stop()
        assert not sweeper.running

    @pytest.mark.asyncio
    async def test_stop_without_start(self) -> None:
        sweeper = ExpirySweeper(interval_seconds=1)
        await sweeper.stop()
        assert not sweeper.running

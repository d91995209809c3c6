"""Two-session races against a file-backed SQLite database.

These tests verify that:
    1. mark_paid loses cleanly to an expiry sweep that committed first.
    2. Two signatures racing on one contract never both land.
    3. Two issue_charges calls racing on one engagement leave one active
       charge per type.

Each race pauses the first session between its read and its write, lets a
second session commit a competing change, then resumes the first one. The
first session ends its read transaction before pausing so SQLite lets the
second one write.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from work_settlement.domain.enums import ChargeStatus, ContractStatus, EventType
from work_settlement.domain.exceptions import (
    ChargeAlreadyTerminalError,
    ConcurrentModificationError,
    InvariantViolationError,
)
from work_settlement.infrastructure.database.engine import build_engine
from work_settlement.infrastructure.database.orm_models import Base, PaymentCharge
from work_settlement.services.contract_service import ContractService
from work_settlement.services.engagement_service import EngagementService
from work_settlement.services.settlement_service import SettlementService


@pytest_asyncio.fixture
async def file_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:  # noqa: ANN001
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def race_factory(file_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=file_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def interleave(monkeypatch, cls, name, session, competitor, *, before=False) -> None:  # noqa: ANN001
    """Run ``competitor`` once when ``session`` reaches ``cls.name``.

    ``session`` commits its read transaction first; its loaded objects stay
    in the identity map, now stale.
    """
    original = getattr(cls, name)
    fired = False

    async def pause() -> None:
        nonlocal fired
        fired = True
        await session.commit()
        await competitor()

    async def paused(self, *args, **kwargs):  # noqa: ANN001, ANN002, ANN003, ANN202
        ours = self._session is session and not fired
        if ours and before:
            await pause()
        result = await original(self, *args, **kwargs)
        if ours and not before:
            await pause()
        return result

    monkeypatch.setattr(cls, name, paused)


def settlement(session, user_directory, payment_rail, test_settings) -> SettlementService:  # noqa: ANN001
    return SettlementService(
        session,
        user_directory=user_directory,
        payment_rail=payment_rail,
        settings=test_settings,
    )


async def _seed(race_factory, user_directory, location, *, executed: bool = True):  # noqa: ANN001, ANN202
    """Commit an engagement with a drafted contract, or one checked out if ``executed``."""
    async with race_factory() as session:
        engagements = EngagementService(session)
        contracts = ContractService(session, user_directory)
        engagement = await engagements.create_engagement(
            "job-capina-8", "producer-001", "worker-001", 15000
        )
        await contracts.generate(engagement.id)
        if executed:
            await contracts.sign(engagement.id, "producer")
            await contracts.sign(engagement.id, "worker")
            await engagements.check_in(engagement.id, location)
            await engagements.check_out(engagement.id, location)
        await session.commit()
    return engagement


class TestMarkPaidAgainstSweep:
    @pytest.mark.asyncio
    async def test_committed_sweep_wins(
        self, race_factory, user_directory, payment_rail, test_settings, location, monkeypatch
    ) -> None:
        engagement = await _seed(race_factory, user_directory, location)
        async with race_factory() as session:
            payout, _ = await settlement(
                session, user_directory, payment_rail, test_settings
            ).issue_charges(engagement.id)
            await session.commit()

        async with race_factory() as first, race_factory() as second:

            async def sweep() -> None:
                await settlement(
                    second, user_directory, payment_rail, test_settings
                ).expire_stale_charges(now=payout.expires_at + timedelta(minutes=1))
                await second.commit()

            interleave(monkeypatch, SettlementService, "_lock_charge", first, sweep)

            with pytest.raises(ChargeAlreadyTerminalError) as exc_info:
                await settlement(first, user_directory, payment_rail, test_settings).mark_paid(
                    payout.id
                )
            assert exc_info.value.charge_id == str(payout.id)
            await first.rollback()

        async with race_factory() as session:
            charge = await session.get(PaymentCharge, payout.id)
            assert charge.status == ChargeStatus.EXPIRED
            assert charge.paid_at is None
            events = await EngagementService(session).get_events(engagement.id)
            assert EventType.CHARGE_PAID not in [e.event_type for e in events]

    @pytest.mark.asyncio
    async def test_mark_paid_after_committed_sweep(
        self, race_factory, user_directory, payment_rail, test_settings, location
    ) -> None:
        engagement = await _seed(race_factory, user_directory, location)
        async with race_factory() as first:
            service = settlement(first, user_directory, payment_rail, test_settings)
            payout, _ = await service.issue_charges(engagement.id)
            await first.commit()

            async with race_factory() as second:
                await settlement(
                    second, user_directory, payment_rail, test_settings
                ).expire_stale_charges(now=payout.expires_at + timedelta(minutes=1))
                await second.commit()

            # ``payout`` is still pending in this session's identity map
            assert payout.status == ChargeStatus.PENDING
            with pytest.raises(ChargeAlreadyTerminalError):
                await service.mark_paid(payout.id)


class TestSignatureRace:
    @pytest.mark.asyncio
    async def test_same_role_signs_once(
        self, race_factory, user_directory, location, monkeypatch
    ) -> None:
        engagement = await _seed(race_factory, user_directory, location, executed=False)
        async with race_factory() as session:
            await ContractService(session, user_directory).sign(engagement.id, "producer")
            await session.commit()

        async with race_factory() as first, race_factory() as second:

            async def worker_signs() -> None:
                await ContractService(second, user_directory).sign(engagement.id, "worker")
                await second.commit()

            interleave(monkeypatch, ContractService, "_current_contract", first, worker_signs)

            with pytest.raises(ConcurrentModificationError) as exc_info:
                await ContractService(first, user_directory).sign(engagement.id, "worker")
            assert exc_info.value.code == "CONCURRENT_MODIFICATION"
            await first.rollback()

        async with race_factory() as session:
            contract = await ContractService(session, user_directory).get_contract(engagement.id)
            assert contract.status == ContractStatus.FULLY_EXECUTED
            events = await EngagementService(session).get_events(engagement.id)
            types = [e.event_type for e in events]
            assert types.count(EventType.CONTRACT_SIGNED) == 2
            assert types.count(EventType.CONTRACT_EXECUTED) == 1

    @pytest.mark.asyncio
    async def test_other_role_signature_is_not_lost(
        self, race_factory, user_directory, location, monkeypatch
    ) -> None:
        engagement = await _seed(race_factory, user_directory, location, executed=False)

        async with race_factory() as first, race_factory() as second:

            async def worker_signs() -> None:
                await ContractService(second, user_directory).sign(engagement.id, "worker")
                await second.commit()

            interleave(monkeypatch, ContractService, "_current_contract", first, worker_signs)

            with pytest.raises(ConcurrentModificationError):
                await ContractService(first, user_directory).sign(engagement.id, "producer")
            await first.rollback()

        async with race_factory() as session:
            contracts = ContractService(session, user_directory)
            contract = await contracts.get_contract(engagement.id)
            assert contract.status == ContractStatus.PARTIALLY_SIGNED
            assert contract.worker_signed_at is not None
            assert contract.producer_signed_at is None

            # the losing party retries against the fresh row
            contract = await contracts.sign(engagement.id, "producer")
            assert contract.status == ContractStatus.FULLY_EXECUTED


class TestIssueRace:
    @pytest.mark.asyncio
    async def test_second_issue_returns_committed_charges(
        self, race_factory, user_directory, payment_rail, test_settings, location
    ) -> None:
        engagement = await _seed(race_factory, user_directory, location)
        async with race_factory() as first:
            issued = await settlement(
                first, user_directory, payment_rail, test_settings
            ).issue_charges(engagement.id)
            await first.commit()

        async with race_factory() as second:
            again = await settlement(
                second, user_directory, payment_rail, test_settings
            ).issue_charges(engagement.id)

        assert [c.id for c in again] == [c.id for c in issued]

    @pytest.mark.asyncio
    async def test_racing_insert_hits_active_charge_index(
        self, race_factory, user_directory, payment_rail, test_settings, location, monkeypatch
    ) -> None:
        engagement = await _seed(race_factory, user_directory, location)
        winner: list[PaymentCharge] = []

        async with race_factory() as first, race_factory() as second:

            async def competing_issue() -> None:
                winner.extend(
                    await settlement(
                        second, user_directory, payment_rail, test_settings
                    ).issue_charges(engagement.id)
                )
                await second.commit()

            # the competitor commits after this session saw no active charges
            interleave(
                monkeypatch, SettlementService, "_insert", first, competing_issue, before=True
            )

            with pytest.raises(InvariantViolationError):
                await settlement(
                    first, user_directory, payment_rail, test_settings
                ).issue_charges(engagement.id)
            await first.rollback()

        async with race_factory() as session:
            rows = await session.execute(
                select(PaymentCharge.id).where(
                    PaymentCharge.engagement_id == engagement.id,
                    PaymentCharge.status == ChargeStatus.PENDING.value,
                )
            )
            assert {charge_id for (charge_id,) in rows} == {c.id for c in winner}
            assert len(winner) == 2

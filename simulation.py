#!/usr/bin/env python3
"""Work Settlement - End-to-End Simulation.

Simulates three scenarios with ProducerBot and WorkerBot agents:

    Scenario 1: Happy Path
        - Producer hires a worker for a coffee harvest (R$ 100,00 bid)
        - Worker asks for 30% up front, producer accepts
        - Both sign, worker checks in and out, both charges are paid -> COMPLETED

    Scenario 2: Expired Charge
        - Charges are issued but the worker payout is never paid
        - The expiry sweep moves it to expired
        - The charge is reissued and paid -> COMPLETED

    Scenario 3: Renegotiation After One Signature
        - Producer signs, then the worker proposes per-day terms
        - Accepting them supersedes the half-signed contract
        - A fresh contract is drafted and signed by both

Usage:
    # Option A: With Docker (PostgreSQL):
    docker compose up -d
    uv run python simulation.py

    # Option B: Without Docker (SQLite in-memory):
    uv run python simulation.py --sqlite

    # Run a specific scenario:
    uv run python simulation.py --sqlite --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from work_settlement.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from work_settlement.domain.collaborators import GeoPoint, UserProfile  # noqa: E402
from work_settlement.domain.money import format_brl  # noqa: E402
from work_settlement.services.user_directory import InMemoryUserDirectory  # noqa: E402

# Module-level state
_sqlite_engine = None
_sqlite_session_factory = None

DIRECTORY = InMemoryUserDirectory(
    [
        UserProfile(id="producer-maria", name="Maria Produtora"),
        UserProfile(id="worker-joao", name="João Trabalhador", pix_key="joao@pix.example"),
    ]
)

FARM = (-3.7158, -53.7381)


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False):
    """Initialize database engine and create tables."""
    global _sqlite_engine, _sqlite_session_factory

    if use_sqlite:
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

        from work_settlement.infrastructure.database.engine import build_engine
        from work_settlement.infrastructure.database.orm_models import Base

        _sqlite_engine = build_engine("sqlite+aiosqlite:///:memory:")
        _sqlite_session_factory = async_sessionmaker(
            bind=_sqlite_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        async with _sqlite_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.sqlite_initialized")
    else:
        from work_settlement.infrastructure.database.engine import init_db
        await init_db()


def session_factory():
    if _sqlite_session_factory is not None:
        return _sqlite_session_factory

    from work_settlement.infrastructure.database.engine import get_session_factory
    return get_session_factory()


async def get_session():
    """Get a fresh database session."""
    return session_factory()()


async def shutdown_database():
    """Close database connections."""
    global _sqlite_engine, _sqlite_session_factory

    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None
        _sqlite_session_factory = None
    else:
        from work_settlement.infrastructure.database.engine import close_db
        await close_db()


def _settlement(session: Any):
    from work_settlement.services.payment_rail import PixRail
    from work_settlement.services.settlement_service import SettlementService

    return SettlementService(session, user_directory=DIRECTORY, payment_rail=PixRail(simulate=True))


def _here(hours_later: float = 0) -> GeoPoint:
    return GeoPoint(
        latitude=FARM[0],
        longitude=FARM[1],
        time=datetime.now(UTC) + timedelta(hours=hours_later),
    )


# ---------------------------------------------------------------------------
# Bot Agents
# ---------------------------------------------------------------------------
@dataclass
class ProducerBot:
    """Simulated producer who hires, signs and pays."""

    user_id: str = "producer-maria"

    async def hire(self, session: Any, worker_id: str, job_id: str, price: int) -> str:
        """Turn an accepted bid into an engagement. Returns engagement_id."""
        from work_settlement.services.engagement_service import EngagementService

        engagement = await EngagementService(session).create_engagement(
            job_id=job_id,
            producer_id=self.user_id,
            worker_id=worker_id,
            final_price_minor_units=price,
        )
        await session.commit()
        logger.info(
            "🔵 PRODUCER: Worker hired",
            engagement_id=str(engagement.id),
            price=format_brl(price),
        )
        return str(engagement.id)

    async def accept(self, session: Any, proposal_id: uuid.UUID) -> None:
        from work_settlement.services.negotiation_service import NegotiationService

        await NegotiationService(session).accept(proposal_id, accepted_by=self.user_id)
        await session.commit()
        logger.info("🔵 PRODUCER: Terms accepted", proposal_id=str(proposal_id))

    async def sign(self, session: Any, engagement_id: str) -> str:
        from work_settlement.services.contract_service import ContractService

        contract = await ContractService(session, DIRECTORY).sign(
            uuid.UUID(engagement_id), "producer", signer_id=self.user_id
        )
        await session.commit()
        logger.info("🔵 PRODUCER: Contract signed", status=contract.status)
        return contract.status

    async def pay(self, session: Any, charge_id: uuid.UUID) -> None:
        svc = _settlement(session)
        code = await svc.render_payment_code(charge_id)
        charge = await svc.mark_paid(charge_id, actor=self.user_id)
        await session.commit()
        logger.info(
            "🔵 PRODUCER: Charge paid",
            charge_type=charge.charge_type,
            value=format_brl(charge.value_minor_units),
            pix=code.payload[:32] + "...",
        )


@dataclass
class WorkerBot:
    """Simulated worker who negotiates, signs and shows up on site."""

    user_id: str = "worker-joao"
    photos: list[str] = field(default_factory=lambda: ["photos/antes.jpg", "photos/depois.jpg"])

    async def propose(
        self,
        session: Any,
        engagement_id: str,
        terms: dict,
        total_price: int | None = None,
    ) -> uuid.UUID:
        from work_settlement.services.negotiation_service import NegotiationService

        proposal = await NegotiationService(session).propose(
            uuid.UUID(engagement_id),
            proposer_id=self.user_id,
            role="worker",
            terms=terms,
            total_price=total_price,
        )
        await session.commit()
        logger.info("🟢 WORKER: Terms proposed", kind=terms["kind"])
        return proposal.id

    async def sign(self, session: Any, engagement_id: str) -> str:
        from work_settlement.services.contract_service import ContractService

        contract = await ContractService(session, DIRECTORY).sign(
            uuid.UUID(engagement_id), "worker", signer_id=self.user_id
        )
        await session.commit()
        logger.info("🟢 WORKER: Contract signed", status=contract.status)
        return contract.status

    async def do_the_job(self, session: Any, engagement_id: str, hours: float = 8) -> None:
        from work_settlement.services.engagement_service import EngagementService

        svc = EngagementService(session)
        eid = uuid.UUID(engagement_id)
        await svc.check_in(eid, _here(), actor_id=self.user_id)
        await svc.check_out(eid, _here(hours), evidence_photos=self.photos, actor_id=self.user_id)
        await session.commit()
        logger.info("🟢 WORKER: Checked in and out", hours=hours)


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


def print_charges(charges: list) -> None:
    for charge in charges:
        print(
            f"  💸 {charge.charge_type:<14} {format_brl(charge.value_minor_units):>12}"
            f"  {charge.status:<9} -> {charge.receiver_name or charge.receiver_id}"
        )


async def print_audit_trail(session: Any, engagement_id: str) -> None:
    """Print the full audit trail for an engagement."""
    from work_settlement.services.engagement_service import EngagementService

    events = await EngagementService(session).get_events(uuid.UUID(engagement_id))
    print("\n  📜 Audit Trail:")
    for i, evt in enumerate(events, 1):
        old = evt.old_status or "-"
        print(f"    {i}. [{evt.event_type}] {evt.subject}: {old} → {evt.new_status} (by {evt.actor})")
    print()


async def _final_status(session: Any, engagement_id: str) -> str:
    from work_settlement.services.engagement_service import EngagementService

    status = await EngagementService(session).get_status(uuid.UUID(engagement_id))
    print(f"\n  🏁 Engagement status: {status['status']} (contract: {status['contract_status']})")
    return status["status"]


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    """Negotiate 30% up front, execute, work, settle."""
    banner("SCENARIO 1: Happy Path - Coffee Harvest")

    producer = ProducerBot()
    worker = WorkerBot()

    session = await get_session()
    async with session:
        section("Step 1: Producer hires the worker")
        engagement_id = await producer.hire(session, worker.user_id, "colheita-cafe-42", 10000)

        section("Step 2: Worker asks for 30% up front, producer accepts")
        proposal_id = await worker.propose(
            session, engagement_id, {"kind": "advance_custom", "advance_percent": 30}, 10000
        )
        await producer.accept(session, proposal_id)

        section("Step 3: Both parties sign")
        await producer.sign(session, engagement_id)
        status = await worker.sign(session, engagement_id)
        assert status == "fully_executed", f"Expected fully_executed, got {status}"

        section("Step 4: Worker does the job")
        await worker.do_the_job(session, engagement_id)

        section("Step 5: Settlement")
        svc = _settlement(session)
        breakdown = await svc.get_breakdown(uuid.UUID(engagement_id), advance_paid=3000)
        print(f"  Total: {format_brl(breakdown.total)}  Remaining: {format_brl(breakdown.remaining_to_pay)}")
        charges = await svc.issue_charges(uuid.UUID(engagement_id))
        await session.commit()
        print_charges(charges)

        for charge in charges:
            await producer.pay(session, charge.id)

        final = await _final_status(session, engagement_id)
        assert final == "completed", f"Expected completed, got {final}"
        await print_audit_trail(session, engagement_id)


# ===========================================================================
# Scenario 2: Expired Charge
# ===========================================================================
async def scenario_2_expired_charge() -> None:
    """The payout expires unpaid, is reissued, and then settles."""
    banner("SCENARIO 2: Expired Charge - Sweep and Reissue")

    producer = ProducerBot()
    worker = WorkerBot()

    session = await get_session()
    async with session:
        section("Step 1: Setup (Hire -> Sign -> Work)")
        engagement_id = await producer.hire(session, worker.user_id, "rocada-pasto-7", 25000)
        await producer.sign(session, engagement_id)
        await worker.sign(session, engagement_id)
        await worker.do_the_job(session, engagement_id, hours=30)

        section("Step 2: Charges issued; only the platform fee is paid")
        svc = _settlement(session)
        payout, fee = await svc.issue_charges(uuid.UUID(engagement_id))
        await session.commit()
        await producer.pay(session, fee.id)

    section("Step 3: The expiry sweep runs a day later")
    from work_settlement.orchestration.expiry_sweeper import run_expiry_sweep

    result = await run_expiry_sweep(session_factory(), now=payout.expires_at + timedelta(minutes=1))
    print(f"  🧹 Sweep expired {result['expired']} charge(s)")
    assert result["expired"] == 1, f"Expected 1 expired charge, got {result}"

    session = await get_session()
    async with session:
        section("Step 4: Payout reissued and paid")
        svc = _settlement(session)
        replacement = await svc.reissue(uuid.UUID(engagement_id), "worker_payout")
        await session.commit()
        await producer.pay(session, replacement.id)

        print_charges(await _settlement(session).list_charges(uuid.UUID(engagement_id)))
        final = await _final_status(session, engagement_id)
        assert final == "completed", f"Expected completed, got {final}"
        await print_audit_trail(session, engagement_id)


# ===========================================================================
# Scenario 3: Renegotiation After One Signature
# ===========================================================================
async def scenario_3_renegotiation() -> None:
    """New terms accepted mid-signature replace the half-signed contract."""
    banner("SCENARIO 3: Renegotiation - Superseded Contract")

    producer = ProducerBot()
    worker = WorkerBot()

    session = await get_session()
    async with session:
        section("Step 1: Producer hires and signs right away")
        engagement_id = await producer.hire(session, worker.user_id, "poda-cacau-3", 30000)
        status = await producer.sign(session, engagement_id)
        assert status == "partially_signed", f"Expected partially_signed, got {status}"

        section("Step 2: Worker proposes 3 days at R$ 120,00; producer accepts")
        proposal_id = await worker.propose(
            session,
            engagement_id,
            {"kind": "per_day", "rate_minor_units": 12000, "estimated_days": "3"},
        )
        await producer.accept(session, proposal_id)

        section("Step 3: Fresh contract signed by both")
        await producer.sign(session, engagement_id)
        await worker.sign(session, engagement_id)

        from work_settlement.services.contract_service import ContractService

        contracts = await ContractService(session, DIRECTORY).list_contracts(uuid.UUID(engagement_id))
        for contract in contracts:
            superseded = " (superseded)" if contract.superseded_at else ""
            print(
                f"  📄 {contract.status:<17} {format_brl(contract.total_value_minor_units)}"
                f" {contract.payment_terms_kind}{superseded}"
            )
        assert len(contracts) == 2, f"Expected 2 contracts, got {len(contracts)}"

        await _final_status(session, engagement_id)
        await print_audit_trail(session, engagement_id)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_expired_charge,
    3: scenario_3_renegotiation,
}


async def run_all(use_sqlite: bool = False) -> None:
    """Run all scenarios sequentially."""
    await init_database(use_sqlite=use_sqlite)

    try:
        print("\n" + "🌱" * 35)
        print("  WORK SETTLEMENT - SIMULATION")
        db_type = "SQLite (in-memory)" if use_sqlite else "PostgreSQL"
        print(f"  Database: {db_type}")
        print("  Payment rail: simulated PIX")
        print("🌱" * 35 + "\n")

        for scenario in SCENARIOS.values():
            await scenario()

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")

    finally:
        await shutdown_database()


async def run_scenario(num: int, use_sqlite: bool = False) -> None:
    """Run a specific scenario."""
    await init_database(use_sqlite=use_sqlite)

    try:
        if num not in SCENARIOS:
            print(f"Unknown scenario {num}. Available: 1, 2, 3")
            return
        await SCENARIOS[num]()
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Work Settlement Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of PostgreSQL (no Docker needed).",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all(use_sqlite=args.sqlite))
    else:
        asyncio.run(run_scenario(args.scenario, use_sqlite=args.sqlite))

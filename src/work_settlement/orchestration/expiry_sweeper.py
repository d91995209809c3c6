"""Expiry sweep - moves overdue pending charges to expired.

The sweep is the only operation that runs on a timer instead of a user
action. Every API process starts an ExpirySweeper in its lifespan; a Redis
lock keeps a single process sweeping at a time:

    acquire lock -> open session -> expire_stale_charges -> commit -> release

Usage:
    from work_settlement.orchestration.expiry_sweeper import run_expiry_sweep

    result = await run_expiry_sweep()
    result["expired"]  # number of charges moved to expired
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, TypedDict

from work_settlement.config import get_settings
from work_settlement.infrastructure.database.engine import get_session_factory
from work_settlement.infrastructure.redis_client import distributed_lock
from work_settlement.logging_config import get_logger
from work_settlement.services.settlement_service import SettlementService

if TYPE_CHECKING:
    from datetime import datetime

    import redis.asyncio as aioredis
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)

SWEEP_LOCK_NAME = "settlement:expiry-sweep"


class SweepResult(TypedDict):
    ran: bool
    expired: int
    charge_ids: list[str]
    error: str


async def run_expiry_sweep(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    now: datetime | None = None,
    redis: aioredis.Redis | None = None,
) -> SweepResult:
    """Run one sweep under the distributed lock. Never raises."""
    factory = session_factory or get_session_factory()
    result: SweepResult = {"ran": False, "expired": 0, "charge_ids": [], "error": ""}

    try:
        async with distributed_lock(SWEEP_LOCK_NAME, client=redis) as acquired:
            if not acquired:
                logger.debug("sweeper.lock_held_elsewhere")
                return result

            async with factory() as session:
                expired = await SettlementService(session).expire_stale_charges(now)
                await session.commit()

            result["ran"] = True
            result["expired"] = len(expired)
            result["charge_ids"] = [str(c.id) for c in expired]
    except Exception as exc:
        logger.exception("sweeper.error")
        result["error"] = str(exc)

    if result["expired"]:
        logger.info("sweeper.expired_charges", count=result["expired"])
    return result


class ExpirySweeper:
    """Background asyncio task that runs the sweep every ``interval`` seconds."""

    def __init__(
        self,
        interval_seconds: float | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._interval = interval_seconds or get_settings().expiry_sweep_interval_seconds
        self._session_factory = session_factory
        self._task: asyncio.Task | None = None
        self._stopped = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopped.clear()
        self._task = asyncio.create_task(self._loop(), name="expiry-sweeper")
        logger.info("sweeper.started", interval_seconds=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopped.set()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("sweeper.stopped")

    async def _loop(self) -> None:
        while not self._stopped.is_set():
            await run_expiry_sweep(self._session_factory)
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stopped.wait(), timeout=self._interval)

"""Helpers shared by the application services.

Every service applies its state changes the same way: guard the transition
through the entity's state machine, mutate the row, flush, and translate a
stale ``version`` into a domain error. Keeping that here means the four
services cannot drift apart on it.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm.exc import StaleDataError
from statemachine.exceptions import TransitionNotAllowed

from work_settlement.domain.enums import PartyRole
from work_settlement.domain.exceptions import InvalidStateError, PartyMismatchError
from work_settlement.domain.state_machine import validate_transition

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from work_settlement.domain.exceptions import WorkSettlementError
    from work_settlement.domain.state_machine import _GuardMachine
    from work_settlement.infrastructure.database.orm_models import Engagement


def utcnow() -> datetime:
    return datetime.now(UTC)


def fire_transition(
    machine_cls: type[_GuardMachine],
    current_status: str,
    event_name: str,
) -> str:
    """Validate a transition and return the resulting status.

    Raises InvalidStateError if the transition is illegal.
    """
    try:
        return validate_transition(machine_cls, current_status, event_name)
    except TransitionNotAllowed as err:
        raise InvalidStateError(current_status, event_name) from err


async def flush_or_raise(
    session: AsyncSession,
    on_stale: Callable[[], WorkSettlementError],
) -> None:
    """Flush pending changes; a version mismatch becomes ``on_stale()``."""
    try:
        await session.flush()
    except StaleDataError as err:
        raise on_stale() from err


def party_id(engagement: Engagement, role: PartyRole) -> str:
    return engagement.producer_id if role is PartyRole.PRODUCER else engagement.worker_id


def ensure_party(engagement: Engagement, role: PartyRole, actor_id: str | None) -> None:
    """Raise PartyMismatchError if ``actor_id`` is given and is not the ``role`` party."""
    if actor_id is not None and actor_id != party_id(engagement, role):
        raise PartyMismatchError(str(engagement.id), role.value, actor_id)

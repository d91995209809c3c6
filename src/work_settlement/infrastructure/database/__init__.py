"""Database infrastructure - engine, ORM models, and repositories."""

from work_settlement.infrastructure.database.engine import (
    close_db,
    get_async_session,
    get_session_factory,
    init_db,
)
from work_settlement.infrastructure.database.orm_models import (
    Base,
    CheckEvent,
    Contract,
    Engagement,
    EngagementEvent,
    NegotiationProposal,
    PaymentCharge,
)
from work_settlement.infrastructure.database.repositories import (
    ChargeRepository,
    ContractRepository,
    EngagementRepository,
    EventRepository,
    ProposalRepository,
)

__all__ = [
    "Base",
    "CheckEvent",
    "Contract",
    "Engagement",
    "EngagementEvent",
    "NegotiationProposal",
    "PaymentCharge",
    "ChargeRepository",
    "ContractRepository",
    "EngagementRepository",
    "EventRepository",
    "ProposalRepository",
    "get_async_session",
    "get_session_factory",
    "init_db",
    "close_db",
]

"""Domain enumerations for the settlement pipeline.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

from __future__ import annotations

import enum


class EngagementStatus(enum.StrEnum):
    """Lifecycle states of an engagement (work order).

    Transitions are enforced by EngagementStateMachine.
    See domain/state_machine.py for the transition table.
    """

    ASSIGNED = "assigned"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    COMPLETED = "completed"


class ContractStatus(enum.StrEnum):
    """Signature progress of a contract. Only ever moves forward."""

    DRAFTED = "drafted"
    PARTIALLY_SIGNED = "partially_signed"
    FULLY_EXECUTED = "fully_executed"


class ChargeStatus(enum.StrEnum):
    """Lifecycle of a payment charge. Everything but PENDING is terminal."""

    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @classmethod
    def active(cls) -> tuple[ChargeStatus, ...]:
        """Statuses that count toward the one-active-charge-per-type rule."""
        return (cls.PENDING, cls.PAID)


class ChargeType(enum.StrEnum):
    WORKER_PAYOUT = "worker_payout"
    PLATFORM_FEE = "platform_fee"


class PartyRole(enum.StrEnum):
    PRODUCER = "producer"
    WORKER = "worker"


class ProposalStatus(enum.StrEnum):
    PROPOSED = "proposed"
    ACCEPTED = "accepted"


class CheckEventKind(enum.StrEnum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


class EventType(enum.StrEnum):
    """Types of audit events recorded in the engagement_events table.

    Every state transition MUST produce exactly one event.
    This is the append-only trail used when a dispute is handled out of band.
    """

    # Engagement lifecycle
    ENGAGEMENT_CREATED = "ENGAGEMENT_CREATED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    ENGAGEMENT_COMPLETED = "ENGAGEMENT_COMPLETED"

    # Negotiation
    TERMS_PROPOSED = "TERMS_PROPOSED"
    TERMS_ACCEPTED = "TERMS_ACCEPTED"

    # Contract
    CONTRACT_DRAFTED = "CONTRACT_DRAFTED"
    CONTRACT_SIGNED = "CONTRACT_SIGNED"
    CONTRACT_EXECUTED = "CONTRACT_EXECUTED"
    CONTRACT_SUPERSEDED = "CONTRACT_SUPERSEDED"

    # Settlement
    CHARGE_ISSUED = "CHARGE_ISSUED"
    CHARGE_PAID = "CHARGE_PAID"
    CHARGE_EXPIRED = "CHARGE_EXPIRED"
    CHARGE_CANCELLED = "CHARGE_CANCELLED"

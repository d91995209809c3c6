"""SQLAlchemy 2.0 ORM models for the settlement service.

Six tables:
    1. engagements           - One work order per accepted bid.
    2. negotiation_proposals - Append-only payment terms ledger.
    3. contracts             - Generated contract text + signature timestamps.
    4. check_events          - Geo-stamped check-in/check-out evidence.
    5. payment_charges       - Split-payment charges and their lifecycle.
    6. engagement_events     - Append-only audit log of every transition.

Design decisions:
    - UUIDs as primary keys; user/job ids are external strings.
    - Integer minor units (BigInteger) for every amount. No floats, no Decimal.
    - `version` column on every mutable row, wired as SQLAlchemy's
      version_id_col: an UPDATE against a stale version raises StaleDataError.
    - Partial unique index keeps one active (pending/paid) charge per
      (engagement, charge_type) at the database level.
    - Timestamps are always timezone-aware UTC, also on SQLite.
    - proposals, check_events and engagement_events are append-only.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSONVariant = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """DateTime that always round-trips as an aware UTC datetime.

    SQLite drops tzinfo on the way out; PostgreSQL keeps it. Normalizing here
    lets services compare stored timestamps against ``datetime.now(UTC)``.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001, ANN201
        if value is None:
            return value
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):  # noqa: ANN001, ANN201
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# 1. engagements
# ---------------------------------------------------------------------------
class Engagement(Base):
    """A work order tying an accepted bid to a producer and a worker."""

    __tablename__ = "engagements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # --- Participants ---
    job_id: Mapped[str] = mapped_column(String(64), nullable=False)
    producer_id: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="User who requested the work and pays"
    )
    worker_id: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="User who performs the work and is paid"
    )

    # --- Financials ---
    final_price_minor_units: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Final price in centavos (bid price until terms are accepted)",
    )
    payment_terms: Mapped[dict | None] = mapped_column(
        JSONVariant,
        nullable=True,
        default=None,
        comment="Terms of the most recently accepted proposal",
    )
    accepted_proposal_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    current_contract_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        nullable=True,
        comment="Contract currently collecting signatures or executed",
    )

    # --- Status ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="assigned",
        comment="Lifecycle state (guarded by EngagementStateMachine)",
    )
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # --- Timestamps / concurrency ---
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # --- Relationships ---
    check_events: Mapped[list[CheckEvent]] = relationship(
        "CheckEvent",
        back_populates="engagement",
        order_by="CheckEvent.occurred_at.asc()",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('assigned', 'checked_in', 'checked_out', 'completed')",
            name="ck_engagement_valid_status",
        ),
        CheckConstraint("final_price_minor_units >= 0", name="ck_engagement_price_non_negative"),
        CheckConstraint("producer_id <> worker_id", name="ck_engagement_distinct_parties"),
        Index("idx_engagement_status", "status"),
        Index("idx_engagement_producer", "producer_id"),
        Index("idx_engagement_worker", "worker_id"),
    )

    def check_event(self, kind: str) -> CheckEvent | None:
        for evt in self.check_events:
            if evt.kind == kind:
                return evt
        return None

    def __repr__(self) -> str:
        return (
            f"<Engagement id={self.id} status={self.status} "
            f"price={self.final_price_minor_units}>"
        )


# ---------------------------------------------------------------------------
# 2. negotiation_proposals (append-only)
# ---------------------------------------------------------------------------
class NegotiationProposal(Base):
    """One proposed set of payment terms. Only `status` ever changes, once."""

    __tablename__ = "negotiation_proposals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    engagement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("engagements.id", ondelete="CASCADE"), nullable=False
    )
    proposer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    proposer_role: Mapped[str] = mapped_column(String(20), nullable=False)
    terms: Mapped[dict] = mapped_column(
        JSONVariant,
        nullable=False,
        comment='Tagged terms, e.g. {"kind": "advance_custom", "advance_percent": "30"}',
    )
    total_price_minor_units: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
        comment="Stated total; ignored by rate-based kinds, which derive their own",
    )
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="proposed")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('proposed', 'accepted')", name="ck_proposal_valid_status"),
        CheckConstraint(
            "proposer_role IN ('producer', 'worker')", name="ck_proposal_valid_role"
        ),
        Index("idx_proposal_engagement", "engagement_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<NegotiationProposal id={self.id} status={self.status}>"


# ---------------------------------------------------------------------------
# 3. contracts
# ---------------------------------------------------------------------------
class Contract(Base):
    """Generated contract text plus one signature timestamp per party."""

    __tablename__ = "contracts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    engagement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("engagements.id", ondelete="CASCADE"), nullable=False
    )

    # --- Snapshot (written once) ---
    text: Mapped[str] = mapped_column(Text, nullable=False)
    total_value_minor_units: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_terms: Mapped[dict] = mapped_column(JSONVariant, nullable=False)
    producer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    worker_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # --- Signatures ---
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="drafted")
    producer_signed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    worker_signed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    superseded_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="Set when renegotiated terms replaced this contract before execution",
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('drafted', 'partially_signed', 'fully_executed')",
            name="ck_contract_valid_status",
        ),
        CheckConstraint(
            "status <> 'fully_executed' "
            "OR (producer_signed_at IS NOT NULL AND worker_signed_at IS NOT NULL)",
            name="ck_contract_executed_needs_both_signatures",
        ),
        Index("idx_contract_engagement", "engagement_id"),
    )

    @property
    def payment_terms_kind(self) -> str:
        return self.payment_terms["kind"]

    def signed_at(self, role: str) -> datetime | None:
        return self.producer_signed_at if role == "producer" else self.worker_signed_at

    def __repr__(self) -> str:
        return f"<Contract id={self.id} status={self.status}>"


# ---------------------------------------------------------------------------
# 4. check_events (append-only)
# ---------------------------------------------------------------------------
class CheckEvent(Base):
    """A geo-stamped check-in or check-out. Written once, never updated."""

    __tablename__ = "check_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    engagement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("engagements.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, comment="Fix time reported by the client"
    )
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    evidence_photos: Mapped[list] = mapped_column(
        JSONVariant,
        nullable=False,
        default=list,
        comment="References (URLs/keys) into external photo storage",
    )
    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    engagement: Mapped[Engagement] = relationship("Engagement", back_populates="check_events")

    __table_args__ = (
        UniqueConstraint("engagement_id", "kind", name="uq_check_event_per_kind"),
        CheckConstraint("kind IN ('check_in', 'check_out')", name="ck_check_event_kind"),
    )


# ---------------------------------------------------------------------------
# 5. payment_charges
# ---------------------------------------------------------------------------
_ACTIVE_CHARGE = text("status IN ('pending', 'paid')")


class PaymentCharge(Base):
    """One requested payment: worker payout or platform fee."""

    __tablename__ = "payment_charges"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    engagement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("engagements.id", ondelete="CASCADE"), nullable=False
    )
    charge_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # --- Parties ---
    payer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    receiver_id: Mapped[str] = mapped_column(String(64), nullable=False)
    receiver_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    receiver_pix_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # --- Amount ---
    value_minor_units: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    correlation_id: Mapped[str] = mapped_column(
        String(80), nullable=False, unique=True, comment="Idempotency key on the payment rail"
    )

    # --- Lifecycle ---
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'paid', 'expired', 'cancelled')",
            name="ck_charge_valid_status",
        ),
        CheckConstraint(
            "charge_type IN ('worker_payout', 'platform_fee')", name="ck_charge_valid_type"
        ),
        CheckConstraint("value_minor_units > 0", name="ck_charge_positive_value"),
        CheckConstraint("status <> 'paid' OR paid_at IS NOT NULL", name="ck_charge_paid_at"),
        Index(
            "uq_charge_active_per_type",
            "engagement_id",
            "charge_type",
            unique=True,
            postgresql_where=_ACTIVE_CHARGE,
            sqlite_where=_ACTIVE_CHARGE,
        ),
        Index("idx_charge_status_expires", "status", "expires_at"),
        Index("idx_charge_payer", "payer_id"),
        Index("idx_charge_receiver", "receiver_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentCharge id={self.id} type={self.charge_type} "
            f"value={self.value_minor_units} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# 6. engagement_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class EngagementEvent(Base):
    """Immutable audit record of every transition touching an engagement.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level. `subject` tells which entity moved
    (engagement, contract, charge or proposal).
    """

    __tablename__ = "engagement_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    engagement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("engagements.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    subject: Mapped[str] = mapped_column(String(20), nullable=False, default="engagement")
    subject_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    actor: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="SYSTEM",
        comment="Who triggered this event (user id or SYSTEM)",
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata", JSONVariant, nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_event_engagement", "engagement_id", "created_at"),
        Index("idx_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<EngagementEvent id={self.id} type={self.event_type} "
            f"{self.old_status}->{self.new_status}>"
        )

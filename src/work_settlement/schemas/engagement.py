"""Pydantic schemas for the settlement API.

These schemas define the request/response shapes for the REST API. They are
separate from the ORM models to maintain clean boundaries between the API
and database layers. Amounts are always integer minor units (centavos).
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from work_settlement.domain.collaborators import GeoPoint
from work_settlement.domain.enums import ChargeType, CheckEventKind, PartyRole
from work_settlement.domain.money import MAX_MINOR_UNITS
from work_settlement.domain.payment_terms import PaymentTerms, parse_terms, resolve_terms
from work_settlement.infrastructure.database.orm_models import (
    Engagement,
    NegotiationProposal,
)

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateEngagementRequest(BaseModel):
    """Request body for turning an accepted bid into an engagement."""

    job_id: str = Field(..., min_length=1, max_length=64)
    producer_id: str = Field(..., min_length=1, max_length=64, description="User who pays")
    worker_id: str = Field(..., min_length=1, max_length=64, description="User who works")
    final_price_minor_units: int = Field(
        ...,
        ge=0,
        le=MAX_MINOR_UNITS,
        description="Accepted bid price in centavos",
        examples=[10000],
    )


class ProposeTermsRequest(BaseModel):
    """Request body for appending a proposal to the negotiation ledger."""

    proposer_id: str = Field(..., min_length=1, max_length=64)
    role: PartyRole
    terms: PaymentTerms = Field(
        ...,
        description='Tagged terms, e.g. {"kind": "advance_custom", "advance_percent": 30}',
    )
    total_price_minor_units: int | None = Field(
        default=None,
        ge=0,
        le=MAX_MINOR_UNITS,
        description="Stated total; required for fixed-price kinds, ignored by rate-based kinds",
    )
    message: str | None = Field(default=None, max_length=2000)


class AcceptProposalRequest(BaseModel):
    accepted_by: str | None = Field(
        default=None,
        description="Counterpart of the proposer; checked when given",
    )


class SignContractRequest(BaseModel):
    """Request body for one party's signature."""

    role: PartyRole
    signer_id: str | None = Field(default=None, description="Must be the party holding `role`")


class LocationIn(BaseModel):
    """A location fix captured by the client."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    time: datetime | None = Field(default=None, description="Defaults to the server time")

    def to_domain(self) -> GeoPoint:
        return GeoPoint(
            latitude=self.latitude,
            longitude=self.longitude,
            time=self.time or datetime.now(UTC),
        )


class CheckInRequest(BaseModel):
    location: LocationIn
    actor_id: str | None = None


class CheckOutRequest(BaseModel):
    location: LocationIn
    evidence_photos: list[str] = Field(
        default_factory=list,
        max_length=20,
        description="References (URLs/keys) into external photo storage",
    )
    actor_id: str | None = None


class CompleteEngagementRequest(BaseModel):
    confirmed_by: str = Field(..., description="The producer confirming the work is done")


class ReissueChargeRequest(BaseModel):
    charge_type: ChargeType


class MarkPaidRequest(BaseModel):
    """Payment confirmation (usually forwarded from the rail's webhook)."""

    paid_at: datetime | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class CheckEventResponse(BaseModel):
    """A recorded check-in or check-out."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    time: datetime = Field(validation_alias="occurred_at")
    latitude: float
    longitude: float
    evidence_photos: list[str] = Field(default_factory=list)


class EngagementResponse(BaseModel):
    """Response schema for an engagement."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: str
    producer_id: str
    worker_id: str
    final_price_minor_units: int
    status: str
    payment_terms: dict | None
    accepted_proposal_id: uuid.UUID | None
    current_contract_id: uuid.UUID | None
    check_in: CheckEventResponse | None = None
    check_out: CheckEventResponse | None = None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime
    version: int

    @classmethod
    def from_engagement(cls, engagement: Engagement) -> EngagementResponse:
        response = cls.model_validate(engagement)
        check_in = engagement.check_event(CheckEventKind.CHECK_IN)
        check_out = engagement.check_event(CheckEventKind.CHECK_OUT)
        return response.model_copy(
            update={
                "check_in": CheckEventResponse.model_validate(check_in) if check_in else None,
                "check_out": CheckEventResponse.model_validate(check_out) if check_out else None,
            }
        )


class EngagementStatusResponse(BaseModel):
    """Lightweight status check response."""

    engagement_id: uuid.UUID
    status: str
    contract_status: str | None
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )


class TermsResolutionResponse(BaseModel):
    advance: int
    remainder: int
    total: int


class ProposalResponse(BaseModel):
    """A ledger entry, with its total re-derived on read."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    engagement_id: uuid.UUID
    proposer_id: str
    proposer_role: str
    terms: dict
    total_price_minor_units: int | None
    message: str | None
    status: str
    created_at: datetime
    accepted_at: datetime | None
    resolution: TermsResolutionResponse | None = None

    @classmethod
    def from_proposal(cls, proposal: NegotiationProposal) -> ProposalResponse:
        response = cls.model_validate(proposal)
        resolution = resolve_terms(parse_terms(proposal.terms), proposal.total_price_minor_units)
        return response.model_copy(
            update={"resolution": TermsResolutionResponse(**resolution.to_dict())}
        )


class CurrentTermsResponse(BaseModel):
    engagement_id: uuid.UUID
    proposal_id: uuid.UUID | None = Field(
        description="Accepted proposal; null while running on the default terms"
    )
    terms: dict
    resolution: TermsResolutionResponse


class ContractResponse(BaseModel):
    """Response schema for a contract."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    engagement_id: uuid.UUID
    text: str
    total_value_minor_units: int
    payment_terms_kind: str
    payment_terms: dict
    producer_name: str
    worker_name: str
    status: str
    producer_signed_at: datetime | None
    worker_signed_at: datetime | None
    superseded_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ChargeResponse(BaseModel):
    """Response schema for a payment charge."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    engagement_id: uuid.UUID
    charge_type: str
    payer_id: str
    receiver_id: str
    receiver_name: str | None
    value_minor_units: int
    description: str
    correlation_id: str
    status: str
    created_at: datetime
    paid_at: datetime | None
    expires_at: datetime


class BreakdownResponse(BaseModel):
    total: int
    worker_payout: int
    platform_fee: int
    advance_paid: int
    remaining_to_pay: int


class PaymentCodeResponse(BaseModel):
    correlation_id: str
    payload: str = Field(description="PIX copy-and-paste code")
    value_minor_units: int
    expires_at: datetime | None


class PaymentSummaryResponse(BaseModel):
    user_id: str
    total_received: int
    total_paid: int
    pending_payments: int
    completed_payments: int


class EngagementEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    engagement_id: uuid.UUID
    event_type: str
    subject: str
    subject_id: uuid.UUID | None
    old_status: str | None
    new_status: str | None
    actor: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class SweepResponse(BaseModel):
    expired: int
    charge_ids: list[str]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"

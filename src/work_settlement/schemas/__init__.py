"""Pydantic API schemas."""

from work_settlement.schemas.engagement import (
    AcceptProposalRequest,
    BreakdownResponse,
    ChargeResponse,
    CheckInRequest,
    CheckOutRequest,
    CompleteEngagementRequest,
    ContractResponse,
    CreateEngagementRequest,
    CurrentTermsResponse,
    EngagementEventResponse,
    EngagementResponse,
    EngagementStatusResponse,
    HealthResponse,
    MarkPaidRequest,
    PaymentCodeResponse,
    PaymentSummaryResponse,
    ProposalResponse,
    ProposeTermsRequest,
    ReissueChargeRequest,
    SignContractRequest,
    SweepResponse,
)

__all__ = [
    "AcceptProposalRequest",
    "BreakdownResponse",
    "ChargeResponse",
    "CheckInRequest",
    "CheckOutRequest",
    "CompleteEngagementRequest",
    "ContractResponse",
    "CreateEngagementRequest",
    "CurrentTermsResponse",
    "EngagementEventResponse",
    "EngagementResponse",
    "EngagementStatusResponse",
    "HealthResponse",
    "MarkPaidRequest",
    "PaymentCodeResponse",
    "PaymentSummaryResponse",
    "ProposalResponse",
    "ProposeTermsRequest",
    "ReissueChargeRequest",
    "SignContractRequest",
    "SweepResponse",
]

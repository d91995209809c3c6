"""Engagement REST API routes: lifecycle, negotiation and contract.

Routes:
    POST   /api/v1/engagements                          - Create from an accepted bid
    GET    /api/v1/engagements/{id}                     - Get engagement details
    GET    /api/v1/engagements/{id}/status              - Status + allowed events
    GET    /api/v1/engagements/{id}/events              - Audit trail
    POST   /api/v1/engagements/{id}/proposals           - Propose payment terms
    GET    /api/v1/engagements/{id}/proposals           - Negotiation ledger
    POST   /api/v1/proposals/{proposal_id}/accept       - Accept a proposal
    GET    /api/v1/engagements/{id}/terms               - Current terms + resolution
    POST   /api/v1/engagements/{id}/contract            - Generate (or get) the contract
    GET    /api/v1/engagements/{id}/contract            - Current contract
    GET    /api/v1/engagements/{id}/contracts           - Every contract, superseded included
    POST   /api/v1/engagements/{id}/contract/sign       - One party signs
    POST   /api/v1/engagements/{id}/check-in            - Worker arrives on site
    POST   /api/v1/engagements/{id}/check-out           - Worker leaves, with evidence
    POST   /api/v1/engagements/{id}/complete            - Producer confirms completion
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from work_settlement.api.deps import (
    get_contract_service,
    get_engagement_service,
    get_negotiation_service,
)
from work_settlement.logging_config import get_logger
from work_settlement.schemas.engagement import (
    AcceptProposalRequest,
    CheckInRequest,
    CheckOutRequest,
    CompleteEngagementRequest,
    ContractResponse,
    CreateEngagementRequest,
    CurrentTermsResponse,
    EngagementEventResponse,
    EngagementResponse,
    EngagementStatusResponse,
    ProposalResponse,
    ProposeTermsRequest,
    SignContractRequest,
)
from work_settlement.services.contract_service import ContractService
from work_settlement.services.engagement_service import EngagementService
from work_settlement.services.negotiation_service import NegotiationService

router = APIRouter(prefix="/api/v1", tags=["Engagements"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Create / Read
# ---------------------------------------------------------------------------


@router.post(
    "/engagements",
    response_model=EngagementResponse,
    status_code=201,
    summary="Create an engagement from an accepted bid",
)
async def create_engagement(
    request: CreateEngagementRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementResponse:
    engagement = await svc.create_engagement(
        job_id=request.job_id,
        producer_id=request.producer_id,
        worker_id=request.worker_id,
        final_price_minor_units=request.final_price_minor_units,
    )
    return EngagementResponse.from_engagement(engagement)


@router.get(
    "/engagements/{engagement_id}",
    response_model=EngagementResponse,
    summary="Get engagement details",
)
async def get_engagement(
    engagement_id: uuid.UUID,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementResponse:
    engagement = await svc.get_engagement(engagement_id)
    return EngagementResponse.from_engagement(engagement)


@router.get(
    "/engagements/{engagement_id}/status",
    response_model=EngagementStatusResponse,
    summary="Lightweight status check",
)
async def get_engagement_status(
    engagement_id: uuid.UUID,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementStatusResponse:
    """Current status, contract progress and the events that may fire next."""
    return EngagementStatusResponse(**await svc.get_status(engagement_id))


@router.get(
    "/engagements/{engagement_id}/events",
    response_model=list[EngagementEventResponse],
    summary="Get audit trail",
)
async def get_engagement_events(
    engagement_id: uuid.UUID,
    svc: EngagementService = Depends(get_engagement_service),
) -> list[EngagementEventResponse]:
    events = await svc.get_events(engagement_id)
    return [EngagementEventResponse.model_validate(e) for e in events]


# ---------------------------------------------------------------------------
# Negotiation
# ---------------------------------------------------------------------------


@router.post(
    "/engagements/{engagement_id}/proposals",
    response_model=ProposalResponse,
    status_code=201,
    summary="Propose payment terms",
)
async def propose_terms(
    engagement_id: uuid.UUID,
    request: ProposeTermsRequest,
    svc: NegotiationService = Depends(get_negotiation_service),
) -> ProposalResponse:
    proposal = await svc.propose(
        engagement_id=engagement_id,
        proposer_id=request.proposer_id,
        role=request.role,
        terms=request.terms,
        total_price=request.total_price_minor_units,
        message=request.message,
    )
    return ProposalResponse.from_proposal(proposal)


@router.get(
    "/engagements/{engagement_id}/proposals",
    response_model=list[ProposalResponse],
    summary="Negotiation ledger",
)
async def list_proposals(
    engagement_id: uuid.UUID,
    svc: NegotiationService = Depends(get_negotiation_service),
) -> list[ProposalResponse]:
    history = await svc.get_history(engagement_id)
    return [ProposalResponse.from_proposal(p) for p in history]


@router.post(
    "/proposals/{proposal_id}/accept",
    response_model=ProposalResponse,
    summary="Accept a proposal",
)
async def accept_proposal(
    proposal_id: uuid.UUID,
    request: AcceptProposalRequest,
    svc: NegotiationService = Depends(get_negotiation_service),
) -> ProposalResponse:
    """Accepting twice is harmless; the second call returns the accepted entry."""
    proposal = await svc.accept(proposal_id, accepted_by=request.accepted_by)
    return ProposalResponse.from_proposal(proposal)


@router.get(
    "/engagements/{engagement_id}/terms",
    response_model=CurrentTermsResponse,
    summary="Current payment terms",
)
async def get_current_terms(
    engagement_id: uuid.UUID,
    svc: NegotiationService = Depends(get_negotiation_service),
) -> CurrentTermsResponse:
    return CurrentTermsResponse(**await svc.get_current_terms(engagement_id))


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


@router.post(
    "/engagements/{engagement_id}/contract",
    response_model=ContractResponse,
    summary="Generate the contract",
)
async def generate_contract(
    engagement_id: uuid.UUID,
    svc: ContractService = Depends(get_contract_service),
) -> ContractResponse:
    """Draft the contract from the current terms, or return the one already drafted."""
    contract = await svc.generate(engagement_id)
    return ContractResponse.model_validate(contract)


@router.get(
    "/engagements/{engagement_id}/contract",
    response_model=ContractResponse,
    summary="Get the current contract",
)
async def get_contract(
    engagement_id: uuid.UUID,
    svc: ContractService = Depends(get_contract_service),
) -> ContractResponse:
    contract = await svc.get_contract(engagement_id)
    return ContractResponse.model_validate(contract)


@router.get(
    "/engagements/{engagement_id}/contracts",
    response_model=list[ContractResponse],
    summary="Contract history",
)
async def list_contracts(
    engagement_id: uuid.UUID,
    svc: ContractService = Depends(get_contract_service),
) -> list[ContractResponse]:
    contracts = await svc.list_contracts(engagement_id)
    return [ContractResponse.model_validate(c) for c in contracts]


@router.post(
    "/engagements/{engagement_id}/contract/sign",
    response_model=ContractResponse,
    summary="Sign the contract",
)
async def sign_contract(
    engagement_id: uuid.UUID,
    request: SignContractRequest,
    svc: ContractService = Depends(get_contract_service),
) -> ContractResponse:
    """Record one party's signature. Re-signing the same role is a no-op."""
    contract = await svc.sign(engagement_id, request.role, signer_id=request.signer_id)
    return ContractResponse.model_validate(contract)


# ---------------------------------------------------------------------------
# On-site lifecycle
# ---------------------------------------------------------------------------


@router.post(
    "/engagements/{engagement_id}/check-in",
    response_model=EngagementResponse,
    summary="Worker checks in",
)
async def check_in(
    engagement_id: uuid.UUID,
    request: CheckInRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementResponse:
    """Requires a fully executed contract. Transitions ASSIGNED -> CHECKED_IN."""
    engagement = await svc.check_in(
        engagement_id, request.location.to_domain(), actor_id=request.actor_id
    )
    return EngagementResponse.from_engagement(engagement)


@router.post(
    "/engagements/{engagement_id}/check-out",
    response_model=EngagementResponse,
    summary="Worker checks out",
)
async def check_out(
    engagement_id: uuid.UUID,
    request: CheckOutRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementResponse:
    """Transitions CHECKED_IN -> CHECKED_OUT."""
    engagement = await svc.check_out(
        engagement_id,
        request.location.to_domain(),
        evidence_photos=request.evidence_photos,
        actor_id=request.actor_id,
    )
    return EngagementResponse.from_engagement(engagement)


@router.post(
    "/engagements/{engagement_id}/complete",
    response_model=EngagementResponse,
    summary="Producer confirms completion",
)
async def complete_engagement(
    engagement_id: uuid.UUID,
    request: CompleteEngagementRequest,
    svc: EngagementService = Depends(get_engagement_service),
) -> EngagementResponse:
    engagement = await svc.mark_completed(engagement_id, confirmed_by=request.confirmed_by)
    logger.info("api.engagement_completed_manually", engagement_id=str(engagement_id))
    return EngagementResponse.from_engagement(engagement)

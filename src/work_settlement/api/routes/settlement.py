"""Settlement REST API routes: charges, breakdown and payment summary.

Routes:
    POST   /api/v1/engagements/{id}/charges          - Issue payout + fee charges
    GET    /api/v1/engagements/{id}/charges          - List charges
    POST   /api/v1/engagements/{id}/charges/reissue  - Replace an expired/cancelled charge
    GET    /api/v1/engagements/{id}/breakdown        - Money breakdown
    GET    /api/v1/charges/{charge_id}               - Get a charge
    GET    /api/v1/charges/{charge_id}/code          - PIX copy-and-paste code
    POST   /api/v1/charges/{charge_id}/pay           - Confirm payment
    POST   /api/v1/charges/{charge_id}/cancel        - Cancel a pending charge
    POST   /api/v1/charges/{charge_id}/reconcile     - Pull status from the rail
    POST   /api/v1/charges/expire-stale              - Run the expiry sweep now
    GET    /api/v1/users/{user_id}/payment-summary   - Wallet totals for a user
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Body, Depends, Query

from work_settlement.api.deps import get_settlement_service
from work_settlement.domain.money import MAX_MINOR_UNITS
from work_settlement.logging_config import get_logger
from work_settlement.schemas.engagement import (
    BreakdownResponse,
    ChargeResponse,
    MarkPaidRequest,
    PaymentCodeResponse,
    PaymentSummaryResponse,
    ReissueChargeRequest,
    SweepResponse,
)
from work_settlement.services.settlement_service import SettlementService

router = APIRouter(prefix="/api/v1", tags=["Settlement"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Per engagement
# ---------------------------------------------------------------------------


@router.post(
    "/engagements/{engagement_id}/charges",
    response_model=list[ChargeResponse],
    status_code=201,
    summary="Issue settlement charges",
)
async def issue_charges(
    engagement_id: uuid.UUID,
    svc: SettlementService = Depends(get_settlement_service),
) -> list[ChargeResponse]:
    """Requires a fully executed contract and a checked-out engagement.

    Retrying while both charges are active returns the existing charges.
    """
    charges = await svc.issue_charges(engagement_id)
    return [ChargeResponse.model_validate(c) for c in charges]


@router.get(
    "/engagements/{engagement_id}/charges",
    response_model=list[ChargeResponse],
    summary="List charges",
)
async def list_charges(
    engagement_id: uuid.UUID,
    svc: SettlementService = Depends(get_settlement_service),
) -> list[ChargeResponse]:
    charges = await svc.list_charges(engagement_id)
    return [ChargeResponse.model_validate(c) for c in charges]


@router.post(
    "/engagements/{engagement_id}/charges/reissue",
    response_model=ChargeResponse,
    status_code=201,
    summary="Reissue an expired or cancelled charge",
)
async def reissue_charge(
    engagement_id: uuid.UUID,
    request: ReissueChargeRequest,
    svc: SettlementService = Depends(get_settlement_service),
) -> ChargeResponse:
    charge = await svc.reissue(engagement_id, request.charge_type)
    return ChargeResponse.model_validate(charge)


@router.get(
    "/engagements/{engagement_id}/breakdown",
    response_model=BreakdownResponse,
    summary="Money breakdown",
)
async def get_breakdown(
    engagement_id: uuid.UUID,
    advance_paid: int = Query(
        default=0, ge=0, le=MAX_MINOR_UNITS, description="Minor units already paid up front"
    ),
    svc: SettlementService = Depends(get_settlement_service),
) -> BreakdownResponse:
    breakdown = await svc.get_breakdown(engagement_id, advance_paid=advance_paid)
    return BreakdownResponse(**breakdown.to_dict())


# ---------------------------------------------------------------------------
# Per charge
# ---------------------------------------------------------------------------


@router.post(
    "/charges/expire-stale",
    response_model=SweepResponse,
    summary="Run the expiry sweep now",
)
async def expire_stale_charges(
    svc: SettlementService = Depends(get_settlement_service),
) -> SweepResponse:
    expired = await svc.expire_stale_charges()
    return SweepResponse(expired=len(expired), charge_ids=[str(c.id) for c in expired])


@router.get(
    "/charges/{charge_id}",
    response_model=ChargeResponse,
    summary="Get a charge",
)
async def get_charge(
    charge_id: uuid.UUID,
    svc: SettlementService = Depends(get_settlement_service),
) -> ChargeResponse:
    charge = await svc.get_charge(charge_id)
    return ChargeResponse.model_validate(charge)


@router.get(
    "/charges/{charge_id}/code",
    response_model=PaymentCodeResponse,
    summary="Get the PIX payment code",
)
async def get_payment_code(
    charge_id: uuid.UUID,
    svc: SettlementService = Depends(get_settlement_service),
) -> PaymentCodeResponse:
    code = await svc.render_payment_code(charge_id)
    return PaymentCodeResponse(**code.to_dict())


@router.post(
    "/charges/{charge_id}/pay",
    response_model=ChargeResponse,
    summary="Confirm payment",
)
async def mark_charge_paid(
    charge_id: uuid.UUID,
    request: MarkPaidRequest | None = Body(default=None),
    svc: SettlementService = Depends(get_settlement_service),
) -> ChargeResponse:
    """Transitions PENDING -> PAID. Fails with 409 once the charge is terminal."""
    paid_at = request.paid_at if request is not None else None
    charge = await svc.mark_paid(charge_id, paid_at=paid_at)
    return ChargeResponse.model_validate(charge)


@router.post(
    "/charges/{charge_id}/cancel",
    response_model=ChargeResponse,
    summary="Cancel a pending charge",
)
async def cancel_charge(
    charge_id: uuid.UUID,
    svc: SettlementService = Depends(get_settlement_service),
) -> ChargeResponse:
    charge = await svc.cancel_charge(charge_id)
    return ChargeResponse.model_validate(charge)


@router.post(
    "/charges/{charge_id}/reconcile",
    response_model=ChargeResponse,
    summary="Reconcile with the payment rail",
)
async def reconcile_charge(
    charge_id: uuid.UUID,
    svc: SettlementService = Depends(get_settlement_service),
) -> ChargeResponse:
    charge = await svc.reconcile_charge(charge_id)
    return ChargeResponse.model_validate(charge)


# ---------------------------------------------------------------------------
# Per user
# ---------------------------------------------------------------------------


@router.get(
    "/users/{user_id}/payment-summary",
    response_model=PaymentSummaryResponse,
    summary="Payment summary for a user",
)
async def payment_summary(
    user_id: str,
    svc: SettlementService = Depends(get_settlement_service),
) -> PaymentSummaryResponse:
    summary = await svc.payment_summary(user_id)
    return PaymentSummaryResponse(user_id=user_id, **summary)

# routes/creator.py
from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends

from app.errors import SettlementError
from app.payouts.service import latest_payout_request, open_payout_request
from app.payouts.threshold import get_payout_threshold_cents
from app.referrals import model as rm
from app.referrals.partners import get_partner, partner_insights
from deps.creator import CurrentCreator, require_creator
from deps.store import get_store
from schemas import CreatorDashboard, CreatorInsights, OpenPayoutRequest, PayoutRequestItem
from services.errors import raise_http_from_domain_error


router = APIRouter(prefix="/v1/creator", tags=["creator"])


@router.get("/me", response_model=CreatorDashboard)
def dashboard(creator: CurrentCreator = Depends(require_creator), store=Depends(get_store)):
    try:
        partner = get_partner(store, creator.partner_id)
    except SettlementError as exc:
        raise_http_from_domain_error(exc)

    threshold = get_payout_threshold_cents(store)
    open_req = store.find_open_payout_request(partner.id)
    can_request = (
        partner.status == rm.PARTNER_ACTIVE
        and partner.pending_commission_cents >= threshold
        and partner.pending_commission_cents > 0
        and open_req is None
    )
    return CreatorDashboard(
        partner_id=partner.id,
        creator_name=partner.creator_name,
        referral_code=partner.referral_code,
        status=partner.status,
        discount_percent=partner.discount_percent,
        commission_percent=partner.commission_percent,
        total_uses=partner.total_uses,
        max_uses=partner.max_uses,
        total_revenue_cents=partner.total_revenue_cents,
        total_commission_cents=partner.total_commission_cents,
        pending_commission_cents=partner.pending_commission_cents,
        total_paid_out_cents=partner.total_paid_out_cents,
        payout_threshold_cents=threshold,
        can_request_payout=can_request,
        open_request_id=open_req.id if open_req else None,
    )


@router.get("/me/insights", response_model=CreatorInsights)
def insights(creator: CurrentCreator = Depends(require_creator), store=Depends(get_store)):
    try:
        return partner_insights(store, creator.partner_id)
    except SettlementError as exc:
        raise_http_from_domain_error(exc)


@router.post("/me/payout-request", response_model=PayoutRequestItem, status_code=201)
def request_payout(
    body: OpenPayoutRequest,
    creator: CurrentCreator = Depends(require_creator),
    store=Depends(get_store),
):
    try:
        req = open_payout_request(
            store,
            creator.partner_id,
            real_name=body.real_name,
            details=body.details,
        )
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return PayoutRequestItem(**asdict(req))


@router.get("/me/payout-request", response_model=PayoutRequestItem | None)
def my_latest_request(creator: CurrentCreator = Depends(require_creator), store=Depends(get_store)):
    req = latest_payout_request(store, creator.partner_id)
    return PayoutRequestItem(**asdict(req)) if req else None

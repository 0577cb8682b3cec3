# routes/admin_partners.py
from __future__ import annotations

from dataclasses import asdict
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.errors import SettlementError
from app.ledger.adjustments import adjust_commission
from app.referrals.partners import create_partner, get_partner, update_partner
from deps.admin import require_admin
from deps.auth import CurrentPrincipal
from deps.store import get_store
from schemas import (
    AdjustCommissionBody,
    CommissionAdjustmentItem,
    CreatePartnerBody,
    PartnerItem,
    PartnerStatus,
    UpdatePartnerBody,
)
from services.errors import raise_http_from_domain_error


router = APIRouter(prefix="/v1/admin/partners", tags=["admin_partners"])


@router.get("")
def list_partners(
    status: Optional[list[PartnerStatus]] = Query(None),
    _admin: CurrentPrincipal = Depends(require_admin),
    store=Depends(get_store),
):
    partners = store.list_partners(statuses=status)
    return {"partners": [PartnerItem(**asdict(p)) for p in partners], "count": len(partners)}


@router.post("", response_model=PartnerItem, status_code=201)
def create(body: CreatePartnerBody, admin: CurrentPrincipal = Depends(require_admin), store=Depends(get_store)):
    try:
        partner = create_partner(
            store,
            creator_name=body.creator_name,
            actor=admin.subject,
            referral_code=body.referral_code,
            buyer_identifier=body.buyer_identifier,
            email=body.email,
            discount_percent=body.discount_percent,
            commission_percent=body.commission_percent,
            max_uses=body.max_uses,
            expires_at=body.expires_at,
        )
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return PartnerItem(**asdict(partner))


@router.get("/{partner_id}")
def detail(partner_id: UUID, _admin: CurrentPrincipal = Depends(require_admin), store=Depends(get_store)):
    try:
        partner = get_partner(store, partner_id)
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    adjustments = store.list_commission_adjustments(partner_id)
    return {
        "partner": PartnerItem(**asdict(partner)),
        "adjustments": [CommissionAdjustmentItem(**asdict(a)) for a in adjustments],
    }


@router.patch("/{partner_id}", response_model=PartnerItem)
def patch(
    partner_id: UUID,
    body: UpdatePartnerBody,
    admin: CurrentPrincipal = Depends(require_admin),
    store=Depends(get_store),
):
    try:
        partner = update_partner(store, partner_id, body.model_dump(exclude_unset=True), actor=admin.subject)
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return PartnerItem(**asdict(partner))


@router.post("/{partner_id}/adjust", response_model=CommissionAdjustmentItem)
def adjust(
    partner_id: UUID,
    body: AdjustCommissionBody,
    admin: CurrentPrincipal = Depends(require_admin),
    store=Depends(get_store),
):
    try:
        adj = adjust_commission(
            store,
            partner_id,
            delta_cents=body.amount_cents,
            note=body.note,
            actor=admin.subject,
        )
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return CommissionAdjustmentItem(**asdict(adj))

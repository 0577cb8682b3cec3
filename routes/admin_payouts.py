# routes/admin_payouts.py
from __future__ import annotations

from dataclasses import asdict
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.errors import SettlementError
from app.ledger.adjustments import eligible_partners, process_direct_payout
from app.payouts.service import (
    approve_payout_request,
    complete_payout_request,
    list_payout_requests,
    payout_history,
    reject_payout_request,
)
from app.payouts.threshold import get_payout_threshold_cents
from deps.admin import require_admin
from deps.auth import CurrentPrincipal
from deps.store import get_store
from schemas import (
    CompletePayoutBody,
    DirectPayoutBody,
    PartnerItem,
    PayoutRecordItem,
    PayoutRequestItem,
    PayoutRequestList,
    PayoutStatus,
    RejectPayoutBody,
)
from services.errors import raise_http_from_domain_error


router = APIRouter(prefix="/v1/admin/payouts", tags=["admin_payouts"])


@router.get("/requests", response_model=PayoutRequestList)
def list_requests(
    status: Optional[list[PayoutStatus]] = Query(None),
    limit: int = Query(300, ge=1, le=1000),
    _admin: CurrentPrincipal = Depends(require_admin),
    store=Depends(get_store),
):
    try:
        items = list_payout_requests(store, statuses=status, limit=limit)
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return PayoutRequestList(requests=[PayoutRequestItem(**asdict(r)) for r in items])


@router.post("/requests/{request_id}/approve", response_model=PayoutRequestItem)
def approve(request_id: UUID, admin: CurrentPrincipal = Depends(require_admin), store=Depends(get_store)):
    try:
        req = approve_payout_request(store, request_id, actor=admin.subject)
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return PayoutRequestItem(**asdict(req))


@router.post("/requests/{request_id}/reject", response_model=PayoutRequestItem)
def reject(
    request_id: UUID,
    body: RejectPayoutBody,
    admin: CurrentPrincipal = Depends(require_admin),
    store=Depends(get_store),
):
    try:
        req = reject_payout_request(store, request_id, reason=body.reason, actor=admin.subject)
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return PayoutRequestItem(**asdict(req))


@router.post("/requests/{request_id}/complete", response_model=PayoutRequestItem)
def complete(
    request_id: UUID,
    body: CompletePayoutBody,
    admin: CurrentPrincipal = Depends(require_admin),
    store=Depends(get_store),
):
    try:
        req = complete_payout_request(
            store,
            request_id,
            transaction_reference=body.transaction_reference,
            actor=admin.subject,
        )
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return PayoutRequestItem(**asdict(req))


@router.post("/process", response_model=PayoutRecordItem)
def direct_payout(body: DirectPayoutBody, admin: CurrentPrincipal = Depends(require_admin), store=Depends(get_store)):
    try:
        _partner, record = process_direct_payout(
            store,
            body.partner_id,
            amount_cents=body.amount_cents,
            actor=admin.subject,
            note=body.note,
            method=body.method,
            transaction_reference=body.transaction_reference,
        )
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return PayoutRecordItem(**asdict(record))


@router.get("/eligible")
def eligible(_admin: CurrentPrincipal = Depends(require_admin), store=Depends(get_store)):
    threshold = get_payout_threshold_cents(store)
    partners = eligible_partners(store, threshold_cents=threshold)
    return {
        "threshold_cents": threshold,
        "partners": [PartnerItem(**asdict(p)) for p in partners],
        "count": len(partners),
    }


@router.get("/history")
def history(
    partner_id: Optional[UUID] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    _admin: CurrentPrincipal = Depends(require_admin),
    store=Depends(get_store),
):
    records = payout_history(store, partner_id=partner_id, limit=limit)
    return {"records": [PayoutRecordItem(**asdict(r)) for r in records], "count": len(records)}

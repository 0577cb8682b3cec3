# routes/admin_applications.py
from __future__ import annotations

from dataclasses import asdict
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.errors import SettlementError
from app.referrals.applications import approve_application, list_applications, reject_application
from deps.admin import require_admin
from deps.auth import CurrentPrincipal
from deps.store import get_store
from schemas import (
    ApplicationApproval,
    ApplicationItem,
    ApplicationStatus,
    ApproveApplicationBody,
    PartnerItem,
    RejectApplicationBody,
)
from services.errors import raise_http_from_domain_error


router = APIRouter(prefix="/v1/admin/applications", tags=["admin_applications"])


@router.get("")
def list_all(
    status: Optional[ApplicationStatus] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    _admin: CurrentPrincipal = Depends(require_admin),
    store=Depends(get_store),
):
    try:
        items = list_applications(store, status=status, limit=limit)
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return {"applications": [ApplicationItem(**asdict(a)) for a in items], "count": len(items)}


@router.post("/{application_id}/approve", response_model=ApplicationApproval)
def approve(
    application_id: UUID,
    body: ApproveApplicationBody,
    admin: CurrentPrincipal = Depends(require_admin),
    store=Depends(get_store),
):
    try:
        application, partner = approve_application(
            store,
            application_id,
            actor=admin.subject,
            referral_code=body.referral_code,
            discount_percent=body.discount_percent,
            commission_percent=body.commission_percent,
            review_reason=body.review_reason,
        )
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return ApplicationApproval(
        application=ApplicationItem(**asdict(application)),
        partner=PartnerItem(**asdict(partner)),
    )


@router.post("/{application_id}/reject", response_model=ApplicationItem)
def reject(
    application_id: UUID,
    body: RejectApplicationBody,
    admin: CurrentPrincipal = Depends(require_admin),
    store=Depends(get_store),
):
    try:
        application = reject_application(
            store,
            application_id,
            actor=admin.subject,
            review_reason=body.review_reason,
        )
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return ApplicationItem(**asdict(application))

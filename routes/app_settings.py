# routes/app_settings.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from app.errors import SettlementError
from app.payouts.threshold import get_payout_threshold_cents, set_payout_threshold_cents
from deps.admin import require_admin
from deps.auth import CurrentPrincipal
from deps.store import get_store
from schemas import PublicSettings, UpdateSettingsBody
from services.errors import raise_http_from_domain_error
from settings import settings


router = APIRouter(tags=["settings"])


@router.get("/v1/settings/public", response_model=PublicSettings)
def public_settings(store=Depends(get_store)):
    return PublicSettings(
        global_payout_threshold_cents=get_payout_threshold_cents(store),
        currency=settings.CURRENCY,
    )


@router.get("/v1/admin/settings")
def admin_settings(_admin: CurrentPrincipal = Depends(require_admin), store=Depends(get_store)):
    current = store.get_settings()
    return {
        "global_payout_threshold_cents": current.global_payout_threshold_cents,
        "updated_at": current.updated_at,
        "currency": settings.CURRENCY,
    }


@router.patch("/v1/admin/settings")
def update_admin_settings(
    body: UpdateSettingsBody,
    admin: CurrentPrincipal = Depends(require_admin),
    store=Depends(get_store),
):
    try:
        updated = set_payout_threshold_cents(store, body.global_payout_threshold_cents, actor=admin.subject)
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return {
        "global_payout_threshold_cents": updated.global_payout_threshold_cents,
        "updated_at": updated.updated_at,
    }

# app/referrals/partners.py
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from app.errors import Conflict, NotFound, ValidationFailed
from app.referrals import model as rm
from app.referrals.codes import generate_referral_code, normalize_code
from app.referrals.model import ReferralPartner
from app.store.base import DuplicateRecord, percent
from services.audit_log import write_audit_log
from settings import settings


_UPDATABLE = {
    "status",
    "discount_percent",
    "commission_percent",
    "max_uses",
    "expires_at",
    "email",
    "buyer_identifier",
}


def _check_percent(name: str, value) -> Decimal:
    pct = percent(value)
    if pct < 0 or pct > 100:
        raise ValidationFailed(f"INVALID_{name.upper()}")
    return pct


def create_partner(
    store,
    *,
    creator_name: str,
    actor: str,
    referral_code: Optional[str] = None,
    buyer_identifier: str = "",
    email: str = "",
    discount_percent=Decimal("10"),
    commission_percent=Decimal("10"),
    max_uses: Optional[int] = None,
    expires_at: Optional[datetime] = None,
    application_id: Optional[UUID] = None,
) -> ReferralPartner:
    creator_name = (creator_name or "").strip()
    if not creator_name:
        raise ValidationFailed("CREATOR_NAME_REQUIRED")
    if max_uses is not None and int(max_uses) < 1:
        raise ValidationFailed("INVALID_MAX_USES")

    code = normalize_code(referral_code) or generate_referral_code(store, creator_name)
    now = datetime.now(timezone.utc)
    partner = ReferralPartner(
        id=uuid.uuid4(),
        creator_name=creator_name,
        referral_code=code,
        created_at=now,
        updated_at=now,
        buyer_identifier=(buyer_identifier or "").strip(),
        email=(email or "").strip(),
        discount_percent=_check_percent("discount_percent", discount_percent),
        commission_percent=_check_percent("commission_percent", commission_percent),
        payout_threshold_cents=int(settings.DEFAULT_PAYOUT_THRESHOLD_CENTS),
        max_uses=max_uses,
        expires_at=expires_at,
        application_id=application_id,
    )
    try:
        store.insert_partner(partner)
    except DuplicateRecord:
        raise Conflict("REFERRAL_CODE_TAKEN")

    write_audit_log(
        store,
        actor=actor,
        action="PARTNER_CREATED",
        target_id=str(partner.id),
        metadata={
            "referral_code": code,
            "creator_name": creator_name,
            "application_id": str(application_id) if application_id else None,
        },
    )
    return partner


def update_partner(store, partner_id: UUID, fields: dict[str, Any], *, actor: str) -> ReferralPartner:
    unknown = set(fields) - _UPDATABLE
    if unknown:
        raise ValidationFailed("FIELD_NOT_UPDATABLE")

    clean = dict(fields)
    if "status" in clean and clean["status"] not in rm.PARTNER_STATUSES:
        raise ValidationFailed("INVALID_STATUS")
    for key in ("discount_percent", "commission_percent"):
        if key in clean:
            clean[key] = _check_percent(key, clean[key])
    if clean.get("max_uses") is not None and int(clean["max_uses"]) < 1:
        raise ValidationFailed("INVALID_MAX_USES")

    updated = store.update_partner_profile(partner_id, clean)
    if updated is None:
        raise NotFound("PARTNER_NOT_FOUND")

    write_audit_log(
        store,
        actor=actor,
        action="PARTNER_UPDATED",
        target_id=str(partner_id),
        metadata={k: str(v) if v is not None else None for k, v in clean.items()},
    )
    return updated


def get_partner(store, partner_id: UUID) -> ReferralPartner:
    partner = store.get_partner(partner_id)
    if partner is None:
        raise NotFound("PARTNER_NOT_FOUND")
    return partner


INSIGHT_USES_WINDOW = timedelta(days=7)
INSIGHT_REVENUE_WINDOW = timedelta(days=30)


def partner_insights(store, partner_id: UUID, *, now: Optional[datetime] = None) -> dict[str, int]:
    """Recent performance from paid referral orders; no order-level data leaves here."""
    partner = get_partner(store, partner_id)
    at = now or datetime.now(timezone.utc)
    uses, _ = store.referral_order_totals(partner.id, since=at - INSIGHT_USES_WINDOW)
    _, revenue = store.referral_order_totals(partner.id, since=at - INSIGHT_REVENUE_WINDOW)
    return {"last_7_days_uses": uses, "last_30_days_revenue_cents": revenue}

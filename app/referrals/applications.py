# app/referrals/applications.py
"""
Referral-program applications.

A creator applies publicly; an admin approves (which creates the partner
through create_partner) or rejects. The status flip is a guarded update, so
two admins approving the same application create one partner.
"""
from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from app.errors import Conflict, NotFound, ValidationFailed
from app.referrals import model as rm
from app.referrals.codes import normalize_code
from app.referrals.fraud import normalize_email
from app.referrals.model import ReferralApplication, ReferralPartner
from app.referrals.partners import create_partner
from app.store.base import DuplicateRecord
from app.workers.dispatch import submit_detached
from app.workers.notifier import (
    APPLICATION_APPROVED,
    APPLICATION_RECEIVED,
    APPLICATION_REJECTED,
    notify_event,
)
from services.audit_log import write_audit_log


logger = logging.getLogger("settlement.applications")

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_MIN_CODE_LEN = 3

# approving a rejected application is allowed; approving twice is not
_APPROVABLE = (rm.APPLICATION_PENDING, rm.APPLICATION_REJECTED)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def submit_application(
    store,
    *,
    creator_name: str,
    email: str,
    buyer_identifier: str,
    contact_handle: str,
    channel_link: str,
    description: str = "",
    now: Optional[datetime] = None,
) -> ReferralApplication:
    creator_name = _clean(creator_name)
    buyer_identifier = _clean(buyer_identifier)
    contact_handle = _clean(contact_handle)
    channel_link = _clean(channel_link)
    email = normalize_email(email) or ""
    if not (creator_name and email and buyer_identifier and contact_handle and channel_link):
        raise ValidationFailed("APPLICATION_FIELDS_REQUIRED")
    if not _EMAIL_RE.match(email):
        raise ValidationFailed("INVALID_EMAIL")

    existing = store.find_active_application(
        email=email,
        contact_handle=contact_handle,
        buyer_identifier=buyer_identifier,
    )
    if existing is not None:
        if existing.status == rm.APPLICATION_APPROVED:
            raise Conflict("ALREADY_APPROVED_PARTNER")
        raise Conflict("APPLICATION_PENDING")

    at = now or _now()
    application = ReferralApplication(
        id=uuid.uuid4(),
        creator_name=creator_name,
        email=email,
        buyer_identifier=buyer_identifier,
        contact_handle=contact_handle,
        channel_link=channel_link,
        description=_clean(description),
        created_at=at,
        updated_at=at,
    )
    try:
        store.insert_referral_application(application)
    except DuplicateRecord:
        # a concurrent submission with the same email won
        raise Conflict("APPLICATION_PENDING")

    logger.info("referral_application_received application_id=%s", application.id)
    submit_detached(
        notify_event,
        APPLICATION_RECEIVED,
        {"application_id": str(application.id), "creator_name": creator_name, "channel_link": channel_link},
    )
    return application


def list_applications(store, *, status: Optional[str] = None, limit: int = 200) -> list[ReferralApplication]:
    if status is not None and status not in rm.APPLICATION_STATUSES:
        raise ValidationFailed("INVALID_STATUS")
    return store.list_referral_applications(statuses=(status,) if status else None, limit=limit)


def _require_application(store, application_id: UUID) -> ReferralApplication:
    application = store.get_referral_application(application_id)
    if application is None:
        raise NotFound("APPLICATION_NOT_FOUND")
    return application


def approve_application(
    store,
    application_id: UUID,
    *,
    actor: str,
    referral_code: Optional[str] = None,
    discount_percent: Optional[Decimal] = None,
    commission_percent: Optional[Decimal] = None,
    review_reason: str = "",
    now: Optional[datetime] = None,
) -> tuple[ReferralApplication, ReferralPartner]:
    application = _require_application(store, application_id)
    if application.status == rm.APPLICATION_APPROVED:
        raise Conflict("APPLICATION_ALREADY_APPROVED")

    # short or empty codes fall back to a generated one
    code = normalize_code(referral_code)
    if len(code) < _MIN_CODE_LEN:
        code = ""
    if code and store.get_partner_by_code(code) is not None:
        raise Conflict("REFERRAL_CODE_TAKEN")

    try:
        claimed = store.review_referral_application(
            application.id,
            from_statuses=_APPROVABLE,
            to_status=rm.APPLICATION_APPROVED,
            reviewed_by=actor,
            review_reason=_clean(review_reason),
            reviewed_at=now or _now(),
        )
    except DuplicateRecord:
        raise Conflict("APPLICATION_EMAIL_IN_USE")
    if claimed is None:
        raise Conflict("APPLICATION_ALREADY_APPROVED")

    try:
        partner = create_partner(
            store,
            creator_name=application.creator_name,
            actor=actor,
            referral_code=code or None,
            buyer_identifier=application.buyer_identifier,
            email=application.email,
            discount_percent=discount_percent if discount_percent is not None else Decimal("10"),
            commission_percent=commission_percent if commission_percent is not None else Decimal("10"),
            application_id=application.id,
        )
    except Exception:
        # hand the application back in the state we found it
        store.review_referral_application(
            application.id,
            from_statuses=(rm.APPLICATION_APPROVED,),
            to_status=application.status,
            reviewed_by=application.reviewed_by,
            review_reason=application.review_reason,
            reviewed_at=application.reviewed_at,
        )
        logger.exception("referral_application_approve_failed application_id=%s", application.id)
        raise

    linked = store.link_application_partner(application.id, partner.id) or claimed
    write_audit_log(
        store,
        actor=actor,
        action="REFERRAL_APPLICATION_APPROVED",
        target_id=str(application.id),
        metadata={"partner_id": str(partner.id), "referral_code": partner.referral_code},
    )
    logger.info(
        "referral_application_approved application_id=%s partner_id=%s code=%s",
        application.id,
        partner.id,
        partner.referral_code,
    )
    submit_detached(
        notify_event,
        APPLICATION_APPROVED,
        {
            "application_id": str(application.id),
            "creator_name": partner.creator_name,
            "referral_code": partner.referral_code,
            "discount_percent": str(partner.discount_percent),
            "commission_percent": str(partner.commission_percent),
        },
    )
    return linked, partner


def reject_application(
    store,
    application_id: UUID,
    *,
    actor: str,
    review_reason: str = "",
    now: Optional[datetime] = None,
) -> ReferralApplication:
    application = _require_application(store, application_id)
    if application.status == rm.APPLICATION_APPROVED:
        raise Conflict("APPLICATION_ALREADY_APPROVED")

    updated = store.review_referral_application(
        application.id,
        from_statuses=_APPROVABLE,
        to_status=rm.APPLICATION_REJECTED,
        reviewed_by=actor,
        review_reason=_clean(review_reason),
        reviewed_at=now or _now(),
    )
    if updated is None:
        raise Conflict("APPLICATION_ALREADY_APPROVED")

    write_audit_log(
        store,
        actor=actor,
        action="REFERRAL_APPLICATION_REJECTED",
        target_id=str(application.id),
        metadata={"review_reason": updated.review_reason},
    )
    submit_detached(
        notify_event,
        APPLICATION_REJECTED,
        {"application_id": str(application.id), "creator_name": application.creator_name},
    )
    return updated

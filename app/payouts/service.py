# app/payouts/service.py
"""
Creator payout requests.

Opening a request only snapshots the balance; money leaves the ledger when an
admin completes it, and completion re-checks the live balance.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence
from uuid import UUID

from app.errors import Conflict, Forbidden, NotFound, ValidationFailed
from app.payouts import model as pm
from app.payouts.model import BankDetails, PayoutRecord, PayoutRequest, QrDetails, UpiDetails
from app.payouts.state_machine import InvalidTransition, assert_completed_invariant, assert_transition, sources_for
from app.payouts.threshold import get_payout_threshold_cents
from app.referrals import model as rm
from app.store.base import DuplicateRecord, GuardFailed
from app.workers.dispatch import submit_detached
from app.workers.notifier import PAYOUT_PROCESSED, PAYOUT_REJECTED, PAYOUT_REQUESTED, notify_event
from services.audit_log import write_audit_log
from services.metrics import increment_payout_transition


logger = logging.getLogger("settlement.payouts")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def open_payout_request(
    store,
    partner_id: UUID,
    *,
    real_name: str,
    details: BankDetails | UpiDetails | QrDetails,
    threshold_cents: Optional[int] = None,
    now: Optional[datetime] = None,
) -> PayoutRequest:
    partner = store.get_partner(partner_id)
    if partner is None:
        raise NotFound("PARTNER_NOT_FOUND")
    if partner.status != rm.PARTNER_ACTIVE:
        raise Forbidden("PARTNER_NOT_ACTIVE")

    threshold = threshold_cents if threshold_cents is not None else get_payout_threshold_cents(store)
    amount = int(partner.pending_commission_cents)
    if amount <= 0 or amount < threshold:
        raise ValidationFailed("BELOW_PAYOUT_THRESHOLD")

    # advisory; completion re-validates the amount
    if store.find_open_payout_request(partner.id) is not None:
        raise Conflict("PAYOUT_REQUEST_ALREADY_OPEN")

    real_name = (real_name or "").strip()
    if not real_name:
        raise ValidationFailed("REAL_NAME_REQUIRED")

    request = PayoutRequest(
        id=uuid.uuid4(),
        partner_id=partner.id,
        amount_cents=amount,
        creator_name=partner.creator_name,
        referral_code=partner.referral_code,
        real_name=real_name,
        method=details.method,
        details=details.model_dump(exclude={"method"}),
        requested_at=now or _now(),
    )
    try:
        request = store.insert_payout_request(request)
    except DuplicateRecord:
        raise Conflict("PAYOUT_REQUEST_ALREADY_OPEN")

    increment_payout_transition(pm.PENDING)
    logger.info(
        "payout_request_opened request_id=%s partner_id=%s amount_cents=%s method=%s",
        request.id,
        partner.id,
        amount,
        request.method,
    )
    submit_detached(
        notify_event,
        PAYOUT_REQUESTED,
        {
            "request_id": str(request.id),
            "referral_code": request.referral_code,
            "amount_cents": amount,
            "method": request.method,
        },
    )
    return request


def _require_request(store, request_id: UUID) -> PayoutRequest:
    req = store.get_payout_request(request_id)
    if req is None:
        raise NotFound("PAYOUT_REQUEST_NOT_FOUND")
    return req


def _transition(
    store,
    request_id: UUID,
    *,
    to_status: str,
    actor: str,
    processed_at: Optional[datetime] = None,
    rejection_reason: Optional[str] = None,
) -> PayoutRequest:
    current = _require_request(store, request_id)
    try:
        assert_transition(current.status, to_status)
    except InvalidTransition:
        raise Conflict("INVALID_TRANSITION")

    updated = store.transition_payout_request(
        request_id,
        from_statuses=sources_for(to_status),
        to_status=to_status,
        processed_by=actor,
        processed_at=processed_at,
        rejection_reason=rejection_reason,
    )
    if updated is None:
        # lost a race with another admin action
        raise Conflict("INVALID_TRANSITION")

    increment_payout_transition(to_status)
    return updated


def approve_payout_request(store, request_id: UUID, *, actor: str) -> PayoutRequest:
    updated = _transition(store, request_id, to_status=pm.PROCESSING, actor=actor)
    write_audit_log(
        store,
        actor=actor,
        action="PAYOUT_REQUEST_APPROVED",
        target_id=str(request_id),
        metadata={"amount_cents": updated.amount_cents, "partner_id": str(updated.partner_id)},
    )
    return updated


def reject_payout_request(
    store, request_id: UUID, *, reason: str, actor: str, now: Optional[datetime] = None
) -> PayoutRequest:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("REJECTION_REASON_REQUIRED")

    updated = _transition(
        store,
        request_id,
        to_status=pm.REJECTED,
        actor=actor,
        processed_at=now or _now(),
        rejection_reason=reason,
    )
    write_audit_log(
        store,
        actor=actor,
        action="PAYOUT_REQUEST_REJECTED",
        target_id=str(request_id),
        metadata={"reason": reason, "partner_id": str(updated.partner_id)},
    )
    submit_detached(
        notify_event,
        PAYOUT_REJECTED,
        {"request_id": str(updated.id), "referral_code": updated.referral_code, "reason": reason},
    )
    return updated


def complete_payout_request(
    store,
    request_id: UUID,
    *,
    transaction_reference: str,
    actor: str,
    now: Optional[datetime] = None,
) -> PayoutRequest:
    req = _require_request(store, request_id)
    try:
        assert_transition(req.status, pm.COMPLETED)
    except InvalidTransition:
        raise Conflict("INVALID_TRANSITION")

    transaction_reference = (transaction_reference or "").strip()
    try:
        assert_completed_invariant(pm.COMPLETED, transaction_reference)
    except ValueError:
        raise ValidationFailed("TRANSACTION_REFERENCE_REQUIRED")

    partner = store.get_partner(req.partner_id)
    if partner is None:
        raise NotFound("PARTNER_NOT_FOUND")
    if req.amount_cents > partner.pending_commission_cents:
        raise Conflict("AMOUNT_EXCEEDS_BALANCE")

    at = now or _now()
    record = PayoutRecord(
        id=uuid.uuid4(),
        partner_id=partner.id,
        amount_cents=req.amount_cents,
        creator_name=req.creator_name,
        referral_code=req.referral_code,
        processed_by=actor,
        created_at=at,
        method=req.method,
        transaction_reference=transaction_reference,
        payout_request_id=req.id,
    )
    try:
        updated, partner = store.complete_payout_request(
            req.id,
            from_statuses=sources_for(pm.COMPLETED),
            transaction_reference=transaction_reference,
            processed_by=actor,
            processed_at=at,
            record=record,
        )
    except GuardFailed as exc:
        logger.warning("payout_complete_conflict request_id=%s reason=%s", req.id, exc.reason)
        if exc.reason == "STATUS_CHANGED":
            raise Conflict("INVALID_TRANSITION")
        raise Conflict("BALANCE_CHANGED")

    increment_payout_transition(pm.COMPLETED)
    write_audit_log(
        store,
        actor=actor,
        action="PAYOUT_REQUEST_COMPLETED",
        target_id=str(req.id),
        metadata={
            "amount_cents": req.amount_cents,
            "partner_id": str(partner.id),
            "transaction_reference": transaction_reference,
            "pending_after_cents": partner.pending_commission_cents,
        },
    )
    logger.info(
        "payout_request_completed request_id=%s partner_id=%s amount_cents=%s",
        req.id,
        partner.id,
        req.amount_cents,
    )
    submit_detached(
        notify_event,
        PAYOUT_PROCESSED,
        {
            "request_id": str(req.id),
            "referral_code": req.referral_code,
            "amount_cents": req.amount_cents,
            "transaction_reference": transaction_reference,
        },
    )
    return updated


def list_payout_requests(store, *, statuses: Optional[Sequence[str]] = None, limit: int = 300) -> list[PayoutRequest]:
    wanted = tuple(statuses) if statuses else pm.OPEN_STATUSES
    unknown = set(wanted) - {pm.PENDING, pm.PROCESSING, pm.COMPLETED, pm.REJECTED}
    if unknown:
        raise ValidationFailed("INVALID_STATUS")
    return store.list_payout_requests(statuses=wanted, limit=limit)


def latest_payout_request(store, partner_id: UUID) -> Optional[PayoutRequest]:
    return store.latest_payout_request(partner_id)


def payout_history(store, *, partner_id: Optional[UUID] = None, limit: int = 200) -> list[PayoutRecord]:
    return store.list_payout_records(partner_id=partner_id, limit=limit)

# app/ledger/adjustments.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from app.errors import Conflict, NotFound, ValidationFailed
from app.payouts.model import PayoutRecord
from app.referrals import model as rm
from app.referrals.model import CommissionAdjustment, ReferralPartner
from app.workers.dispatch import submit_detached
from app.workers.notifier import PAYOUT_PROCESSED, notify_event
from services.audit_log import write_audit_log


logger = logging.getLogger("settlement.ledger")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def adjust_commission(
    store,
    partner_id: UUID,
    *,
    delta_cents: int,
    note: str,
    actor: str,
    now: Optional[datetime] = None,
) -> CommissionAdjustment:
    """Manual correction of the pending balance; refused if it would go negative."""
    delta_cents = int(delta_cents)
    if delta_cents == 0:
        raise ValidationFailed("INVALID_AMOUNT")

    if store.get_partner(partner_id) is None:
        raise NotFound("PARTNER_NOT_FOUND")

    adj = store.adjust_pending_commission(
        partner_id,
        delta_cents=delta_cents,
        adjustment_id=uuid.uuid4(),
        adjusted_by=actor,
        note=(note or "").strip(),
        at=now or _now(),
    )
    if adj is None:
        raise Conflict("INSUFFICIENT_BALANCE")

    write_audit_log(
        store,
        actor=actor,
        action="COMMISSION_ADJUSTED",
        target_id=str(partner_id),
        metadata={
            "amount_cents": adj.amount_cents,
            "previous_balance_cents": adj.previous_balance_cents,
            "new_balance_cents": adj.new_balance_cents,
            "note": adj.note,
        },
    )
    return adj


def process_direct_payout(
    store,
    partner_id: UUID,
    *,
    amount_cents: int,
    actor: str,
    note: str = "",
    method: Optional[str] = None,
    transaction_reference: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[ReferralPartner, PayoutRecord]:
    """Admin payout with no creator request behind it."""
    amount_cents = int(amount_cents)
    if amount_cents <= 0:
        raise ValidationFailed("INVALID_AMOUNT")

    partner = store.get_partner(partner_id)
    if partner is None:
        raise NotFound("PARTNER_NOT_FOUND")
    if partner.status == rm.PARTNER_BANNED:
        raise ValidationFailed("PARTNER_BANNED")
    if amount_cents > partner.pending_commission_cents:
        raise Conflict("AMOUNT_EXCEEDS_BALANCE")

    record = PayoutRecord(
        id=uuid.uuid4(),
        partner_id=partner.id,
        amount_cents=amount_cents,
        creator_name=partner.creator_name,
        referral_code=partner.referral_code,
        processed_by=actor,
        created_at=now or _now(),
        method=method,
        transaction_reference=transaction_reference,
        note=(note or "").strip(),
    )
    updated = store.debit_partner(partner.id, amount_cents=amount_cents, record=record)
    if updated is None:
        raise Conflict("BALANCE_CHANGED")

    write_audit_log(
        store,
        actor=actor,
        action="DIRECT_PAYOUT_PROCESSED",
        target_id=str(partner.id),
        metadata={"amount_cents": amount_cents, "pending_after_cents": updated.pending_commission_cents},
    )
    logger.info("direct_payout partner_id=%s amount_cents=%s", partner.id, amount_cents)
    submit_detached(
        notify_event,
        PAYOUT_PROCESSED,
        {"referral_code": partner.referral_code, "amount_cents": amount_cents, "direct": True},
    )
    return updated, record


def eligible_partners(store, *, threshold_cents: int) -> list[ReferralPartner]:
    return store.list_partners(
        statuses=(rm.PARTNER_ACTIVE, rm.PARTNER_PAUSED),
        min_pending_cents=int(threshold_cents),
    )

# app/ledger/commission.py
"""
Commission settlement.

An order is credited at most once. The `commission_settled` flag is flipped
by a guarded claim before the partner is credited, so concurrent settlements
of one order race on the claim and only the winner reaches the credit. The
usage cap is enforced by the guarded credit itself, never by a prior read.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

from app.orders import model as om
from app.orders.model import Order
from app.store.base import percent
from services.metrics import increment_settlement


logger = logging.getLogger("settlement.ledger")


class SettlementOutcome(str, enum.Enum):
    SKIPPED = "skipped"
    CREDITED = "credited"
    CAP_REACHED = "cap_reached"
    PARTNER_MISSING = "partner_missing"


@dataclass(frozen=True)
class SettlementResult:
    outcome: SettlementOutcome
    commission_cents: int = 0
    partner_id: Optional[UUID] = None


def compute_commission_cents(total_cents: int, commission_percent) -> int:
    raw = Decimal(int(total_cents)) * percent(commission_percent) / Decimal(100)
    return int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_settleable(order: Order) -> bool:
    return (
        order.referral_code is not None
        and not order.commission_settled
        and order.payment_status == om.PAYMENT_PAID
        and order.webhook_verified
        and order.status not in (om.REFUNDED, om.FAILED)
    )


def _finish(result: SettlementResult, order_id) -> SettlementResult:
    increment_settlement(result.outcome.value)
    logger.info(
        "commission_settlement order_id=%s outcome=%s commission_cents=%s partner_id=%s",
        order_id,
        result.outcome.value,
        result.commission_cents,
        result.partner_id,
    )
    return result


def settle_commission(store, order_id: UUID) -> SettlementResult:
    order = store.get_order(order_id)
    if order is None or not is_settleable(order):
        return _finish(SettlementResult(SettlementOutcome.SKIPPED), order_id)

    if not store.claim_commission_settlement(order.id):
        # someone else settled it, or the order changed under us
        return _finish(SettlementResult(SettlementOutcome.SKIPPED), order_id)

    try:
        partner = None
        if order.referral_partner_id is not None:
            partner = store.get_partner(order.referral_partner_id)
        if partner is None:
            partner = store.get_partner_by_code(order.referral_code)

        if partner is None:
            logger.warning(
                "commission_partner_missing order_id=%s referral_code=%s",
                order.id,
                order.referral_code,
            )
            return _finish(SettlementResult(SettlementOutcome.PARTNER_MISSING), order_id)

        commission = compute_commission_cents(order.total_cents, order.commission_percent)
        credited = store.credit_partner(
            partner.id,
            revenue_cents=order.total_cents,
            commission_cents=commission,
        )
    except Exception:
        store.release_commission_claim(order.id)
        logger.exception("commission_settlement_failed order_id=%s claim_released=true", order.id)
        raise

    if credited is None:
        logger.warning(
            "commission_cap_reached order_id=%s partner_id=%s max_uses=%s",
            order.id,
            partner.id,
            partner.max_uses,
        )
        return _finish(SettlementResult(SettlementOutcome.CAP_REACHED, partner_id=partner.id), order_id)

    return _finish(
        SettlementResult(SettlementOutcome.CREDITED, commission_cents=commission, partner_id=partner.id),
        order_id,
    )

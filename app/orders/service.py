# app/orders/service.py
"""
Order lifecycle: checkout, the captured-payment transition driven by the
verified webhook, and the fulfillment / refund transitions.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional
from uuid import UUID

from app.catalog.analytics import record_sales
from app.errors import Conflict, NotFound, Unavailable, ValidationFailed
from app.ledger.commission import settle_commission
from app.orders import model as om
from app.orders.model import Order, OrderItem
from app.orders.state_machine import InvalidTransition, assert_transition
from app.providers.base import GatewayError
from app.referrals.codes import compute_discount, normalize_code, resolve_referral_code
from app.referrals.fraud import normalize_email, record_code_usage
from app.store.base import DuplicateRecord
from app.webhooks.verifier import PaymentCaptured
from app.workers.dispatch import submit_detached
from app.workers.notifier import ORDER_PAID, notify_event
from services.audit_log import write_audit_log
from settings import settings


logger = logging.getLogger("settlement.orders")

# acknowledgement results for a captured payment
RESULT_PROCESSED = "processed"
RESULT_DUPLICATE = "duplicate"
RESULT_ORDER_NOT_FOUND = "order_not_found"
RESULT_ALREADY_PAID = "already_paid"
RESULT_NOT_PAYABLE = "not_payable"

FULFILLMENT_OUTCOMES = {
    om.FULFILLMENT_DELIVERED: om.DELIVERED,
    om.FULFILLMENT_FAILED: om.FAILED,
    om.FULFILLMENT_SKIPPED: om.PAID,
}

MAX_QUANTITY = 100


def _now() -> datetime:
    return datetime.now(timezone.utc)


def handle_payment_captured(store, event: PaymentCaptured, *, now: Optional[datetime] = None) -> str:
    """
    Apply a verified capture. Redeliveries are no-ops; everything after the
    paid transition is best-effort and never raised to the caller.
    """
    if store.get_order_by_gateway_payment_id(event.gateway_payment_id) is not None:
        logger.info("payment_captured_duplicate payment_id=%s", event.gateway_payment_id)
        return RESULT_DUPLICATE

    order = store.get_order_by_gateway_order_id(event.gateway_order_id)
    if order is None:
        logger.warning(
            "payment_captured_order_not_found gateway_order_id=%s payment_id=%s",
            event.gateway_order_id,
            event.gateway_payment_id,
        )
        return RESULT_ORDER_NOT_FOUND

    try:
        paid = store.mark_order_paid(
            event.gateway_order_id,
            gateway_payment_id=event.gateway_payment_id,
            paid_at=now or _now(),
        )
    except DuplicateRecord:
        # a concurrent delivery won the payment id
        logger.info("payment_captured_duplicate payment_id=%s", event.gateway_payment_id)
        return RESULT_DUPLICATE

    if paid is None:
        current = store.get_order(order.id)
        if current is not None and current.payment_status == om.PAYMENT_PAID:
            if not current.webhook_verified:
                store.mark_order_webhook_verified(current.id)
            logger.info("payment_captured_already_paid order_id=%s", current.id)
            _settle_best_effort(store, current.id)
            return RESULT_ALREADY_PAID
        logger.warning(
            "payment_captured_not_payable order_id=%s status=%s",
            order.id,
            current.status if current else None,
        )
        return RESULT_NOT_PAYABLE

    logger.info("order_paid order_id=%s total_cents=%s", paid.id, paid.total_cents)

    record_sales(store, paid)
    _settle_best_effort(store, paid.id)
    submit_detached(
        notify_event,
        ORDER_PAID,
        {"order_id": str(paid.id), "buyer_id": paid.buyer_id, "total_cents": paid.total_cents},
    )
    return RESULT_PROCESSED


def _settle_best_effort(store, order_id: UUID) -> None:
    try:
        settle_commission(store, order_id)
    except Exception:
        logger.exception("commission_settlement_error order_id=%s", order_id)


def create_order(
    store,
    gateway,
    *,
    buyer_id: str,
    email: Optional[str],
    items: Iterable[tuple[UUID, int]],
    referral_code: Optional[str] = None,
    ip: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    buyer_id = (buyer_id or "").strip()
    if not buyer_id:
        raise ValidationFailed("BUYER_ID_REQUIRED")
    email = normalize_email(email)

    wanted: dict[UUID, int] = {}
    for product_id, quantity in items:
        quantity = int(quantity)
        if quantity < 1 or quantity > MAX_QUANTITY:
            raise ValidationFailed("INVALID_QUANTITY")
        wanted[product_id] = wanted.get(product_id, 0) + quantity
    if not wanted:
        raise ValidationFailed("EMPTY_CART")

    products = {p.id: p for p in store.get_products(wanted.keys())}
    if set(products) != set(wanted):
        raise ValidationFailed("PRODUCT_UNAVAILABLE")

    # prices always come from the catalog, never the client
    lines = tuple(
        OrderItem(
            product_id=pid,
            title=products[pid].title,
            unit_price_cents=products[pid].price_cents,
            quantity=qty,
            instructions=products[pid].instructions,
        )
        for pid, qty in wanted.items()
    )
    subtotal = sum(line.line_total_cents for line in lines)

    code = normalize_code(referral_code) or None
    partner = None
    discount = 0
    if code:
        partner = resolve_referral_code(store, code, buyer_id=buyer_id, ip=ip, email=email, at=now)
        discount = compute_discount(subtotal, partner.discount_percent)
        submit_detached(record_code_usage, store, referral_code=code, ip=ip, email=email, buyer_id=buyer_id)

    total = subtotal - discount
    if total <= 0:
        raise ValidationFailed("INVALID_TOTAL")

    order_id = uuid.uuid4()
    try:
        gw = gateway.create_order(
            amount_cents=total,
            currency=settings.CURRENCY,
            receipt=str(order_id),
            notes={"buyerId": buyer_id, "orderId": str(order_id)},
        )
    except GatewayError as exc:
        logger.warning("checkout_gateway_failed order_id=%s error=%s", order_id, exc)
        raise Unavailable("GATEWAY_UNAVAILABLE")

    at = now or _now()
    order = Order(
        id=order_id,
        buyer_id=buyer_id,
        email=email or "",
        items=lines,
        subtotal_cents=subtotal,
        discount_cents=discount,
        total_cents=total,
        currency=settings.CURRENCY,
        gateway_order_id=gw.gateway_order_id,
        created_at=at,
        updated_at=at,
        referral_code=code if partner else None,
        referral_partner_id=partner.id if partner else None,
        commission_percent=partner.commission_percent if partner else Decimal("0"),
    )
    store.insert_order(order)
    logger.info(
        "order_created order_id=%s total_cents=%s referral_code=%s",
        order.id,
        total,
        order.referral_code,
    )
    return order


def get_order_status(store, order_id: UUID) -> dict[str, Any]:
    order = store.get_order(order_id)
    if order is None:
        raise NotFound("ORDER_NOT_FOUND")
    return {
        "order_id": str(order.id),
        "buyer_id": order.buyer_id,
        "items": [
            {
                "product_id": str(i.product_id),
                "title": i.title,
                "quantity": i.quantity,
                "unit_price_cents": i.unit_price_cents,
            }
            for i in order.items
        ],
        "total_cents": order.total_cents,
        "currency": order.currency,
        "status": order.status,
        "payment_status": order.payment_status,
        "fulfillment_status": order.fulfillment_status,
        "created_at": order.created_at,
        "paid_at": order.paid_at,
        "delivered_at": order.delivered_at,
    }


def record_fulfillment(
    store,
    order_id: UUID,
    *,
    outcome: str,
    actor: str,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    if outcome not in FULFILLMENT_OUTCOMES:
        raise ValidationFailed("INVALID_FULFILLMENT_OUTCOME")

    order = store.get_order(order_id)
    if order is None:
        raise NotFound("ORDER_NOT_FOUND")

    target = FULFILLMENT_OUTCOMES[outcome]
    if order.status != om.PAID:
        raise Conflict("INVALID_TRANSITION")
    if target != om.PAID:
        try:
            assert_transition(order.status, target)
        except InvalidTransition:
            raise Conflict("INVALID_TRANSITION")

    at = now or _now()
    log_line = f"{at.isoformat()} {outcome}" + (f": {note.strip()}" if note and note.strip() else "")
    updated = store.update_order_fulfillment(
        order.id,
        from_statuses=(om.PAID,),
        status=target,
        fulfillment_status=outcome,
        log_line=log_line,
        delivered_at=at if outcome == om.FULFILLMENT_DELIVERED else None,
    )
    if updated is None:
        raise Conflict("INVALID_TRANSITION")

    write_audit_log(
        store,
        actor=actor,
        action="ORDER_FULFILLMENT_RECORDED",
        target_id=str(order.id),
        metadata={"outcome": outcome},
    )
    return updated


def mark_refunded(store, order_id: UUID, *, actor: str, reason: str = "") -> Order:
    order = store.get_order(order_id)
    if order is None:
        raise NotFound("ORDER_NOT_FOUND")
    try:
        assert_transition(order.status, om.REFUNDED)
    except InvalidTransition:
        raise Conflict("ALREADY_REFUNDED")

    updated = store.mark_order_refunded(order.id)
    if updated is None:
        raise Conflict("ALREADY_REFUNDED")

    # commission already credited is not clawed back here; admins use adjustments
    write_audit_log(
        store,
        actor=actor,
        action="ORDER_REFUNDED",
        target_id=str(order.id),
        metadata={"reason": reason, "commission_settled": updated.commission_settled},
    )
    return updated

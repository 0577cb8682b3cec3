# routes/admin_orders.py
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from app.errors import SettlementError
from app.orders.model import Order
from app.orders.service import mark_refunded, record_fulfillment
from deps.admin import require_admin
from deps.auth import CurrentPrincipal
from deps.store import get_store
from schemas import AdminOrderItem, FulfillmentBody, RefundBody
from services.errors import raise_http_from_domain_error


router = APIRouter(prefix="/v1/admin/orders", tags=["admin_orders"])


def _item(order: Order) -> AdminOrderItem:
    return AdminOrderItem(
        id=order.id,
        buyer_id=order.buyer_id,
        total_cents=order.total_cents,
        discount_cents=order.discount_cents,
        status=order.status,
        payment_status=order.payment_status,
        fulfillment_status=order.fulfillment_status,
        referral_code=order.referral_code,
        commission_settled=order.commission_settled,
        webhook_verified=order.webhook_verified,
    )


@router.post("/{order_id}/fulfillment", response_model=AdminOrderItem)
def fulfillment(
    order_id: UUID,
    body: FulfillmentBody,
    admin: CurrentPrincipal = Depends(require_admin),
    store=Depends(get_store),
):
    try:
        order = record_fulfillment(store, order_id, outcome=body.outcome, note=body.note, actor=admin.subject)
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return _item(order)


@router.post("/{order_id}/refund", response_model=AdminOrderItem)
def refund(
    order_id: UUID,
    body: RefundBody,
    admin: CurrentPrincipal = Depends(require_admin),
    store=Depends(get_store),
):
    try:
        order = mark_refunded(store, order_id, actor=admin.subject, reason=body.reason)
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return _item(order)

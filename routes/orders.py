# routes/orders.py
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request

from app.errors import SettlementError
from app.orders.service import create_order, get_order_status
from app.referrals.applications import submit_application
from app.referrals.codes import resolve_referral_code
from deps.store import get_gateway, get_store
from schemas import (
    ApplyBody,
    ApplyResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    OrderStatusResponse,
    ValidateReferralRequest,
    ValidateReferralResponse,
)
from services.errors import raise_http_from_domain_error
from settings import settings


router = APIRouter(prefix="/v1", tags=["orders"])


def _client_ip(req: Request) -> str | None:
    if settings.TRUST_PROXY_HEADERS:
        forwarded = (req.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
        if forwarded:
            return forwarded
    return req.client.host if req.client else None


@router.post("/orders", response_model=CreateOrderResponse, status_code=201)
def checkout(
    body: CreateOrderRequest,
    req: Request,
    store=Depends(get_store),
    gateway=Depends(get_gateway),
):
    try:
        order = create_order(
            store,
            gateway,
            buyer_id=body.buyer_id,
            email=body.email,
            items=[(line.product_id, line.quantity) for line in body.items],
            referral_code=body.referral_code,
            ip=_client_ip(req),
        )
    except SettlementError as exc:
        raise_http_from_domain_error(exc)

    return CreateOrderResponse(
        order_id=order.id,
        gateway_order_id=order.gateway_order_id,
        gateway_key_id=(settings.RAZORPAY_KEY_ID or "").strip() or None,
        # the gateway order is created for exactly the order total
        gateway_amount_cents=order.total_cents,
        subtotal_cents=order.subtotal_cents,
        discount_cents=order.discount_cents,
        total_cents=order.total_cents,
        currency=order.currency,
    )


@router.get("/orders/{order_id}", response_model=OrderStatusResponse)
def order_status(order_id: UUID, store=Depends(get_store)):
    try:
        return get_order_status(store, order_id)
    except SettlementError as exc:
        raise_http_from_domain_error(exc)


@router.post("/referrals/validate", response_model=ValidateReferralResponse)
def validate_referral(body: ValidateReferralRequest, req: Request, store=Depends(get_store)):
    try:
        partner = resolve_referral_code(
            store,
            body.referral_code,
            buyer_id=body.buyer_id,
            ip=_client_ip(req),
        )
    except SettlementError as exc:
        raise_http_from_domain_error(exc)

    return ValidateReferralResponse(
        referral_code=partner.referral_code,
        discount_percent=partner.discount_percent,
    )


@router.post("/referrals/apply", response_model=ApplyResponse, status_code=201)
def apply_for_referral(body: ApplyBody, store=Depends(get_store)):
    try:
        application = submit_application(
            store,
            creator_name=body.creator_name,
            email=body.email,
            buyer_identifier=body.buyer_identifier,
            contact_handle=body.contact_handle,
            channel_link=body.channel_link,
            description=body.description,
        )
    except SettlementError as exc:
        raise_http_from_domain_error(exc)
    return ApplyResponse(id=application.id, status=application.status)

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID


# overall status
CREATED = "created"
PENDING = "pending"
PAID = "paid"
DELIVERED = "delivered"
FAILED = "failed"
REFUNDED = "refunded"

# payment status
PAYMENT_CREATED = "created"
PAYMENT_ATTEMPTED = "attempted"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"

# fulfillment status
FULFILLMENT_PENDING = "pending"
FULFILLMENT_DELIVERED = "delivered"
FULFILLMENT_FAILED = "failed"
FULFILLMENT_SKIPPED = "skipped"


@dataclass(frozen=True)
class OrderItem:
    product_id: UUID
    title: str
    unit_price_cents: int
    quantity: int
    instructions: tuple[str, ...] = ()

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True)
class Order:
    id: UUID
    buyer_id: str
    email: str
    items: tuple[OrderItem, ...]
    subtotal_cents: int
    discount_cents: int
    total_cents: int
    currency: str
    gateway_order_id: Optional[str]
    created_at: datetime
    updated_at: datetime
    gateway_payment_id: Optional[str] = None
    # referral snapshot, frozen at checkout
    referral_code: Optional[str] = None
    referral_partner_id: Optional[UUID] = None
    commission_percent: Decimal = Decimal("0")
    commission_settled: bool = False
    status: str = CREATED
    payment_status: str = PAYMENT_CREATED
    fulfillment_status: str = FULFILLMENT_PENDING
    fulfillment_log: tuple[str, ...] = field(default_factory=tuple)
    webhook_verified: bool = False
    paid_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

# schemas.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.payouts.model import PayoutDetails

PartnerStatus = Literal["active", "paused", "banned"]
PayoutStatus = Literal["pending", "processing", "completed", "rejected"]
FulfillmentOutcome = Literal["delivered", "failed", "skipped"]


# -------- CHECKOUT --------
class CartLine(BaseModel):
    product_id: UUID
    quantity: int = Field(ge=1, le=100)


class CreateOrderRequest(BaseModel):
    buyer_id: str = Field(min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")
    items: List[CartLine] = Field(min_length=1)
    referral_code: Optional[str] = Field(default=None, max_length=32)


class CreateOrderResponse(BaseModel):
    order_id: UUID
    gateway_order_id: str
    # what the storefront needs to open the gateway checkout
    gateway_key_id: Optional[str] = None
    gateway_amount_cents: int
    subtotal_cents: int
    discount_cents: int
    total_cents: int
    currency: str


class OrderItemView(BaseModel):
    product_id: UUID
    title: str
    quantity: int
    unit_price_cents: int


class OrderStatusResponse(BaseModel):
    order_id: UUID
    buyer_id: str
    items: List[OrderItemView]
    total_cents: int
    currency: str
    status: str
    payment_status: str
    fulfillment_status: str
    created_at: datetime
    paid_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class ValidateReferralRequest(BaseModel):
    referral_code: str = Field(min_length=1, max_length=32)
    buyer_id: Optional[str] = None


class ValidateReferralResponse(BaseModel):
    referral_code: str
    discount_percent: Decimal


# -------- CREATOR --------
class CreatorDashboard(BaseModel):
    partner_id: UUID
    creator_name: str
    referral_code: str
    status: PartnerStatus
    discount_percent: Decimal
    commission_percent: Decimal
    total_uses: int
    max_uses: Optional[int] = None
    total_revenue_cents: int
    total_commission_cents: int
    pending_commission_cents: int
    total_paid_out_cents: int
    payout_threshold_cents: int
    can_request_payout: bool
    open_request_id: Optional[UUID] = None


class CreatorInsights(BaseModel):
    last_7_days_uses: int
    last_30_days_revenue_cents: int


class OpenPayoutRequest(BaseModel):
    real_name: str = Field(min_length=1, max_length=120)
    details: PayoutDetails


# -------- PAYOUTS --------
class PayoutRequestItem(BaseModel):
    id: UUID
    partner_id: UUID
    amount_cents: int
    creator_name: str
    referral_code: str
    real_name: str
    method: str
    details: dict
    status: PayoutStatus
    transaction_reference: str = ""
    rejection_reason: str = ""
    processed_by: Optional[str] = None
    requested_at: datetime
    processed_at: Optional[datetime] = None


class PayoutRequestList(BaseModel):
    requests: List[PayoutRequestItem]


class RejectPayoutBody(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class CompletePayoutBody(BaseModel):
    transaction_reference: str = Field(min_length=1, max_length=120)


class DirectPayoutBody(BaseModel):
    partner_id: UUID
    amount_cents: int = Field(gt=0)
    method: Optional[str] = Field(default=None, max_length=20)
    transaction_reference: Optional[str] = Field(default=None, max_length=120)
    note: str = Field(default="", max_length=500)


class PayoutRecordItem(BaseModel):
    id: UUID
    partner_id: UUID
    amount_cents: int
    creator_name: str
    referral_code: str
    processed_by: str
    created_at: datetime
    method: Optional[str] = None
    transaction_reference: Optional[str] = None
    payout_request_id: Optional[UUID] = None
    note: str = ""


# -------- PARTNERS --------
class PartnerItem(BaseModel):
    id: UUID
    creator_name: str
    referral_code: str
    buyer_identifier: str = ""
    email: str = ""
    discount_percent: Decimal
    commission_percent: Decimal
    total_uses: int
    total_revenue_cents: int
    total_commission_cents: int
    pending_commission_cents: int
    total_paid_out_cents: int
    max_uses: Optional[int] = None
    expires_at: Optional[datetime] = None
    status: PartnerStatus
    created_at: datetime
    updated_at: datetime
    application_id: Optional[UUID] = None


class CreatePartnerBody(BaseModel):
    creator_name: str = Field(min_length=1, max_length=120)
    referral_code: Optional[str] = Field(default=None, min_length=3, max_length=32, pattern=r"^[A-Za-z0-9]+$")
    buyer_identifier: str = Field(default="", max_length=100)
    email: str = Field(default="", max_length=254)
    discount_percent: Decimal = Field(default=Decimal("10"), ge=0, le=100)
    commission_percent: Decimal = Field(default=Decimal("10"), ge=0, le=100)
    max_uses: Optional[int] = Field(default=None, ge=1)
    expires_at: Optional[datetime] = None


class UpdatePartnerBody(BaseModel):
    status: Optional[PartnerStatus] = None
    discount_percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    commission_percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    max_uses: Optional[int] = Field(default=None, ge=1)
    expires_at: Optional[datetime] = None
    email: Optional[str] = Field(default=None, max_length=254)
    buyer_identifier: Optional[str] = Field(default=None, max_length=100)


class AdjustCommissionBody(BaseModel):
    amount_cents: int
    note: str = Field(default="", max_length=500)


class CommissionAdjustmentItem(BaseModel):
    id: UUID
    partner_id: UUID
    amount_cents: int
    previous_balance_cents: int
    new_balance_cents: int
    adjusted_by: str
    created_at: datetime
    note: str = ""


# -------- REFERRAL APPLICATIONS --------
ApplicationStatus = Literal["pending", "approved", "rejected"]


class ApplyBody(BaseModel):
    creator_name: str = Field(min_length=1, max_length=120)
    email: str = Field(min_length=3, max_length=254)
    buyer_identifier: str = Field(min_length=1, max_length=100)
    contact_handle: str = Field(min_length=1, max_length=100)
    channel_link: str = Field(min_length=1, max_length=500)
    description: str = Field(default="", max_length=2000)


class ApplyResponse(BaseModel):
    id: UUID
    status: ApplicationStatus


class ApplicationItem(BaseModel):
    id: UUID
    creator_name: str
    email: str
    buyer_identifier: str
    contact_handle: str
    channel_link: str
    description: str = ""
    status: ApplicationStatus
    review_reason: str = ""
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    partner_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class ApproveApplicationBody(BaseModel):
    referral_code: Optional[str] = Field(default=None, max_length=32, pattern=r"^[A-Za-z0-9]*$")
    discount_percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    commission_percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    review_reason: str = Field(default="", max_length=500)


class RejectApplicationBody(BaseModel):
    review_reason: str = Field(default="", max_length=500)


class ApplicationApproval(BaseModel):
    application: ApplicationItem
    partner: PartnerItem


# -------- FRAUD --------
class FraudLogItem(BaseModel):
    id: UUID
    referral_code: str
    type: str
    created_at: datetime
    ip: Optional[str] = None
    email: Optional[str] = None
    buyer_id: Optional[str] = None
    details: str = ""


# -------- ORDERS (admin) --------
class FulfillmentBody(BaseModel):
    outcome: FulfillmentOutcome
    note: Optional[str] = Field(default=None, max_length=500)


class RefundBody(BaseModel):
    reason: str = Field(default="", max_length=500)


class AdminOrderItem(BaseModel):
    id: UUID
    buyer_id: str
    total_cents: int
    discount_cents: int
    status: str
    payment_status: str
    fulfillment_status: str
    referral_code: Optional[str] = None
    commission_settled: bool
    webhook_verified: bool


# -------- SETTINGS --------
class PublicSettings(BaseModel):
    global_payout_threshold_cents: int
    currency: str


class UpdateSettingsBody(BaseModel):
    global_payout_threshold_cents: int = Field(ge=1)

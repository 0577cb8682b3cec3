from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID


PARTNER_ACTIVE = "active"
PARTNER_PAUSED = "paused"
PARTNER_BANNED = "banned"
PARTNER_STATUSES = (PARTNER_ACTIVE, PARTNER_PAUSED, PARTNER_BANNED)

APPLICATION_PENDING = "pending"
APPLICATION_APPROVED = "approved"
APPLICATION_REJECTED = "rejected"
APPLICATION_STATUSES = (APPLICATION_PENDING, APPLICATION_APPROVED, APPLICATION_REJECTED)

FRAUD_CODE_USAGE = "code_usage"
FRAUD_SELF_USE = "self_use"
FRAUD_RAPID_REPEAT = "rapid_repeat"
FRAUD_SUSPICIOUS_PATTERN = "suspicious_pattern"
FRAUD_TYPES = (FRAUD_CODE_USAGE, FRAUD_SELF_USE, FRAUD_RAPID_REPEAT, FRAUD_SUSPICIOUS_PATTERN)


@dataclass(frozen=True)
class ReferralPartner:
    id: UUID
    creator_name: str
    referral_code: str
    created_at: datetime
    updated_at: datetime
    buyer_identifier: str = ""
    email: str = ""
    discount_percent: Decimal = Decimal("10")
    commission_percent: Decimal = Decimal("10")
    total_uses: int = 0
    total_revenue_cents: int = 0
    total_commission_cents: int = 0
    pending_commission_cents: int = 0
    total_paid_out_cents: int = 0
    # legacy per-partner override; payouts use the global threshold
    payout_threshold_cents: int = 30000
    max_uses: Optional[int] = None
    expires_at: Optional[datetime] = None
    status: str = PARTNER_ACTIVE
    application_id: Optional[UUID] = None


@dataclass(frozen=True)
class FraudLogEntry:
    id: UUID
    referral_code: str
    type: str
    created_at: datetime
    ip: Optional[str] = None
    email: Optional[str] = None
    buyer_id: Optional[str] = None
    details: str = ""


@dataclass(frozen=True)
class CommissionAdjustment:
    id: UUID
    partner_id: UUID
    amount_cents: int
    previous_balance_cents: int
    new_balance_cents: int
    adjusted_by: str
    created_at: datetime
    note: str = ""


FRAUD_LOG_RETENTION = timedelta(days=90)


@dataclass(frozen=True)
class ReferralApplication:
    """A creator asking to join the referral program; approval creates the partner."""

    id: UUID
    creator_name: str
    email: str
    buyer_identifier: str
    contact_handle: str
    channel_link: str
    created_at: datetime
    updated_at: datetime
    description: str = ""
    status: str = APPLICATION_PENDING
    review_reason: str = ""
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    partner_id: Optional[UUID] = None

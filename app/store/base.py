# app/store/base.py
"""
Persistence contract shared by every component.

Each mutating method is a single atomic operation against one record (or, for
the composite payout methods, one transaction). Guarded updates report a
failed guard by returning None/False; they never raise for it, so the caller
decides whether a miss is a conflict, a no-op or a cap skip.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional, Protocol, Sequence
from uuid import UUID

from app.catalog.model import Product
from app.orders.model import Order
from app.payouts.model import PayoutRecord, PayoutRequest
from app.referrals.model import CommissionAdjustment, FraudLogEntry, ReferralApplication, ReferralPartner


class StoreError(Exception):
    pass


class DuplicateRecord(StoreError):
    """A unique constraint rejected the write."""


class GuardFailed(StoreError):
    """A composite operation lost its guard; nothing was written."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class AppSettings:
    global_payout_threshold_cents: int
    updated_at: Optional[datetime] = None


class Store(Protocol):
    def ping(self) -> None: ...

    # -------- catalog --------
    def insert_product(self, product: Product) -> Product: ...
    def get_products(self, product_ids: Iterable[UUID]) -> list[Product]: ...
    def increment_product_sales(self, product_id: UUID, *, quantity: int, revenue_cents: int) -> None: ...

    # -------- orders --------
    def insert_order(self, order: Order) -> Order: ...
    def get_order(self, order_id: UUID) -> Optional[Order]: ...
    def get_order_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Order]: ...
    def get_order_by_gateway_payment_id(self, gateway_payment_id: str) -> Optional[Order]: ...
    def mark_order_paid(
        self, gateway_order_id: str, *, gateway_payment_id: str, paid_at: datetime
    ) -> Optional[Order]: ...
    def mark_order_webhook_verified(self, order_id: UUID) -> None: ...
    def update_order_fulfillment(
        self,
        order_id: UUID,
        *,
        from_statuses: Sequence[str],
        status: str,
        fulfillment_status: str,
        log_line: Optional[str] = None,
        delivered_at: Optional[datetime] = None,
    ) -> Optional[Order]: ...
    def mark_order_refunded(self, order_id: UUID) -> Optional[Order]: ...
    def claim_commission_settlement(self, order_id: UUID) -> bool: ...
    def release_commission_claim(self, order_id: UUID) -> None: ...

    # -------- referral partners --------
    def insert_partner(self, partner: ReferralPartner) -> ReferralPartner: ...
    def get_partner(self, partner_id: UUID) -> Optional[ReferralPartner]: ...
    def get_partner_by_code(self, referral_code: str) -> Optional[ReferralPartner]: ...
    def list_partners(
        self, *, statuses: Optional[Sequence[str]] = None, min_pending_cents: Optional[int] = None
    ) -> list[ReferralPartner]: ...
    def update_partner_profile(self, partner_id: UUID, fields: dict[str, Any]) -> Optional[ReferralPartner]: ...
    def credit_partner(
        self, partner_id: UUID, *, revenue_cents: int, commission_cents: int
    ) -> Optional[ReferralPartner]: ...
    def debit_partner(
        self, partner_id: UUID, *, amount_cents: int, record: PayoutRecord
    ) -> Optional[ReferralPartner]: ...
    def adjust_pending_commission(
        self, partner_id: UUID, *, delta_cents: int, adjustment_id: UUID, adjusted_by: str, note: str, at: datetime
    ) -> Optional[CommissionAdjustment]: ...
    def list_commission_adjustments(self, partner_id: UUID) -> list[CommissionAdjustment]: ...
    def referral_order_totals(self, partner_id: UUID, *, since: datetime) -> tuple[int, int]: ...

    # -------- referral applications --------
    def insert_referral_application(self, application: ReferralApplication) -> ReferralApplication: ...
    def get_referral_application(self, application_id: UUID) -> Optional[ReferralApplication]: ...
    def find_active_application(
        self, *, email: str, contact_handle: str, buyer_identifier: str
    ) -> Optional[ReferralApplication]: ...
    def list_referral_applications(
        self, *, statuses: Optional[Sequence[str]] = None, limit: int = 200
    ) -> list[ReferralApplication]: ...
    def review_referral_application(
        self,
        application_id: UUID,
        *,
        from_statuses: Sequence[str],
        to_status: str,
        reviewed_by: Optional[str],
        review_reason: str,
        reviewed_at: Optional[datetime],
    ) -> Optional[ReferralApplication]: ...
    def link_application_partner(self, application_id: UUID, partner_id: UUID) -> Optional[ReferralApplication]: ...

    # -------- payout requests --------
    def insert_payout_request(self, request: PayoutRequest) -> PayoutRequest: ...
    def get_payout_request(self, request_id: UUID) -> Optional[PayoutRequest]: ...
    def find_open_payout_request(self, partner_id: UUID) -> Optional[PayoutRequest]: ...
    def latest_payout_request(self, partner_id: UUID) -> Optional[PayoutRequest]: ...
    def list_payout_requests(self, *, statuses: Sequence[str], limit: int = 300) -> list[PayoutRequest]: ...
    def transition_payout_request(
        self,
        request_id: UUID,
        *,
        from_statuses: Sequence[str],
        to_status: str,
        processed_by: str,
        processed_at: Optional[datetime] = None,
        rejection_reason: Optional[str] = None,
    ) -> Optional[PayoutRequest]: ...
    def complete_payout_request(
        self,
        request_id: UUID,
        *,
        from_statuses: Sequence[str],
        transaction_reference: str,
        processed_by: str,
        processed_at: datetime,
        record: PayoutRecord,
    ) -> tuple[PayoutRequest, ReferralPartner]: ...
    def list_payout_records(self, *, partner_id: Optional[UUID] = None, limit: int = 200) -> list[PayoutRecord]: ...

    # -------- fraud log --------
    def insert_fraud_log(self, entry: FraudLogEntry) -> None: ...
    def count_fraud_logs(
        self,
        *,
        referral_code: str,
        type: str,
        ip: Optional[str] = None,
        email: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> int: ...
    def list_fraud_logs(
        self, *, referral_code: Optional[str] = None, types: Optional[Sequence[str]] = None, limit: int = 200
    ) -> list[FraudLogEntry]: ...
    def purge_fraud_logs(self, *, before: datetime) -> int: ...

    # -------- audit + settings --------
    def insert_audit_event(
        self, *, actor: str, action: str, target_id: Optional[str], metadata: dict[str, Any]
    ) -> None: ...
    def get_settings(self) -> AppSettings: ...
    def update_settings(self, *, global_payout_threshold_cents: int) -> AppSettings: ...


def percent(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))

# app/store/memory.py
"""
Process-local Store.

Every public method runs under a single lock, which gives the same
single-record atomicity the Postgres store gets from one guarded UPDATE.
Used by the test suite and for local runs with STORE_BACKEND=memory.
"""
from __future__ import annotations

import copy
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence
from uuid import UUID

from app.catalog.model import Product
from app.orders import model as om
from app.orders.model import Order
from app.payouts import model as pm
from app.payouts.model import PayoutRecord, PayoutRequest
from app.referrals import model as rm
from app.referrals.model import (
    FRAUD_LOG_RETENTION,
    CommissionAdjustment,
    FraudLogEntry,
    ReferralApplication,
    ReferralPartner,
)
from app.store.base import AppSettings, DuplicateRecord, GuardFailed


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryStore:
    def __init__(self, *, default_payout_threshold_cents: int = 30000):
        self._lock = threading.RLock()
        self._products: dict[UUID, Product] = {}
        self._orders: dict[UUID, Order] = {}
        self._partners: dict[UUID, ReferralPartner] = {}
        self._requests: dict[UUID, PayoutRequest] = {}
        self._records: list[PayoutRecord] = []
        self._adjustments: list[CommissionAdjustment] = []
        self._fraud: list[FraudLogEntry] = []
        self._applications: dict[UUID, ReferralApplication] = {}
        self.audit_events: list[dict[str, Any]] = []
        self._settings = AppSettings(global_payout_threshold_cents=default_payout_threshold_cents)

    def ping(self) -> None:
        return None

    # -------- catalog --------

    def insert_product(self, product: Product) -> Product:
        with self._lock:
            if product.id in self._products:
                raise DuplicateRecord(f"product {product.id}")
            self._products[product.id] = product
            return product

    def get_products(self, product_ids: Iterable[UUID]) -> list[Product]:
        with self._lock:
            out = []
            for pid in product_ids:
                p = self._products.get(pid)
                if p is not None and p.is_active:
                    out.append(p)
            return out

    def increment_product_sales(self, product_id: UUID, *, quantity: int, revenue_cents: int) -> None:
        with self._lock:
            p = self._products.get(product_id)
            if p is None:
                return
            self._products[product_id] = replace(
                p,
                total_sold=p.total_sold + quantity,
                total_revenue_cents=p.total_revenue_cents + revenue_cents,
            )

    # -------- orders --------

    def insert_order(self, order: Order) -> Order:
        with self._lock:
            for existing in self._orders.values():
                if order.gateway_order_id and existing.gateway_order_id == order.gateway_order_id:
                    raise DuplicateRecord("gateway_order_id")
                if order.gateway_payment_id and existing.gateway_payment_id == order.gateway_payment_id:
                    raise DuplicateRecord("gateway_payment_id")
            self._orders[order.id] = order
            return order

    def get_order(self, order_id: UUID) -> Optional[Order]:
        with self._lock:
            return self._orders.get(order_id)

    def get_order_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Order]:
        with self._lock:
            for o in self._orders.values():
                if o.gateway_order_id == gateway_order_id:
                    return o
            return None

    def get_order_by_gateway_payment_id(self, gateway_payment_id: str) -> Optional[Order]:
        with self._lock:
            for o in self._orders.values():
                if o.gateway_payment_id == gateway_payment_id:
                    return o
            return None

    def mark_order_paid(
        self, gateway_order_id: str, *, gateway_payment_id: str, paid_at: datetime
    ) -> Optional[Order]:
        with self._lock:
            order = self.get_order_by_gateway_order_id(gateway_order_id)
            if order is None:
                return None
            if order.payment_status == om.PAYMENT_PAID or order.status not in (om.CREATED, om.PENDING):
                return None
            owner = self.get_order_by_gateway_payment_id(gateway_payment_id)
            if owner is not None and owner.id != order.id:
                raise DuplicateRecord("gateway_payment_id")
            updated = replace(
                order,
                status=om.PAID,
                payment_status=om.PAYMENT_PAID,
                webhook_verified=True,
                fulfillment_status=om.FULFILLMENT_PENDING,
                gateway_payment_id=gateway_payment_id,
                paid_at=paid_at,
                updated_at=_utcnow(),
            )
            self._orders[order.id] = updated
            return updated

    def mark_order_webhook_verified(self, order_id: UUID) -> None:
        with self._lock:
            order = self._orders.get(order_id)
            if order is not None:
                self._orders[order_id] = replace(order, webhook_verified=True, updated_at=_utcnow())

    def update_order_fulfillment(
        self,
        order_id: UUID,
        *,
        from_statuses: Sequence[str],
        status: str,
        fulfillment_status: str,
        log_line: Optional[str] = None,
        delivered_at: Optional[datetime] = None,
    ) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.status not in from_statuses:
                return None
            log = order.fulfillment_log + ((log_line,) if log_line else ())
            updated = replace(
                order,
                status=status,
                fulfillment_status=fulfillment_status,
                fulfillment_log=log,
                delivered_at=delivered_at or order.delivered_at,
                updated_at=_utcnow(),
            )
            self._orders[order_id] = updated
            return updated

    def mark_order_refunded(self, order_id: UUID) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.status == om.REFUNDED:
                return None
            updated = replace(order, status=om.REFUNDED, updated_at=_utcnow())
            self._orders[order_id] = updated
            return updated

    def claim_commission_settlement(self, order_id: UUID) -> bool:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return False
            eligible = (
                order.referral_code is not None
                and not order.commission_settled
                and order.payment_status == om.PAYMENT_PAID
                and order.webhook_verified
                and order.status not in (om.REFUNDED, om.FAILED)
            )
            if not eligible:
                return False
            self._orders[order_id] = replace(order, commission_settled=True, updated_at=_utcnow())
            return True

    def release_commission_claim(self, order_id: UUID) -> None:
        with self._lock:
            order = self._orders.get(order_id)
            if order is not None and order.commission_settled:
                self._orders[order_id] = replace(order, commission_settled=False, updated_at=_utcnow())

    # -------- referral partners --------

    def insert_partner(self, partner: ReferralPartner) -> ReferralPartner:
        with self._lock:
            for existing in self._partners.values():
                if existing.referral_code == partner.referral_code:
                    raise DuplicateRecord("referral_code")
            self._partners[partner.id] = partner
            return partner

    def get_partner(self, partner_id: UUID) -> Optional[ReferralPartner]:
        with self._lock:
            return self._partners.get(partner_id)

    def get_partner_by_code(self, referral_code: str) -> Optional[ReferralPartner]:
        with self._lock:
            for p in self._partners.values():
                if p.referral_code == referral_code:
                    return p
            return None

    def list_partners(
        self, *, statuses: Optional[Sequence[str]] = None, min_pending_cents: Optional[int] = None
    ) -> list[ReferralPartner]:
        with self._lock:
            items = list(self._partners.values())
        if statuses is not None:
            items = [p for p in items if p.status in statuses]
        if min_pending_cents is not None:
            items = [p for p in items if p.pending_commission_cents >= min_pending_cents]
            return sorted(items, key=lambda p: p.pending_commission_cents, reverse=True)
        return sorted(items, key=lambda p: p.created_at, reverse=True)

    def update_partner_profile(self, partner_id: UUID, fields: dict[str, Any]) -> Optional[ReferralPartner]:
        with self._lock:
            partner = self._partners.get(partner_id)
            if partner is None:
                return None
            updated = replace(partner, updated_at=_utcnow(), **fields)
            self._partners[partner_id] = updated
            return updated

    def credit_partner(
        self, partner_id: UUID, *, revenue_cents: int, commission_cents: int
    ) -> Optional[ReferralPartner]:
        with self._lock:
            partner = self._partners.get(partner_id)
            if partner is None:
                return None
            if partner.max_uses is not None and partner.total_uses >= partner.max_uses:
                return None
            updated = replace(
                partner,
                total_uses=partner.total_uses + 1,
                total_revenue_cents=partner.total_revenue_cents + revenue_cents,
                total_commission_cents=partner.total_commission_cents + commission_cents,
                pending_commission_cents=partner.pending_commission_cents + commission_cents,
                updated_at=_utcnow(),
            )
            self._partners[partner_id] = updated
            return updated

    def _debit_locked(self, partner_id: UUID, amount_cents: int) -> Optional[ReferralPartner]:
        partner = self._partners.get(partner_id)
        if partner is None or partner.pending_commission_cents < amount_cents:
            return None
        updated = replace(
            partner,
            pending_commission_cents=partner.pending_commission_cents - amount_cents,
            total_paid_out_cents=partner.total_paid_out_cents + amount_cents,
            updated_at=_utcnow(),
        )
        self._partners[partner_id] = updated
        return updated

    def debit_partner(
        self, partner_id: UUID, *, amount_cents: int, record: PayoutRecord
    ) -> Optional[ReferralPartner]:
        with self._lock:
            updated = self._debit_locked(partner_id, amount_cents)
            if updated is not None:
                self._records.append(record)
            return updated

    def adjust_pending_commission(
        self, partner_id: UUID, *, delta_cents: int, adjustment_id: UUID, adjusted_by: str, note: str, at: datetime
    ) -> Optional[CommissionAdjustment]:
        with self._lock:
            partner = self._partners.get(partner_id)
            if partner is None:
                return None
            previous = partner.pending_commission_cents
            if previous + delta_cents < 0:
                return None
            self._partners[partner_id] = replace(
                partner, pending_commission_cents=previous + delta_cents, updated_at=at
            )
            adj = CommissionAdjustment(
                id=adjustment_id,
                partner_id=partner_id,
                amount_cents=delta_cents,
                previous_balance_cents=previous,
                new_balance_cents=previous + delta_cents,
                adjusted_by=adjusted_by,
                created_at=at,
                note=note,
            )
            self._adjustments.append(adj)
            return adj

    def referral_order_totals(self, partner_id: UUID, *, since: datetime) -> tuple[int, int]:
        with self._lock:
            hits = [
                o
                for o in self._orders.values()
                if o.referral_partner_id == partner_id
                and o.payment_status == om.PAYMENT_PAID
                and o.status not in (om.REFUNDED, om.FAILED)
                and o.paid_at is not None
                and o.paid_at >= since
            ]
            return len(hits), sum(o.total_cents for o in hits)

    # -------- referral applications --------

    def _email_taken_locked(self, email: str, *, exclude: Optional[UUID] = None) -> bool:
        # mirrors the partial unique index on lower(email) for pending/approved
        return any(
            a.id != exclude
            and a.email.lower() == email.lower()
            and a.status in (rm.APPLICATION_PENDING, rm.APPLICATION_APPROVED)
            for a in self._applications.values()
        )

    def insert_referral_application(self, application: ReferralApplication) -> ReferralApplication:
        with self._lock:
            if application.id in self._applications:
                raise DuplicateRecord(f"application {application.id}")
            if application.status != rm.APPLICATION_REJECTED and self._email_taken_locked(application.email):
                raise DuplicateRecord("referral application email")
            self._applications[application.id] = application
            return application

    def get_referral_application(self, application_id: UUID) -> Optional[ReferralApplication]:
        with self._lock:
            return self._applications.get(application_id)

    def find_active_application(
        self, *, email: str, contact_handle: str, buyer_identifier: str
    ) -> Optional[ReferralApplication]:
        with self._lock:
            for a in sorted(self._applications.values(), key=lambda a: a.created_at, reverse=True):
                if a.status not in (rm.APPLICATION_PENDING, rm.APPLICATION_APPROVED):
                    continue
                if (
                    a.email.lower() == email.lower()
                    or a.contact_handle == contact_handle
                    or a.buyer_identifier.lower() == buyer_identifier.lower()
                ):
                    return a
            return None

    def list_referral_applications(
        self, *, statuses: Optional[Sequence[str]] = None, limit: int = 200
    ) -> list[ReferralApplication]:
        with self._lock:
            items = [a for a in self._applications.values() if statuses is None or a.status in statuses]
        items.sort(key=lambda a: a.created_at, reverse=True)
        return items[:limit]

    def review_referral_application(
        self,
        application_id: UUID,
        *,
        from_statuses: Sequence[str],
        to_status: str,
        reviewed_by: Optional[str],
        review_reason: str,
        reviewed_at: Optional[datetime],
    ) -> Optional[ReferralApplication]:
        with self._lock:
            a = self._applications.get(application_id)
            if a is None or a.status not in from_statuses:
                return None
            if to_status != rm.APPLICATION_REJECTED and self._email_taken_locked(a.email, exclude=a.id):
                raise DuplicateRecord("referral application email")
            updated = replace(
                a,
                status=to_status,
                reviewed_by=reviewed_by,
                review_reason=review_reason,
                reviewed_at=reviewed_at,
                updated_at=_utcnow(),
            )
            self._applications[application_id] = updated
            return updated

    def link_application_partner(self, application_id: UUID, partner_id: UUID) -> Optional[ReferralApplication]:
        with self._lock:
            a = self._applications.get(application_id)
            if a is None:
                return None
            updated = replace(a, partner_id=partner_id, updated_at=_utcnow())
            self._applications[application_id] = updated
            return updated

    # -------- payout requests --------

    def _copy_request(self, req: Optional[PayoutRequest]) -> Optional[PayoutRequest]:
        if req is None:
            return None
        return replace(req, details=copy.deepcopy(req.details))

    def insert_payout_request(self, request: PayoutRequest) -> PayoutRequest:
        with self._lock:
            # mirrors the partial unique index on (partner_id) where status is open
            if request.status in pm.OPEN_STATUSES and any(
                r.partner_id == request.partner_id and r.status in pm.OPEN_STATUSES
                for r in self._requests.values()
            ):
                raise DuplicateRecord("open payout request")
            self._requests[request.id] = self._copy_request(request)
            return self._copy_request(request)

    def get_payout_request(self, request_id: UUID) -> Optional[PayoutRequest]:
        with self._lock:
            return self._copy_request(self._requests.get(request_id))

    def find_open_payout_request(self, partner_id: UUID) -> Optional[PayoutRequest]:
        with self._lock:
            for r in self._requests.values():
                if r.partner_id == partner_id and r.status in pm.OPEN_STATUSES:
                    return self._copy_request(r)
            return None

    def latest_payout_request(self, partner_id: UUID) -> Optional[PayoutRequest]:
        with self._lock:
            mine = [r for r in self._requests.values() if r.partner_id == partner_id]
            if not mine:
                return None
            return self._copy_request(max(mine, key=lambda r: r.requested_at))

    def list_payout_requests(self, *, statuses: Sequence[str], limit: int = 300) -> list[PayoutRequest]:
        with self._lock:
            items = [r for r in self._requests.values() if r.status in statuses]
            items.sort(key=lambda r: r.requested_at, reverse=True)
            return [self._copy_request(r) for r in items[:limit]]

    def transition_payout_request(
        self,
        request_id: UUID,
        *,
        from_statuses: Sequence[str],
        to_status: str,
        processed_by: str,
        processed_at: Optional[datetime] = None,
        rejection_reason: Optional[str] = None,
    ) -> Optional[PayoutRequest]:
        with self._lock:
            req = self._requests.get(request_id)
            if req is None or req.status not in from_statuses:
                return None
            updated = replace(
                req,
                status=to_status,
                processed_by=processed_by,
                processed_at=processed_at or req.processed_at,
                rejection_reason=rejection_reason if rejection_reason is not None else req.rejection_reason,
            )
            self._requests[request_id] = updated
            return self._copy_request(updated)

    def complete_payout_request(
        self,
        request_id: UUID,
        *,
        from_statuses: Sequence[str],
        transaction_reference: str,
        processed_by: str,
        processed_at: datetime,
        record: PayoutRecord,
    ) -> tuple[PayoutRequest, ReferralPartner]:
        with self._lock:
            req = self._requests.get(request_id)
            if req is None or req.status not in from_statuses:
                raise GuardFailed("STATUS_CHANGED")
            partner = self._debit_locked(req.partner_id, req.amount_cents)
            if partner is None:
                raise GuardFailed("BALANCE_CHANGED")
            updated = replace(
                req,
                status=pm.COMPLETED,
                transaction_reference=transaction_reference,
                processed_by=processed_by,
                processed_at=processed_at,
            )
            self._requests[request_id] = updated
            self._records.append(record)
            return self._copy_request(updated), partner

    def list_payout_records(self, *, partner_id: Optional[UUID] = None, limit: int = 200) -> list[PayoutRecord]:
        with self._lock:
            items = [r for r in self._records if partner_id is None or r.partner_id == partner_id]
        items.sort(key=lambda r: r.created_at, reverse=True)
        return items[:limit]

    def list_commission_adjustments(self, partner_id: UUID) -> list[CommissionAdjustment]:
        with self._lock:
            return [a for a in self._adjustments if a.partner_id == partner_id]

    # -------- fraud log --------

    def _live_fraud(self) -> list[FraudLogEntry]:
        cutoff = _utcnow() - FRAUD_LOG_RETENTION
        return [e for e in self._fraud if e.created_at >= cutoff]

    def insert_fraud_log(self, entry: FraudLogEntry) -> None:
        with self._lock:
            self._fraud.append(entry)

    def count_fraud_logs(
        self,
        *,
        referral_code: str,
        type: str,
        ip: Optional[str] = None,
        email: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> int:
        with self._lock:
            n = 0
            for e in self._live_fraud():
                if e.referral_code != referral_code or e.type != type:
                    continue
                if ip is not None and e.ip != ip:
                    continue
                if email is not None and e.email != email:
                    continue
                if since is not None and e.created_at < since:
                    continue
                n += 1
            return n

    def list_fraud_logs(
        self, *, referral_code: Optional[str] = None, types: Optional[Sequence[str]] = None, limit: int = 200
    ) -> list[FraudLogEntry]:
        with self._lock:
            items = [
                e
                for e in self._live_fraud()
                if (referral_code is None or e.referral_code == referral_code)
                and (types is None or e.type in types)
            ]
        items.sort(key=lambda e: e.created_at, reverse=True)
        return items[:limit]

    def purge_fraud_logs(self, *, before: datetime) -> int:
        with self._lock:
            kept = [e for e in self._fraud if e.created_at >= before]
            purged = len(self._fraud) - len(kept)
            self._fraud = kept
            return purged

    # -------- audit + settings --------

    def insert_audit_event(
        self, *, actor: str, action: str, target_id: Optional[str], metadata: dict[str, Any]
    ) -> None:
        with self._lock:
            self.audit_events.append(
                {
                    "actor": actor,
                    "action": action,
                    "target_id": target_id,
                    "metadata": copy.deepcopy(metadata),
                    "created_at": _utcnow(),
                }
            )

    def get_settings(self) -> AppSettings:
        with self._lock:
            return self._settings

    def update_settings(self, *, global_payout_threshold_cents: int) -> AppSettings:
        with self._lock:
            self._settings = AppSettings(
                global_payout_threshold_cents=global_payout_threshold_cents,
                updated_at=_utcnow(),
            )
            return self._settings

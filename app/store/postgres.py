# app/store/postgres.py
from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Sequence
from uuid import UUID

import psycopg2
from psycopg2.extras import Json, RealDictCursor

from app.catalog.model import Product
from app.orders.model import Order, OrderItem
from app.payouts.model import COMPLETED, PayoutRecord, PayoutRequest
from app.referrals.model import (
    FRAUD_LOG_RETENTION,
    CommissionAdjustment,
    FraudLogEntry,
    ReferralApplication,
    ReferralPartner,
)
from app.store.base import AppSettings, DuplicateRecord, GuardFailed
from db import get_conn


_ORDER_COLS = """
  id, buyer_id, email, items, subtotal_cents, discount_cents, total_cents, currency,
  gateway_order_id, gateway_payment_id, referral_code, referral_partner_id,
  commission_percent, commission_settled, status, payment_status, fulfillment_status,
  fulfillment_log, webhook_verified, created_at, updated_at, paid_at, delivered_at
"""

_PARTNER_COLS = """
  id, creator_name, referral_code, buyer_identifier, email, discount_percent,
  commission_percent, total_uses, total_revenue_cents, total_commission_cents,
  pending_commission_cents, total_paid_out_cents, payout_threshold_cents,
  max_uses, expires_at, status, created_at, updated_at, application_id
"""

_APPLICATION_COLS = """
  id, creator_name, email, buyer_identifier, contact_handle, channel_link, description,
  status, review_reason, reviewed_by, reviewed_at, partner_id, created_at, updated_at
"""

_REQUEST_COLS = """
  id, partner_id, amount_cents, creator_name, referral_code, real_name, method,
  details, status, transaction_reference, rejection_reason, processed_by,
  requested_at, processed_at
"""

# columns an admin may change on a partner; counters are never in here
_PARTNER_PROFILE_FIELDS = {
    "status",
    "discount_percent",
    "commission_percent",
    "max_uses",
    "expires_at",
    "email",
    "buyer_identifier",
}


def _items_to_json(items: Iterable[OrderItem]) -> list[dict[str, Any]]:
    return [
        {
            "product_id": str(i.product_id),
            "title": i.title,
            "unit_price_cents": i.unit_price_cents,
            "quantity": i.quantity,
            "instructions": list(i.instructions),
        }
        for i in items
    ]


def _order_from_row(row: dict) -> Order:
    items = tuple(
        OrderItem(
            product_id=UUID(str(i["product_id"])),
            title=i.get("title") or "",
            unit_price_cents=int(i["unit_price_cents"]),
            quantity=int(i["quantity"]),
            instructions=tuple(i.get("instructions") or ()),
        )
        for i in (row["items"] or [])
    )
    return Order(
        id=row["id"],
        buyer_id=row["buyer_id"],
        email=row["email"] or "",
        items=items,
        subtotal_cents=int(row["subtotal_cents"]),
        discount_cents=int(row["discount_cents"]),
        total_cents=int(row["total_cents"]),
        currency=row["currency"],
        gateway_order_id=row["gateway_order_id"],
        gateway_payment_id=row["gateway_payment_id"],
        referral_code=row["referral_code"],
        referral_partner_id=row["referral_partner_id"],
        commission_percent=row["commission_percent"],
        commission_settled=bool(row["commission_settled"]),
        status=row["status"],
        payment_status=row["payment_status"],
        fulfillment_status=row["fulfillment_status"],
        fulfillment_log=tuple(row["fulfillment_log"] or ()),
        webhook_verified=bool(row["webhook_verified"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        paid_at=row["paid_at"],
        delivered_at=row["delivered_at"],
    )


def _partner_from_row(row: dict) -> ReferralPartner:
    return ReferralPartner(**{k: row[k] for k in row.keys()})


def _request_from_row(row: dict) -> PayoutRequest:
    data = dict(row)
    data["details"] = dict(data.get("details") or {})
    data["transaction_reference"] = data.get("transaction_reference") or ""
    data["rejection_reason"] = data.get("rejection_reason") or ""
    return PayoutRequest(**data)


def _record_params(record: PayoutRecord) -> tuple:
    return (
        record.id,
        record.partner_id,
        record.amount_cents,
        record.creator_name,
        record.referral_code,
        record.method,
        record.transaction_reference,
        record.payout_request_id,
        record.processed_by,
        record.note,
        record.created_at,
    )


_INSERT_RECORD_SQL = """
    INSERT INTO app.payout_records (
      id, partner_id, amount_cents, creator_name, referral_code, method,
      transaction_reference, payout_request_id, processed_by, note, created_at
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
"""


class PostgresStore:
    """
    Store backed by the `app` schema. Every guarded mutation is one
    UPDATE ... WHERE <guard>; `rowcount == 1` decides.
    """

    def __init__(self, conn_factory: Callable[[], AbstractContextManager] = get_conn):
        self._conn = conn_factory

    def _fetchone(self, sql: str, params: tuple) -> Optional[dict]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
                return dict(row) if row else None

    def _fetchall(self, sql: str, params: tuple) -> list[dict]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, params)
                return [dict(r) for r in cur.fetchall()]

    def ping(self) -> None:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()

    # ==========================================================
    # Catalog
    # ==========================================================

    def insert_product(self, product: Product) -> Product:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO app.products (id, title, price_cents, is_active, instructions)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    (product.id, product.title, product.price_cents, product.is_active, Json(list(product.instructions))),
                )
        return product

    def get_products(self, product_ids: Iterable[UUID]) -> list[Product]:
        ids = [str(pid) for pid in product_ids]
        if not ids:
            return []
        rows = self._fetchall(
            """
            SELECT id, title, price_cents, is_active, instructions, total_sold, total_revenue_cents
            FROM app.products
            WHERE id = ANY(%s::uuid[])
              AND is_active
            """,
            (ids,),
        )
        return [
            Product(
                id=r["id"],
                title=r["title"],
                price_cents=int(r["price_cents"]),
                is_active=bool(r["is_active"]),
                instructions=tuple(r["instructions"] or ()),
                total_sold=int(r["total_sold"]),
                total_revenue_cents=int(r["total_revenue_cents"]),
            )
            for r in rows
        ]

    def increment_product_sales(self, product_id: UUID, *, quantity: int, revenue_cents: int) -> None:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE app.products
                    SET total_sold = total_sold + %s,
                        total_revenue_cents = total_revenue_cents + %s,
                        updated_at = now()
                    WHERE id = %s
                    """,
                    (quantity, revenue_cents, product_id),
                )

    # ==========================================================
    # Orders
    # ==========================================================

    def insert_order(self, order: Order) -> Order:
        try:
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO app.orders (
                          id, buyer_id, email, items, subtotal_cents, discount_cents, total_cents,
                          currency, gateway_order_id, gateway_payment_id, referral_code,
                          referral_partner_id, commission_percent, commission_settled, status,
                          payment_status, fulfillment_status, fulfillment_log, webhook_verified,
                          created_at, updated_at
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        """,
                        (
                            order.id,
                            order.buyer_id,
                            order.email,
                            Json(_items_to_json(order.items)),
                            order.subtotal_cents,
                            order.discount_cents,
                            order.total_cents,
                            order.currency,
                            order.gateway_order_id,
                            order.gateway_payment_id,
                            order.referral_code,
                            order.referral_partner_id,
                            order.commission_percent,
                            order.commission_settled,
                            order.status,
                            order.payment_status,
                            order.fulfillment_status,
                            Json(list(order.fulfillment_log)),
                            order.webhook_verified,
                            order.created_at,
                            order.updated_at,
                        ),
                    )
        except psycopg2.errors.UniqueViolation as exc:
            raise DuplicateRecord(str(exc)) from exc
        return order

    def _get_order_where(self, where_sql: str, value: Any) -> Optional[Order]:
        row = self._fetchone(f"SELECT {_ORDER_COLS} FROM app.orders WHERE {where_sql} LIMIT 1", (value,))
        return _order_from_row(row) if row else None

    def get_order(self, order_id: UUID) -> Optional[Order]:
        return self._get_order_where("id = %s", order_id)

    def get_order_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Order]:
        return self._get_order_where("gateway_order_id = %s", gateway_order_id)

    def get_order_by_gateway_payment_id(self, gateway_payment_id: str) -> Optional[Order]:
        return self._get_order_where("gateway_payment_id = %s", gateway_payment_id)

    def mark_order_paid(
        self, gateway_order_id: str, *, gateway_payment_id: str, paid_at: datetime
    ) -> Optional[Order]:
        try:
            row = self._fetchone(
                f"""
                UPDATE app.orders
                SET status = 'paid',
                    payment_status = 'paid',
                    webhook_verified = TRUE,
                    fulfillment_status = 'pending',
                    gateway_payment_id = %s,
                    paid_at = %s,
                    updated_at = now()
                WHERE gateway_order_id = %s
                  AND payment_status <> 'paid'
                  AND status IN ('created', 'pending')
                RETURNING {_ORDER_COLS}
                """,
                (gateway_payment_id, paid_at, gateway_order_id),
            )
        except psycopg2.errors.UniqueViolation as exc:
            raise DuplicateRecord("gateway_payment_id") from exc
        return _order_from_row(row) if row else None

    def mark_order_webhook_verified(self, order_id: UUID) -> None:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE app.orders SET webhook_verified = TRUE, updated_at = now() WHERE id = %s",
                    (order_id,),
                )

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
        row = self._fetchone(
            f"""
            UPDATE app.orders
            SET status = %s,
                fulfillment_status = %s,
                fulfillment_log = CASE
                  WHEN %s::text IS NULL THEN fulfillment_log
                  ELSE COALESCE(fulfillment_log, '[]'::jsonb) || to_jsonb(%s::text)
                END,
                delivered_at = COALESCE(%s, delivered_at),
                updated_at = now()
            WHERE id = %s
              AND status = ANY(%s)
            RETURNING {_ORDER_COLS}
            """,
            (status, fulfillment_status, log_line, log_line, delivered_at, order_id, list(from_statuses)),
        )
        return _order_from_row(row) if row else None

    def mark_order_refunded(self, order_id: UUID) -> Optional[Order]:
        row = self._fetchone(
            f"""
            UPDATE app.orders
            SET status = 'refunded', updated_at = now()
            WHERE id = %s
              AND status <> 'refunded'
            RETURNING {_ORDER_COLS}
            """,
            (order_id,),
        )
        return _order_from_row(row) if row else None

    def claim_commission_settlement(self, order_id: UUID) -> bool:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE app.orders
                    SET commission_settled = TRUE, updated_at = now()
                    WHERE id = %s
                      AND referral_code IS NOT NULL
                      AND commission_settled = FALSE
                      AND payment_status = 'paid'
                      AND webhook_verified = TRUE
                      AND status NOT IN ('refunded', 'failed')
                    """,
                    (order_id,),
                )
                return cur.rowcount == 1

    def release_commission_claim(self, order_id: UUID) -> None:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE app.orders
                    SET commission_settled = FALSE, updated_at = now()
                    WHERE id = %s
                      AND commission_settled = TRUE
                    """,
                    (order_id,),
                )

    # ==========================================================
    # Referral partners
    # ==========================================================

    def insert_partner(self, partner: ReferralPartner) -> ReferralPartner:
        try:
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        INSERT INTO app.referral_partners ({_PARTNER_COLS})
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        """,
                        (
                            partner.id,
                            partner.creator_name,
                            partner.referral_code,
                            partner.buyer_identifier,
                            partner.email,
                            partner.discount_percent,
                            partner.commission_percent,
                            partner.total_uses,
                            partner.total_revenue_cents,
                            partner.total_commission_cents,
                            partner.pending_commission_cents,
                            partner.total_paid_out_cents,
                            partner.payout_threshold_cents,
                            partner.max_uses,
                            partner.expires_at,
                            partner.status,
                            partner.created_at,
                            partner.updated_at,
                            partner.application_id,
                        ),
                    )
        except psycopg2.errors.UniqueViolation as exc:
            raise DuplicateRecord("referral_code") from exc
        return partner

    def get_partner(self, partner_id: UUID) -> Optional[ReferralPartner]:
        row = self._fetchone(f"SELECT {_PARTNER_COLS} FROM app.referral_partners WHERE id = %s", (partner_id,))
        return _partner_from_row(row) if row else None

    def get_partner_by_code(self, referral_code: str) -> Optional[ReferralPartner]:
        row = self._fetchone(
            f"SELECT {_PARTNER_COLS} FROM app.referral_partners WHERE referral_code = %s",
            (referral_code,),
        )
        return _partner_from_row(row) if row else None

    def list_partners(
        self, *, statuses: Optional[Sequence[str]] = None, min_pending_cents: Optional[int] = None
    ) -> list[ReferralPartner]:
        where = []
        params: list[Any] = []
        if statuses is not None:
            where.append("status = ANY(%s)")
            params.append(list(statuses))
        if min_pending_cents is not None:
            where.append("pending_commission_cents >= %s")
            params.append(min_pending_cents)
        where_sql = ("WHERE " + " AND ".join(where)) if where else ""
        order_sql = "pending_commission_cents DESC" if min_pending_cents is not None else "created_at DESC"
        rows = self._fetchall(
            f"SELECT {_PARTNER_COLS} FROM app.referral_partners {where_sql} ORDER BY {order_sql}",
            tuple(params),
        )
        return [_partner_from_row(r) for r in rows]

    def update_partner_profile(self, partner_id: UUID, fields: dict[str, Any]) -> Optional[ReferralPartner]:
        unknown = set(fields) - _PARTNER_PROFILE_FIELDS
        if unknown:
            raise ValueError(f"not updatable: {sorted(unknown)}")
        if not fields:
            return self.get_partner(partner_id)
        names = sorted(fields)
        set_sql = ", ".join(f"{name} = %s" for name in names)
        row = self._fetchone(
            f"""
            UPDATE app.referral_partners
            SET {set_sql}, updated_at = now()
            WHERE id = %s
            RETURNING {_PARTNER_COLS}
            """,
            tuple(fields[name] for name in names) + (partner_id,),
        )
        return _partner_from_row(row) if row else None

    def credit_partner(
        self, partner_id: UUID, *, revenue_cents: int, commission_cents: int
    ) -> Optional[ReferralPartner]:
        row = self._fetchone(
            f"""
            UPDATE app.referral_partners
            SET total_uses = total_uses + 1,
                total_revenue_cents = total_revenue_cents + %s,
                total_commission_cents = total_commission_cents + %s,
                pending_commission_cents = pending_commission_cents + %s,
                updated_at = now()
            WHERE id = %s
              AND (max_uses IS NULL OR total_uses < max_uses)
            RETURNING {_PARTNER_COLS}
            """,
            (revenue_cents, commission_cents, commission_cents, partner_id),
        )
        return _partner_from_row(row) if row else None

    @staticmethod
    def _debit(cur, partner_id: UUID, amount_cents: int) -> Optional[dict]:
        cur.execute(
            f"""
            UPDATE app.referral_partners
            SET pending_commission_cents = pending_commission_cents - %s,
                total_paid_out_cents = total_paid_out_cents + %s,
                updated_at = now()
            WHERE id = %s
              AND pending_commission_cents >= %s
            RETURNING {_PARTNER_COLS}
            """,
            (amount_cents, amount_cents, partner_id, amount_cents),
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def debit_partner(
        self, partner_id: UUID, *, amount_cents: int, record: PayoutRecord
    ) -> Optional[ReferralPartner]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                row = self._debit(cur, partner_id, amount_cents)
                if row is None:
                    return None
                cur.execute(_INSERT_RECORD_SQL, _record_params(record))
        return _partner_from_row(row)

    def adjust_pending_commission(
        self, partner_id: UUID, *, delta_cents: int, adjustment_id: UUID, adjusted_by: str, note: str, at: datetime
    ) -> Optional[CommissionAdjustment]:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE app.referral_partners
                    SET pending_commission_cents = pending_commission_cents + %s,
                        updated_at = %s
                    WHERE id = %s
                      AND pending_commission_cents + %s >= 0
                    RETURNING pending_commission_cents
                    """,
                    (delta_cents, at, partner_id, delta_cents),
                )
                row = cur.fetchone()
                if row is None:
                    return None
                new_balance = int(row[0])
                adj = CommissionAdjustment(
                    id=adjustment_id,
                    partner_id=partner_id,
                    amount_cents=delta_cents,
                    previous_balance_cents=new_balance - delta_cents,
                    new_balance_cents=new_balance,
                    adjusted_by=adjusted_by,
                    created_at=at,
                    note=note,
                )
                cur.execute(
                    """
                    INSERT INTO app.commission_adjustments (
                      id, partner_id, amount_cents, previous_balance_cents, new_balance_cents,
                      note, adjusted_by, created_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        adj.id,
                        adj.partner_id,
                        adj.amount_cents,
                        adj.previous_balance_cents,
                        adj.new_balance_cents,
                        adj.note,
                        adj.adjusted_by,
                        adj.created_at,
                    ),
                )
        return adj

    def list_commission_adjustments(self, partner_id: UUID) -> list[CommissionAdjustment]:
        rows = self._fetchall(
            """
            SELECT id, partner_id, amount_cents, previous_balance_cents, new_balance_cents,
                   adjusted_by, created_at, note
            FROM app.commission_adjustments
            WHERE partner_id = %s
            ORDER BY created_at DESC
            """,
            (partner_id,),
        )
        return [CommissionAdjustment(**r) for r in rows]

    def referral_order_totals(self, partner_id: UUID, *, since: datetime) -> tuple[int, int]:
        row = self._fetchone(
            """
            SELECT COUNT(*) AS uses, COALESCE(SUM(total_cents), 0) AS revenue_cents
            FROM app.orders
            WHERE referral_partner_id = %s
              AND payment_status = 'paid'
              AND status NOT IN ('refunded', 'failed')
              AND paid_at >= %s
            """,
            (partner_id, since),
        )
        if not row:
            return 0, 0
        return int(row["uses"]), int(row["revenue_cents"])

    # ==========================================================
    # Referral applications
    # ==========================================================

    def insert_referral_application(self, application: ReferralApplication) -> ReferralApplication:
        try:
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        INSERT INTO app.referral_applications ({_APPLICATION_COLS})
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        """,
                        (
                            application.id,
                            application.creator_name,
                            application.email,
                            application.buyer_identifier,
                            application.contact_handle,
                            application.channel_link,
                            application.description,
                            application.status,
                            application.review_reason,
                            application.reviewed_by,
                            application.reviewed_at,
                            application.partner_id,
                            application.created_at,
                            application.updated_at,
                        ),
                    )
        except psycopg2.errors.UniqueViolation as exc:
            raise DuplicateRecord("referral application email") from exc
        return application

    def get_referral_application(self, application_id: UUID) -> Optional[ReferralApplication]:
        row = self._fetchone(
            f"SELECT {_APPLICATION_COLS} FROM app.referral_applications WHERE id = %s",
            (application_id,),
        )
        return ReferralApplication(**row) if row else None

    def find_active_application(
        self, *, email: str, contact_handle: str, buyer_identifier: str
    ) -> Optional[ReferralApplication]:
        row = self._fetchone(
            f"""
            SELECT {_APPLICATION_COLS}
            FROM app.referral_applications
            WHERE status IN ('pending', 'approved')
              AND (lower(email) = lower(%s)
                   OR contact_handle = %s
                   OR lower(buyer_identifier) = lower(%s))
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (email, contact_handle, buyer_identifier),
        )
        return ReferralApplication(**row) if row else None

    def list_referral_applications(
        self, *, statuses: Optional[Sequence[str]] = None, limit: int = 200
    ) -> list[ReferralApplication]:
        where_sql = ""
        params: list[Any] = []
        if statuses is not None:
            where_sql = "WHERE status = ANY(%s)"
            params.append(list(statuses))
        params.append(limit)
        rows = self._fetchall(
            f"""
            SELECT {_APPLICATION_COLS}
            FROM app.referral_applications
            {where_sql}
            ORDER BY created_at DESC
            LIMIT %s
            """,
            tuple(params),
        )
        return [ReferralApplication(**r) for r in rows]

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
        try:
            row = self._fetchone(
                f"""
                UPDATE app.referral_applications
                SET status = %s,
                    reviewed_by = %s,
                    review_reason = %s,
                    reviewed_at = %s,
                    updated_at = now()
                WHERE id = %s
                  AND status = ANY(%s)
                RETURNING {_APPLICATION_COLS}
                """,
                (to_status, reviewed_by, review_reason, reviewed_at, application_id, list(from_statuses)),
            )
        except psycopg2.errors.UniqueViolation as exc:
            raise DuplicateRecord("referral application email") from exc
        return ReferralApplication(**row) if row else None

    def link_application_partner(self, application_id: UUID, partner_id: UUID) -> Optional[ReferralApplication]:
        row = self._fetchone(
            f"""
            UPDATE app.referral_applications
            SET partner_id = %s, updated_at = now()
            WHERE id = %s
            RETURNING {_APPLICATION_COLS}
            """,
            (partner_id, application_id),
        )
        return ReferralApplication(**row) if row else None

    # ==========================================================
    # Payout requests
    # ==========================================================

    def insert_payout_request(self, request: PayoutRequest) -> PayoutRequest:
        try:
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        INSERT INTO app.payout_requests ({_REQUEST_COLS})
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        """,
                        (
                            request.id,
                            request.partner_id,
                            request.amount_cents,
                            request.creator_name,
                            request.referral_code,
                            request.real_name,
                            request.method,
                            Json(request.details),
                            request.status,
                            request.transaction_reference,
                            request.rejection_reason,
                            request.processed_by,
                            request.requested_at,
                            request.processed_at,
                        ),
                    )
        except psycopg2.errors.UniqueViolation as exc:
            raise DuplicateRecord("open payout request") from exc
        return request

    def get_payout_request(self, request_id: UUID) -> Optional[PayoutRequest]:
        row = self._fetchone(f"SELECT {_REQUEST_COLS} FROM app.payout_requests WHERE id = %s", (request_id,))
        return _request_from_row(row) if row else None

    def find_open_payout_request(self, partner_id: UUID) -> Optional[PayoutRequest]:
        row = self._fetchone(
            f"""
            SELECT {_REQUEST_COLS}
            FROM app.payout_requests
            WHERE partner_id = %s
              AND status IN ('pending', 'processing')
            LIMIT 1
            """,
            (partner_id,),
        )
        return _request_from_row(row) if row else None

    def latest_payout_request(self, partner_id: UUID) -> Optional[PayoutRequest]:
        row = self._fetchone(
            f"""
            SELECT {_REQUEST_COLS}
            FROM app.payout_requests
            WHERE partner_id = %s
            ORDER BY requested_at DESC
            LIMIT 1
            """,
            (partner_id,),
        )
        return _request_from_row(row) if row else None

    def list_payout_requests(self, *, statuses: Sequence[str], limit: int = 300) -> list[PayoutRequest]:
        rows = self._fetchall(
            f"""
            SELECT {_REQUEST_COLS}
            FROM app.payout_requests
            WHERE status = ANY(%s)
            ORDER BY requested_at DESC
            LIMIT %s
            """,
            (list(statuses), limit),
        )
        return [_request_from_row(r) for r in rows]

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
        row = self._fetchone(
            f"""
            UPDATE app.payout_requests
            SET status = %s,
                processed_by = %s,
                processed_at = COALESCE(%s, processed_at),
                rejection_reason = COALESCE(%s, rejection_reason)
            WHERE id = %s
              AND status = ANY(%s)
            RETURNING {_REQUEST_COLS}
            """,
            (to_status, processed_by, processed_at, rejection_reason, request_id, list(from_statuses)),
        )
        return _request_from_row(row) if row else None

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
        # one transaction: any raise below rolls back the debit as well
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""
                    UPDATE app.payout_requests
                    SET status = %s,
                        transaction_reference = %s,
                        processed_by = %s,
                        processed_at = %s
                    WHERE id = %s
                      AND status = ANY(%s)
                    RETURNING {_REQUEST_COLS}
                    """,
                    (COMPLETED, transaction_reference, processed_by, processed_at, request_id, list(from_statuses)),
                )
                req_row = cur.fetchone()
                if req_row is None:
                    raise GuardFailed("STATUS_CHANGED")
                req_row = dict(req_row)

                partner_row = self._debit(cur, req_row["partner_id"], int(req_row["amount_cents"]))
                if partner_row is None:
                    raise GuardFailed("BALANCE_CHANGED")

                cur.execute(_INSERT_RECORD_SQL, _record_params(record))

        return _request_from_row(req_row), _partner_from_row(partner_row)

    def list_payout_records(self, *, partner_id: Optional[UUID] = None, limit: int = 200) -> list[PayoutRecord]:
        where_sql = "WHERE partner_id = %s" if partner_id is not None else ""
        params: tuple = (partner_id, limit) if partner_id is not None else (limit,)
        rows = self._fetchall(
            f"""
            SELECT id, partner_id, amount_cents, creator_name, referral_code, processed_by,
                   created_at, method, transaction_reference, payout_request_id, note
            FROM app.payout_records
            {where_sql}
            ORDER BY created_at DESC
            LIMIT %s
            """,
            params,
        )
        return [PayoutRecord(**r) for r in rows]

    # ==========================================================
    # Fraud log
    # ==========================================================

    def insert_fraud_log(self, entry: FraudLogEntry) -> None:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO app.referral_fraud_logs (
                      id, referral_code, type, ip, email, buyer_id, details, created_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        entry.id,
                        entry.referral_code,
                        entry.type,
                        entry.ip,
                        entry.email,
                        entry.buyer_id,
                        entry.details,
                        entry.created_at,
                    ),
                )

    def count_fraud_logs(
        self,
        *,
        referral_code: str,
        type: str,
        ip: Optional[str] = None,
        email: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> int:
        where = [
            "referral_code = %s",
            "type = %s",
            "created_at >= now() - %s::interval",
        ]
        params: list[Any] = [referral_code, type, f"{FRAUD_LOG_RETENTION.days} days"]
        if ip is not None:
            where.append("ip = %s")
            params.append(ip)
        if email is not None:
            where.append("email = %s")
            params.append(email)
        if since is not None:
            where.append("created_at >= %s")
            params.append(since)
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT COUNT(*) FROM app.referral_fraud_logs WHERE " + " AND ".join(where),
                    tuple(params),
                )
                return int(cur.fetchone()[0] or 0)

    def list_fraud_logs(
        self, *, referral_code: Optional[str] = None, types: Optional[Sequence[str]] = None, limit: int = 200
    ) -> list[FraudLogEntry]:
        where = ["created_at >= now() - %s::interval"]
        params: list[Any] = [f"{FRAUD_LOG_RETENTION.days} days"]
        if referral_code:
            where.append("referral_code = %s")
            params.append(referral_code)
        if types:
            where.append("type = ANY(%s)")
            params.append(list(types))
        params.append(limit)
        rows = self._fetchall(
            f"""
            SELECT id, referral_code, type, created_at, ip, email, buyer_id, details
            FROM app.referral_fraud_logs
            WHERE {" AND ".join(where)}
            ORDER BY created_at DESC
            LIMIT %s
            """,
            tuple(params),
        )
        return [FraudLogEntry(**r) for r in rows]

    def purge_fraud_logs(self, *, before: datetime) -> int:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM app.referral_fraud_logs WHERE created_at < %s", (before,))
                return cur.rowcount

    # ==========================================================
    # Audit + settings
    # ==========================================================

    def insert_audit_event(
        self, *, actor: str, action: str, target_id: Optional[str], metadata: dict[str, Any]
    ) -> None:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO app.audit_log (actor, action, target_id, metadata)
                    VALUES (%s, %s, %s, %s::jsonb);
                    """,
                    (actor, action, target_id, Json(metadata or {})),
                )

    def get_settings(self) -> AppSettings:
        from settings import settings as app_settings

        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO app.settings (key, global_payout_threshold_cents)
                    VALUES ('global', %s)
                    ON CONFLICT (key) DO NOTHING
                    """,
                    (app_settings.DEFAULT_PAYOUT_THRESHOLD_CENTS,),
                )
                cur.execute(
                    "SELECT global_payout_threshold_cents, updated_at FROM app.settings WHERE key = 'global'"
                )
                row = cur.fetchone()
        return AppSettings(global_payout_threshold_cents=int(row[0]), updated_at=row[1])

    def update_settings(self, *, global_payout_threshold_cents: int) -> AppSettings:
        row = self._fetchone(
            """
            INSERT INTO app.settings (key, global_payout_threshold_cents, updated_at)
            VALUES ('global', %s, now())
            ON CONFLICT (key) DO UPDATE
              SET global_payout_threshold_cents = EXCLUDED.global_payout_threshold_cents,
                  updated_at = now()
            RETURNING global_payout_threshold_cents, updated_at
            """,
            (global_payout_threshold_cents,),
        )
        return AppSettings(
            global_payout_threshold_cents=int(row["global_payout_threshold_cents"]),
            updated_at=row["updated_at"],
        )

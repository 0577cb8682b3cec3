from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone

import pytest

from app.payouts.model import PayoutRecord
from app.store.base import GuardFailed
from app.store.postgres import PostgresStore


NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class _FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.rowcount = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.conn.executed.append((" ".join(sql.split()), params))
        self.rowcount = self.conn.rowcounts.pop(0) if self.conn.rowcounts else 0

    def fetchone(self):
        return self.conn.rows.pop(0) if self.conn.rows else None

    def fetchall(self):
        rows, self.conn.rows = self.conn.rows, []
        return rows


class _FakeConn:
    def __init__(self, rows=None, rowcounts=None):
        self.rows = list(rows or [])
        self.rowcounts = list(rowcounts or [])
        self.executed = []
        self.committed = 0
        self.rolled_back = 0

    def cursor(self, cursor_factory=None):
        return _FakeCursor(self)


def _store(conn: _FakeConn) -> PostgresStore:
    @contextmanager
    def factory():
        try:
            yield conn
            conn.committed += 1
        except Exception:
            conn.rolled_back += 1
            raise

    return PostgresStore(conn_factory=factory)


def _record(partner_id, request_id) -> PayoutRecord:
    return PayoutRecord(
        id=uuid.uuid4(),
        partner_id=partner_id,
        amount_cents=45000,
        creator_name="Asha",
        referral_code="ASHA01",
        processed_by="admin",
        created_at=NOW,
        transaction_reference="UTR1",
        payout_request_id=request_id,
    )


def _request_row(request_id, partner_id, status="completed"):
    return {
        "id": request_id,
        "partner_id": partner_id,
        "amount_cents": 45000,
        "creator_name": "Asha",
        "referral_code": "ASHA01",
        "real_name": "Asha Rao",
        "method": "upi",
        "details": {"upi_id": "asha@okaxis"},
        "status": status,
        "transaction_reference": "UTR1",
        "rejection_reason": None,
        "processed_by": "admin",
        "requested_at": NOW,
        "processed_at": NOW,
    }


def test_claim_settlement_is_a_guarded_update():
    conn = _FakeConn(rowcounts=[1, 0])
    store = _store(conn)
    order_id = uuid.uuid4()

    assert store.claim_commission_settlement(order_id) is True
    assert store.claim_commission_settlement(order_id) is False

    sql, params = conn.executed[0]
    assert sql.startswith("UPDATE app.orders SET commission_settled = TRUE")
    assert "commission_settled = FALSE" in sql
    assert "webhook_verified = TRUE" in sql
    assert params == (order_id,)


def test_credit_partner_guards_usage_cap():
    conn = _FakeConn(rows=[])
    store = _store(conn)

    assert store.credit_partner(uuid.uuid4(), revenue_cents=100000, commission_cents=10000) is None
    sql, params = conn.executed[0]
    assert "(max_uses IS NULL OR total_uses < max_uses)" in sql
    assert params[:3] == (100000, 10000, 10000)


def test_complete_payout_rolls_back_when_balance_guard_fails():
    request_id, partner_id = uuid.uuid4(), uuid.uuid4()
    # request update returns a row, partner debit returns nothing
    conn = _FakeConn(rows=[_request_row(request_id, partner_id)])
    store = _store(conn)

    with pytest.raises(GuardFailed) as exc:
        store.complete_payout_request(
            request_id,
            from_statuses=("pending", "processing"),
            transaction_reference="UTR1",
            processed_by="admin",
            processed_at=NOW,
            record=_record(partner_id, request_id),
        )

    assert exc.value.reason == "BALANCE_CHANGED"
    assert conn.rolled_back == 1
    assert conn.committed == 0
    assert not any("INSERT INTO app.payout_records" in sql for sql, _ in conn.executed)
    debit_sql = conn.executed[1][0]
    assert "pending_commission_cents >= %s" in debit_sql


def test_complete_payout_status_guard():
    conn = _FakeConn(rows=[])
    store = _store(conn)
    request_id = uuid.uuid4()

    with pytest.raises(GuardFailed) as exc:
        store.complete_payout_request(
            request_id,
            from_statuses=("pending", "processing"),
            transaction_reference="UTR1",
            processed_by="admin",
            processed_at=NOW,
            record=_record(uuid.uuid4(), request_id),
        )
    assert exc.value.reason == "STATUS_CHANGED"
    assert len(conn.executed) == 1
    assert conn.rolled_back == 1


def test_update_partner_profile_refuses_counter_columns():
    conn = _FakeConn(rows=[])
    store = _store(conn)

    with pytest.raises(ValueError):
        store.update_partner_profile(uuid.uuid4(), {"status": "paused", "pending_commission_cents": 10**9})
    assert conn.executed == []

    store.update_partner_profile(uuid.uuid4(), {"status": "paused"})
    sql, params = conn.executed[0]
    assert sql.startswith("UPDATE app.referral_partners SET status = %s, updated_at = now()")
    assert params[0] == "paused"


def test_application_review_is_guarded_on_status():
    conn = _FakeConn(rows=[])
    store = _store(conn)
    application_id = uuid.uuid4()

    result = store.review_referral_application(
        application_id,
        from_statuses=("pending", "rejected"),
        to_status="approved",
        reviewed_by="admin",
        review_reason="",
        reviewed_at=NOW,
    )
    assert result is None
    sql, params = conn.executed[0]
    assert "WHERE id = %s AND status = ANY(%s)" in sql
    assert params[0] == "approved"
    assert params[-2:] == (application_id, ["pending", "rejected"])


def test_referral_order_totals_only_count_settled_orders():
    conn = _FakeConn(rows=[{"uses": 3, "revenue_cents": 120000}])
    store = _store(conn)

    assert store.referral_order_totals(uuid.uuid4(), since=NOW) == (3, 120000)
    sql, _ = conn.executed[0]
    assert "payment_status = 'paid'" in sql
    assert "paid_at >= %s" in sql

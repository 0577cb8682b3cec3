from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from app.referrals import model as rm
from app.referrals.fraud import purge_expired_fraud_logs, record_code_usage
from app.referrals.model import FraudLogEntry
from app.workers import dispatch
from services.metrics import counter_value
from tests.conftest import admin_headers


CODE = "ASHA01"


def _now():
    return datetime.now(timezone.utc)


def test_first_three_uses_from_one_ip_are_not_flagged(store):
    for i in range(3):
        flags = record_code_usage(store, referral_code=CODE, ip="203.0.113.9", email=f"b{i}@example.com")
        assert flags == []
    assert len(store.list_fraud_logs(referral_code=CODE, types=[rm.FRAUD_CODE_USAGE])) == 3


def test_fourth_use_from_one_ip_within_window_is_flagged(store):
    before = counter_value("referral_fraud_flags_total", {"type": rm.FRAUD_RAPID_REPEAT})
    results = [
        record_code_usage(store, referral_code=CODE, ip="203.0.113.9", email=f"b{i}@example.com")
        for i in range(4)
    ]
    assert results[-1] == [rm.FRAUD_RAPID_REPEAT]

    [flag] = store.list_fraud_logs(referral_code=CODE, types=[rm.FRAUD_RAPID_REPEAT])
    assert flag.ip == "203.0.113.9"
    assert "4 uses" in flag.details
    assert counter_value("referral_fraud_flags_total", {"type": rm.FRAUD_RAPID_REPEAT}) == before + 1


def test_uses_outside_window_do_not_count(store):
    old = _now() - timedelta(minutes=30)
    for _ in range(3):
        record_code_usage(store, referral_code=CODE, ip="203.0.113.9", now=old)
    assert record_code_usage(store, referral_code=CODE, ip="203.0.113.9") == []


def test_same_email_across_ips_is_suspicious(store):
    results = [
        record_code_usage(store, referral_code=CODE, ip=f"198.51.100.{i}", email="same@example.com")
        for i in range(4)
    ]
    assert results[-1] == [rm.FRAUD_SUSPICIOUS_PATTERN]


def test_email_case_and_whitespace_do_not_split_buyers(store):
    variants = ["Same@Example.com", "same@example.com", " SAME@EXAMPLE.COM", "same@Example.COM "]
    results = [
        record_code_usage(store, referral_code=CODE, ip=f"198.51.100.{i}", email=email)
        for i, email in enumerate(variants)
    ]
    assert results[-1] == [rm.FRAUD_SUSPICIOUS_PATTERN]
    usage = store.list_fraud_logs(referral_code=CODE, types=[rm.FRAUD_CODE_USAGE])
    assert {e.email for e in usage} == {"same@example.com"}


def test_store_failure_never_raises(store, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("fraud table locked")

    monkeypatch.setattr(store, "insert_fraud_log", broken)
    monkeypatch.setattr(store, "count_fraud_logs", broken)
    assert record_code_usage(store, referral_code=CODE, ip="203.0.113.9", email="x@example.com") == []


def test_purge_drops_entries_past_retention(store):
    now = _now()
    for age_days in (1, 89, 91, 200):
        store.insert_fraud_log(
            FraudLogEntry(
                id=uuid.uuid4(),
                referral_code=CODE,
                type=rm.FRAUD_CODE_USAGE,
                created_at=now - timedelta(days=age_days),
            )
        )

    # expired rows are already hidden from reads
    assert len(store.list_fraud_logs(referral_code=CODE)) == 2
    assert purge_expired_fraud_logs(store, now=now) == 2
    assert purge_expired_fraud_logs(store, now=now) == 0


def test_admin_fraud_log_listing(client, store):
    for i in range(4):
        record_code_usage(store, referral_code=CODE, ip="203.0.113.9", email=f"b{i}@example.com")
    dispatch.drain()

    r = client.get("/v1/admin/fraud/logs?referral_code=asha01&type=rapid_repeat", headers=admin_headers())
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["count"] == 1
    assert data["logs"][0]["type"] == "rapid_repeat"

    r = client.get("/v1/admin/fraud/logs")
    assert r.status_code == 401

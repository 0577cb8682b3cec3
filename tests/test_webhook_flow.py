from __future__ import annotations

import uuid

from _webhook_signing import canonical_json_bytes, payment_captured_payload, razorpay_sig_header  # noqa: E402
from app.orders import model as om
from services.metrics import counter_value
from tests.conftest import WEBHOOK_SECRET, make_order, make_partner, make_product


URL = "/v1/webhooks/payments"


def _post(client, payload: dict):
    body = canonical_json_bytes(payload)
    return client.post(URL, content=body, headers=razorpay_sig_header(WEBHOOK_SECRET, body))


def _captured(order, payment_id: str | None = None) -> dict:
    return payment_captured_payload(
        gateway_order_id=order.gateway_order_id,
        gateway_payment_id=payment_id or f"pay_{uuid.uuid4().hex[:14]}",
        amount_cents=order.total_cents,
    )


def test_capture_marks_order_paid_and_settles_commission(client, store):
    partner = make_partner(store)
    order = make_order(store, total_cents=100000, partner=partner)

    r = _post(client, _captured(order, "pay_capture_1"))
    assert r.status_code == 200, r.text
    assert r.json() == {"status": "ok"}

    after = store.get_order(order.id)
    assert after.status == om.PAID
    assert after.payment_status == om.PAYMENT_PAID
    assert after.webhook_verified is True
    assert after.gateway_payment_id == "pay_capture_1"
    assert after.paid_at is not None
    assert after.commission_settled is True

    p = store.get_partner(partner.id)
    assert p.total_uses == 1
    assert p.total_revenue_cents == 100000
    assert p.pending_commission_cents == 10000


def test_replayed_delivery_credits_once(client, store):
    partner = make_partner(store)
    order = make_order(store, partner=partner)
    payload = _captured(order, "pay_replay_1")

    for _ in range(3):
        r = _post(client, payload)
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}

    p = store.get_partner(partner.id)
    assert p.total_uses == 1
    assert p.pending_commission_cents == 10000


def test_second_payment_id_for_paid_order_does_not_double_credit(client, store):
    partner = make_partner(store)
    order = make_order(store, partner=partner)

    assert _post(client, _captured(order, "pay_first")).status_code == 200
    assert _post(client, _captured(order, "pay_second")).status_code == 200

    assert store.get_order(order.id).gateway_payment_id == "pay_first"
    assert store.get_partner(partner.id).total_uses == 1


def test_capture_updates_product_sales(client, store):
    product = make_product(store, price_cents=25000)
    placed = make_order(
        store,
        total_cents=50000,
        items=(om.OrderItem(product_id=product.id, title=product.title, unit_price_cents=25000, quantity=2),),
    )

    assert _post(client, _captured(placed)).status_code == 200

    [after] = store.get_products([product.id])
    assert after.total_sold == 2
    assert after.total_revenue_cents == 50000


def test_unknown_order_is_acknowledged(client, store):
    payload = payment_captured_payload(gateway_order_id="order_missing", gateway_payment_id="pay_missing")
    before = counter_value(
        "webhook_events_total",
        {"event": "payment.captured", "signature_valid": "true", "result": "order_not_found"},
    )

    r = _post(client, payload)

    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert (
        counter_value(
            "webhook_events_total",
            {"event": "payment.captured", "signature_valid": "true", "result": "order_not_found"},
        )
        == before + 1
    )


def test_other_events_are_ignored(client, store):
    order = make_order(store)
    payload = _captured(order)
    payload["event"] = "payment.failed"

    r = _post(client, payload)

    assert r.status_code == 200
    assert r.json() == {"status": "ignored"}
    assert store.get_order(order.id).status == om.CREATED


def test_unparseable_body_is_ignored(client):
    body = b"not json at all"
    r = client.post(URL, content=body, headers=razorpay_sig_header(WEBHOOK_SECRET, body))
    assert r.status_code == 200
    assert r.json() == {"status": "ignored"}


def test_internal_error_after_verification_still_acknowledged(client, store, monkeypatch):
    order = make_order(store)

    def boom(*args, **kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(store, "mark_order_paid", boom)
    r = _post(client, _captured(order))

    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert store.get_order(order.id).status == om.CREATED


def test_settlement_failure_does_not_undo_paid_transition(client, store, monkeypatch):
    partner = make_partner(store)
    order = make_order(store, partner=partner)

    def boom(*args, **kwargs):
        raise RuntimeError("ledger down")

    monkeypatch.setattr(store, "credit_partner", boom)
    r = _post(client, _captured(order))

    assert r.status_code == 200
    after = store.get_order(order.id)
    assert after.status == om.PAID
    assert after.commission_settled is False

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from app.orders import model as om
from app.workers import dispatch
from settings import settings
from tests.conftest import make_partner, make_product


def _cart(product, quantity=1):
    return [{"product_id": str(product.id), "quantity": quantity}]


def _checkout(client, items, **extra):
    body = {"buyer_id": "buyer-42", "email": "buyer@example.com", "items": items}
    body.update(extra)
    return client.post("/v1/orders", json=body, headers={"X-Forwarded-For": "198.51.100.7"})


def test_checkout_uses_catalog_prices(client, store, gateway):
    product = make_product(store, price_cents=50000)

    r = _checkout(client, _cart(product, 2))
    assert r.status_code == 201, r.text
    data = r.json()
    assert data["subtotal_cents"] == 100000
    assert data["discount_cents"] == 0
    assert data["total_cents"] == 100000
    assert data["currency"] == "INR"

    [gw] = gateway.created
    assert data["gateway_order_id"] == gw.gateway_order_id
    assert gw.amount_cents == 100000

    order = store.get_order(uuid.UUID(data["order_id"]))
    assert order.status == om.CREATED
    assert order.referral_code is None


def test_client_supplied_price_is_ignored(client, store):
    product = make_product(store, price_cents=50000)
    items = [{"product_id": str(product.id), "quantity": 1, "unit_price_cents": 1}]
    r = _checkout(client, items)
    assert r.status_code == 201, r.text
    assert r.json()["total_cents"] == 50000


def test_checkout_with_referral_applies_discount_and_snapshots_commission(client, store):
    partner = make_partner(store, discount_percent=Decimal("10"), commission_percent=Decimal("12"))
    product = make_product(store, price_cents=99999)

    r = _checkout(client, _cart(product), referral_code=partner.referral_code.lower())
    assert r.status_code == 201, r.text
    data = r.json()
    # 9999.9 rounds half-up to 10000
    assert data["discount_cents"] == 10000
    assert data["total_cents"] == 89999

    order = store.get_order(uuid.UUID(data["order_id"]))
    assert order.referral_code == partner.referral_code
    assert order.referral_partner_id == partner.id
    assert order.commission_percent == Decimal("12")

    dispatch.drain()
    usage = store.list_fraud_logs(referral_code=partner.referral_code, types=["code_usage"])
    assert len(usage) == 1
    # forwarded headers are ignored unless a trusted proxy sets them
    assert usage[0].ip == "testclient"
    assert usage[0].buyer_id == "buyer-42"


def test_self_referral_is_refused_and_logged(client, store):
    partner = make_partner(store, buyer_identifier="buyer-42")
    product = make_product(store)

    r = _checkout(client, _cart(product), referral_code=partner.referral_code)
    assert r.status_code == 400
    assert r.json()["detail"] == "SELF_REFERRAL"
    assert store.get_partner(partner.id).total_uses == 0

    dispatch.drain()
    [entry] = store.list_fraud_logs(referral_code=partner.referral_code, types=["self_use"])
    assert entry.buyer_id == "buyer-42"


def test_unknown_referral_code(client, store):
    product = make_product(store)
    r = _checkout(client, _cart(product), referral_code="NOPE123")
    assert r.status_code == 404
    assert r.json()["detail"] == "INVALID_REFERRAL_CODE"


def test_expired_paused_and_exhausted_codes(client, store):
    product = make_product(store)
    expired = make_partner(store, expires_at=datetime.now(timezone.utc) - timedelta(days=1))
    paused = make_partner(store, status="paused")
    exhausted = make_partner(store, max_uses=3, total_uses=3)

    cases = [
        (expired, "REFERRAL_CODE_EXPIRED"),
        (paused, "REFERRAL_CODE_INACTIVE"),
        (exhausted, "REFERRAL_CODE_EXHAUSTED"),
    ]
    for partner, code in cases:
        r = _checkout(client, _cart(product), referral_code=partner.referral_code)
        assert r.status_code == 400, partner.referral_code
        assert r.json()["detail"] == code


def test_inactive_product(client, store):
    product = make_product(store, is_active=False)
    r = _checkout(client, _cart(product))
    assert r.status_code == 400
    assert r.json()["detail"] == "PRODUCT_UNAVAILABLE"


def test_quantity_out_of_range(client, store):
    product = make_product(store)
    r = _checkout(client, _cart(product, 101))
    assert r.status_code == 422


def test_gateway_failure_returns_502_and_no_order(client, store, gateway):
    gateway.succeed = False
    product = make_product(store)

    r = _checkout(client, _cart(product))
    assert r.status_code == 502
    assert r.json()["detail"] == "GATEWAY_UNAVAILABLE"
    assert gateway.created == []


def test_order_status_hides_gateway_ids(client, store):
    product = make_product(store)
    created = _checkout(client, _cart(product)).json()

    r = client.get(f"/v1/orders/{created['order_id']}")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["status"] == "created"
    assert data["items"][0]["quantity"] == 1
    assert "gateway_order_id" not in data
    assert "gateway_payment_id" not in data


def test_validate_referral_endpoint(client, store):
    partner = make_partner(store, discount_percent=Decimal("7.5"))
    r = client.post("/v1/referrals/validate", json={"referral_code": f"  {partner.referral_code.lower()} "})
    assert r.status_code == 200, r.text
    assert r.json()["referral_code"] == partner.referral_code
    assert Decimal(r.json()["discount_percent"]) == Decimal("7.5")


def test_rotating_forwarded_header_from_one_peer_is_still_rapid_repeat(client, store):
    partner = make_partner(store)
    product = make_product(store)

    for i in range(6):
        r = client.post(
            "/v1/orders",
            json={
                "buyer_id": f"buyer-{i}",
                "email": f"b{i}@example.com",
                "items": _cart(product),
                "referral_code": partner.referral_code,
            },
            headers={"X-Forwarded-For": f"10.0.0.{i}"},
        )
        assert r.status_code == 201, r.text
        dispatch.drain()

    usage = store.list_fraud_logs(referral_code=partner.referral_code, types=["code_usage"])
    assert {e.ip for e in usage} == {"testclient"}
    flags = store.list_fraud_logs(referral_code=partner.referral_code, types=["rapid_repeat"])
    assert len(flags) >= 1


def test_forwarded_header_used_behind_trusted_proxy(client, store, monkeypatch):
    monkeypatch.setattr(settings, "TRUST_PROXY_HEADERS", True)
    partner = make_partner(store)
    product = make_product(store)

    r = _checkout(client, _cart(product), referral_code=partner.referral_code)
    assert r.status_code == 201, r.text

    dispatch.drain()
    [entry] = store.list_fraud_logs(referral_code=partner.referral_code, types=["code_usage"])
    assert entry.ip == "198.51.100.7"


def test_mixed_case_emails_count_as_one_buyer(client, store):
    partner = make_partner(store)
    product = make_product(store)
    variants = ["Abuse@Ex.com", "abuse@ex.com", "ABUSE@EX.COM", " abuse@Ex.Com ", "aBuSe@ex.com"]

    for i, email in enumerate(variants):
        r = client.post(
            "/v1/orders",
            json={
                "buyer_id": f"buyer-{i}",
                "email": email.strip(),
                "items": _cart(product),
                "referral_code": partner.referral_code,
            },
        )
        assert r.status_code == 201, r.text
        dispatch.drain()

    usage = store.list_fraud_logs(referral_code=partner.referral_code, types=["code_usage"])
    assert {e.email for e in usage} == {"abuse@ex.com"}
    flags = store.list_fraud_logs(referral_code=partner.referral_code, types=["suspicious_pattern"])
    assert len(flags) >= 1


def test_checkout_returns_gateway_checkout_fields(client, store, monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", "rzp_test_key")
    product = make_product(store, price_cents=25000)

    r = _checkout(client, _cart(product, 2))
    assert r.status_code == 201, r.text
    data = r.json()
    assert data["gateway_key_id"] == "rzp_test_key"
    assert data["gateway_amount_cents"] == 50000


def test_checkout_without_email(client, store):
    product = make_product(store)
    r = client.post("/v1/orders", json={"buyer_id": "buyer-7", "items": _cart(product)})
    assert r.status_code == 201, r.text

    order = store.get_order(uuid.UUID(r.json()["order_id"]))
    assert order.email == ""


def test_checkout_stores_normalized_email(client, store):
    product = make_product(store)
    r = _checkout(client, _cart(product), email="Buyer@Example.COM")
    assert r.status_code == 201, r.text
    assert store.get_order(uuid.UUID(r.json()["order_id"])).email == "buyer@example.com"

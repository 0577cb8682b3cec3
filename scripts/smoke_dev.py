"""
End-to-end smoke against a running server in sandbox gateway mode:
checkout with a referral code, deliver a signed payment.captured webhook,
replay it, and check the creator dashboard was credited once.

Usage:
  BASE_URL=http://127.0.0.1:8000 PRODUCT_ID=... REFERRAL_CODE=DEV10 \
  CREATOR_TOKEN=... RAZORPAY_WEBHOOK_SECRET=... python scripts/smoke_dev.py
"""
import os
import sys
import uuid

import requests

from _webhook_signing import canonical_json_bytes, payment_captured_payload, razorpay_sig_header


def die(message, code=1):
    print(message)
    sys.exit(code)


def step(message):
    print("\n==> " + message)


def request(method, url, headers=None, json_body=None, data=None, allow_failure=False):
    try:
        resp = requests.request(method, url, headers=headers, json=json_body, data=data, timeout=15)
    except Exception as exc:
        die("Request failed: %s" % exc)
    if resp.status_code < 200 or resp.status_code >= 300:
        if not allow_failure:
            print("HTTP %s %s" % (resp.status_code, resp.reason))
            print(resp.text)
            sys.exit(1)
    return resp


def _require_env(name):
    value = (os.getenv(name) or "").strip()
    if not value:
        die("%s is required" % name)
    return value


def _dashboard(base_url, token):
    return request("GET", base_url + "/v1/creator/me", headers={"Authorization": "Bearer %s" % token}).json()


def main():
    base_url = (os.getenv("BASE_URL") or "http://127.0.0.1:8000").rstrip("/")
    product_id = _require_env("PRODUCT_ID")
    referral_code = _require_env("REFERRAL_CODE")
    creator_token = _require_env("CREATOR_TOKEN")
    secret = _require_env("RAZORPAY_WEBHOOK_SECRET")

    step("Health")
    request("GET", base_url + "/health")

    step("Creator dashboard before")
    before = _dashboard(base_url, creator_token)
    print("pending_commission_cents=%s total_uses=%s" % (before["pending_commission_cents"], before["total_uses"]))

    step("Checkout with referral code")
    order = request(
        "POST",
        base_url + "/v1/orders",
        json_body={
            "buyer_id": "smoke-" + uuid.uuid4().hex[:8],
            "email": "smoke@example.com",
            "items": [{"product_id": product_id, "quantity": 1}],
            "referral_code": referral_code,
        },
    ).json()
    print("order_id=%s total_cents=%s" % (order["order_id"], order["total_cents"]))

    step("Deliver signed payment.captured (twice)")
    body = canonical_json_bytes(
        payment_captured_payload(
            gateway_order_id=order["gateway_order_id"],
            gateway_payment_id="pay_smoke" + uuid.uuid4().hex[:12],
            amount_cents=order["total_cents"],
        )
    )
    headers = {"Content-Type": "application/json"}
    headers.update(razorpay_sig_header(secret, body))
    for attempt in (1, 2):
        resp = request("POST", base_url + "/v1/webhooks/payments", headers=headers, data=body)
        print("attempt=%s response=%s" % (attempt, resp.json()))

    step("Tampered body must be rejected")
    resp = request(
        "POST",
        base_url + "/v1/webhooks/payments",
        headers=headers,
        data=body.replace(b"captured", b"capturex"),
        allow_failure=True,
    )
    if resp.status_code != 400:
        die("expected 400 for tampered body, got %s" % resp.status_code)

    step("Order status")
    status = request("GET", base_url + "/v1/orders/" + order["order_id"]).json()
    if status["status"] != "paid":
        die("order not paid: %s" % status["status"])

    step("Creator dashboard after")
    after = _dashboard(base_url, creator_token)
    uses = after["total_uses"] - before["total_uses"]
    if uses != 1:
        die("expected exactly one credited use, got %s" % uses)
    print("pending_commission_cents=%s (+%s)" % (
        after["pending_commission_cents"],
        after["pending_commission_cents"] - before["pending_commission_cents"],
    ))
    print("\nsmoke ok")


if __name__ == "__main__":
    main()

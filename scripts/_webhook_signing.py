import hashlib
import hmac
import json


def canonical_json_bytes(payload) -> bytes:
    return json.dumps(
        payload,
        separators=(",", ":"),
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")


def hmac_sha256_hex(secret: str, body_bytes: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body_bytes, hashlib.sha256).hexdigest()


def razorpay_sig_header(secret: str, body_bytes: bytes) -> dict[str, str]:
    return {"X-Razorpay-Signature": hmac_sha256_hex(secret, body_bytes)}


def payment_captured_payload(
    *,
    gateway_order_id: str,
    gateway_payment_id: str,
    amount_cents: int = 0,
    notes: dict | None = None,
) -> dict:
    return {
        "entity": "event",
        "event": "payment.captured",
        "payload": {
            "payment": {
                "entity": {
                    "id": gateway_payment_id,
                    "order_id": gateway_order_id,
                    "amount": amount_cents,
                    "status": "captured",
                    "notes": notes or {},
                }
            }
        },
    }

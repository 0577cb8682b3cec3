# app/webhooks/verifier.py
from __future__ import annotations

import hashlib
import hmac
import json
from dataclasses import dataclass, field
from typing import Any, Optional


PAYMENT_CAPTURED = "payment.captured"


class WebhookRejected(Exception):
    """Verification failed; nothing was read or written."""

    http_status = 400

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class WebhookConfigurationError(WebhookRejected):
    http_status = 500


class WebhookProtocolError(WebhookRejected):
    pass


@dataclass(frozen=True)
class PaymentCaptured:
    gateway_order_id: str
    gateway_payment_id: str
    notes: dict[str, Any] = field(default_factory=dict)


def verify_signature(*, raw: Any, signature_header: str | None, secret: str | None) -> tuple[bool, str | None]:
    if not secret or not secret.strip():
        return False, "WEBHOOK_SECRET_NOT_CONFIGURED"

    if not isinstance(raw, (bytes, bytearray)):
        return False, "RAW_BODY_REQUIRED"

    if not signature_header or not signature_header.strip():
        return False, "MISSING_SIGNATURE"

    sig = signature_header.strip()
    if sig.lower().startswith("sha256="):
        sig = sig.split("=", 1)[1].strip()

    expected = hmac.new(secret.encode("utf-8"), bytes(raw), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected.encode("ascii"), sig.lower().encode("utf-8")):
        return False, "INVALID_SIGNATURE"

    return True, None


def require_valid_signature(*, raw: Any, signature_header: str | None, secret: str | None) -> None:
    ok, err = verify_signature(raw=raw, signature_header=signature_header, secret=secret)
    if ok:
        return
    if err == "WEBHOOK_SECRET_NOT_CONFIGURED":
        raise WebhookConfigurationError(err)
    if err == "RAW_BODY_REQUIRED":
        raise WebhookProtocolError(err)
    raise WebhookRejected(err or "INVALID_SIGNATURE")


def parse_event(raw: bytes) -> tuple[str, Optional[PaymentCaptured]]:
    """
    Parse an already-verified body.

    Returns (event_name, PaymentCaptured | None). Only "payment.captured" with
    both gateway ids present yields an event. Raises ValueError when the body
    is not a JSON object.
    """
    doc = json.loads(raw.decode("utf-8"))
    if not isinstance(doc, dict):
        raise ValueError("webhook body is not an object")

    event = str(doc.get("event") or "")
    if event != PAYMENT_CAPTURED:
        return event, None

    entity = (((doc.get("payload") or {}).get("payment") or {}).get("entity")) or {}
    if not isinstance(entity, dict):
        return event, None

    payment_id = str(entity.get("id") or "").strip()
    order_id = str(entity.get("order_id") or "").strip()
    if not payment_id or not order_id:
        return event, None

    # the gateway sends [] for empty notes
    notes = entity.get("notes")
    if not isinstance(notes, dict):
        notes = {}

    return event, PaymentCaptured(gateway_order_id=order_id, gateway_payment_id=payment_id, notes=notes)

# routes/webhooks.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from app.orders.service import handle_payment_captured
from app.webhooks.verifier import WebhookRejected, parse_event, require_valid_signature
from deps.store import get_store
from services.metrics import increment_webhook_event
from services.redaction import redact_text
from settings import webhook_secret


router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])
logger = logging.getLogger("settlement.webhooks")

SIGNATURE_HEADERS = ("X-Razorpay-Signature", "signature")


def _signature_header(req: Request) -> str | None:
    for name in SIGNATURE_HEADERS:
        value = req.headers.get(name)
        if value and value.strip():
            return value
    return None


@router.post("/payments")
async def payment_webhook(req: Request, store=Depends(get_store)):
    raw = await req.body()
    request_id = getattr(req.state, "request_id", None)

    try:
        require_valid_signature(raw=raw, signature_header=_signature_header(req), secret=webhook_secret())
    except WebhookRejected as exc:
        logger.warning("webhook_rejected request_id=%s reason=%s", request_id, exc.code)
        increment_webhook_event("unknown", False, exc.code.lower())
        raise HTTPException(status_code=exc.http_status, detail=exc.code)

    # verified; from here on the gateway always gets a 200
    event_name = "unknown"
    try:
        event_name, captured = parse_event(raw)
        if captured is None:
            logger.info("webhook_ignored request_id=%s event=%s", request_id, event_name or "-")
            increment_webhook_event(event_name or "unknown", True, "ignored")
            return {"status": "ignored"}

        result = handle_payment_captured(store, captured)
        logger.info(
            "webhook_processed request_id=%s event=%s gateway_order_id=%s payment_id=%s result=%s",
            request_id,
            event_name,
            redact_text(captured.gateway_order_id),
            redact_text(captured.gateway_payment_id),
            result,
        )
        increment_webhook_event(event_name, True, result)
        return {"status": "ok"}
    except ValueError:
        logger.warning("webhook_unparseable request_id=%s", request_id)
        increment_webhook_event("unknown", True, "unparseable")
        return {"status": "ignored"}
    except Exception:
        logger.exception("webhook_processing_error request_id=%s event=%s", request_id, event_name)
        increment_webhook_event(event_name, True, "error")
        return {"status": "ok"}

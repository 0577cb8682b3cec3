# app/workers/notifier.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from services.observability import get_request_id
from settings import settings


logger = logging.getLogger("settlement.notify")

ORDER_PAID = "order_paid"
PAYOUT_REQUESTED = "payout_requested"
PAYOUT_PROCESSED = "payout_processed"
PAYOUT_REJECTED = "payout_rejected"
FRAUD_FLAG = "fraud_flag"
APPLICATION_RECEIVED = "referral_application_received"
APPLICATION_APPROVED = "referral_application_approved"
APPLICATION_REJECTED = "referral_application_rejected"


def notify_event(name: str, payload: dict[str, Any]) -> bool:
    """
    POST {"event", "data"} to EVENT_WEBHOOK_URL.

    Called from detached tasks only; a non-2xx answer is logged and reported
    as False, transport errors propagate to the dispatcher which logs them.
    """
    url = (settings.EVENT_WEBHOOK_URL or "").strip()
    if not url:
        logger.debug("notify_skipped event=%s reason=no_url", name)
        return False

    body = {
        "event": name,
        "data": payload,
        "sent_at": datetime.now(timezone.utc).isoformat(),
    }
    headers = {"Content-Type": "application/json"}
    rid = get_request_id()
    if rid:
        headers["X-Request-Id"] = rid

    resp = httpx.post(url, json=body, headers=headers, timeout=settings.NOTIFY_HTTP_TIMEOUT_S)
    if resp.status_code >= 300:
        logger.warning("notify_failed event=%s status=%s", name, resp.status_code)
        return False
    logger.info("notify_sent event=%s status=%s", name, resp.status_code)
    return True

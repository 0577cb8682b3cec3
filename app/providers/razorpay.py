# app/providers/razorpay.py
from __future__ import annotations

import logging
from typing import Optional

import httpx

from app.providers.base import GatewayError, GatewayOrder
from app.providers.http import HttpClient, is_retryable_http
from settings import settings


logger = logging.getLogger("settlement.gateway")


class RazorpayGateway:
    """Creates gateway orders; capture arrives later through the signed webhook."""

    def __init__(
        self,
        *,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        http: Optional[HttpClient] = None,
    ):
        self.key_id = key_id or settings.RAZORPAY_KEY_ID or ""
        self.key_secret = key_secret or settings.RAZORPAY_KEY_SECRET or ""
        self.base_url = (base_url or settings.GATEWAY_BASE_URL).rstrip("/")
        self.http = http or HttpClient(timeout_s=settings.GATEWAY_HTTP_TIMEOUT_S)

    def create_order(self, *, amount_cents: int, currency: str, receipt: str, notes: dict[str, str]) -> GatewayOrder:
        if not self.key_id or not self.key_secret:
            raise GatewayError("RAZORPAY_KEY_ID/RAZORPAY_KEY_SECRET not configured")

        body = {
            "amount": int(amount_cents),
            "currency": currency,
            "receipt": receipt[:40],
            "notes": notes,
        }
        try:
            resp = self.http.post(
                f"{self.base_url}/orders",
                headers={"Content-Type": "application/json"},
                json_body=body,
                auth=(self.key_id, self.key_secret),
            )
        except httpx.HTTPError as exc:
            logger.warning("gateway_create_order_transport_error receipt=%s error=%s", receipt, type(exc).__name__)
            raise GatewayError(f"transport error: {type(exc).__name__}", retryable=True) from exc

        if resp.status_code >= 400 or not resp.json or not resp.json.get("id"):
            logger.warning("gateway_create_order_failed receipt=%s status=%s", receipt, resp.status_code)
            raise GatewayError(
                f"create order failed ({resp.status_code})",
                http_status=resp.status_code,
                retryable=is_retryable_http(resp.status_code),
            )

        return GatewayOrder(
            gateway_order_id=str(resp.json["id"]),
            amount_cents=int(resp.json.get("amount") or amount_cents),
            currency=str(resp.json.get("currency") or currency),
            response=resp.json,
        )

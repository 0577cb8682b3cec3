# app/providers/mock.py
from __future__ import annotations

import uuid

from app.providers.base import GatewayError, GatewayOrder


class MockGateway:
    """
    Sandbox gateway. Order ids look like the real ones so the webhook path
    can be exercised end to end with scripts/_webhook_signing.py.
    """

    def __init__(self, *, succeed: bool = True):
        self.succeed = succeed
        self.created: list[GatewayOrder] = []

    def create_order(self, *, amount_cents: int, currency: str, receipt: str, notes: dict[str, str]) -> GatewayOrder:
        if not self.succeed:
            raise GatewayError("Gateway timeout", http_status=504, retryable=True)
        order = GatewayOrder(
            gateway_order_id=f"order_mock{uuid.uuid4().hex[:14]}",
            amount_cents=amount_cents,
            currency=currency,
            response={"mock": True, "receipt": receipt, "notes": dict(notes)},
        )
        self.created.append(order)
        return order

# app/providers/base.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol


class GatewayError(Exception):
    def __init__(self, message: str, *, http_status: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.http_status = http_status
        self.retryable = retryable


@dataclass(frozen=True)
class GatewayOrder:
    gateway_order_id: str
    amount_cents: int
    currency: str
    response: Optional[dict[str, Any]] = None


class PaymentGateway(Protocol):
    def create_order(
        self, *, amount_cents: int, currency: str, receipt: str, notes: dict[str, str]
    ) -> GatewayOrder: ...

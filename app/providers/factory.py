# app/providers/factory.py
from __future__ import annotations

from typing import Any, Dict

from settings import settings

_GATEWAY_CACHE: Dict[str, Any] = {}


def get_gateway():
    key = (settings.GATEWAY_MODE or "sandbox").strip().lower()

    if key in _GATEWAY_CACHE:
        return _GATEWAY_CACHE[key]

    if key == "real":
        from app.providers.razorpay import RazorpayGateway
        gateway = RazorpayGateway()
    else:
        from app.providers.mock import MockGateway
        gateway = MockGateway()

    _GATEWAY_CACHE[key] = gateway
    return gateway

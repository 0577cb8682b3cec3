# services/errors.py
from __future__ import annotations

import logging

from fastapi import HTTPException

from app.errors import SettlementError
from app.payouts.state_machine import InvalidTransition as PayoutInvalidTransition
from app.orders.state_machine import InvalidTransition as OrderInvalidTransition


logger = logging.getLogger("settlement.errors")


def raise_http_from_domain_error(exc: Exception) -> None:
    """
    Convert known domain errors into HTTP responses; otherwise fail closed.
    The response detail is always the machine-readable code.
    """
    if isinstance(exc, SettlementError):
        raise HTTPException(status_code=exc.http_status, detail=exc.code)

    if isinstance(exc, (PayoutInvalidTransition, OrderInvalidTransition)):
        raise HTTPException(status_code=409, detail="INVALID_TRANSITION")

    logger.exception("unmapped_error type=%s", type(exc).__name__)
    raise HTTPException(status_code=500, detail="Internal server error")

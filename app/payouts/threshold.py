# app/payouts/threshold.py
from __future__ import annotations

import logging

from app.errors import ValidationFailed
from app.store.base import AppSettings
from services.audit_log import write_audit_log
from settings import settings


logger = logging.getLogger("settlement.payouts")


def get_payout_threshold_cents(store) -> int:
    """Global minimum pending balance for a payout request, read on every call."""
    try:
        value = int(store.get_settings().global_payout_threshold_cents)
    except Exception:
        logger.exception("payout_threshold_read_failed fallback=%s", settings.DEFAULT_PAYOUT_THRESHOLD_CENTS)
        return int(settings.DEFAULT_PAYOUT_THRESHOLD_CENTS)
    return value if value > 0 else int(settings.DEFAULT_PAYOUT_THRESHOLD_CENTS)


def set_payout_threshold_cents(store, threshold_cents: int, *, actor: str) -> AppSettings:
    if int(threshold_cents) < 1:
        raise ValidationFailed("INVALID_THRESHOLD")
    previous = get_payout_threshold_cents(store)
    updated = store.update_settings(global_payout_threshold_cents=int(threshold_cents))
    write_audit_log(
        store,
        actor=actor,
        action="SETTINGS_PAYOUT_THRESHOLD_UPDATED",
        target_id="global",
        metadata={"previous_cents": previous, "new_cents": updated.global_payout_threshold_cents},
    )
    return updated

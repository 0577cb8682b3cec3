# app/referrals/codes.py
from __future__ import annotations

import logging
import re
import secrets
import string
import time
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from app.errors import NotFound, ValidationFailed
from app.referrals import model as rm
from app.referrals.model import ReferralPartner
from app.store.base import percent
from app.workers.dispatch import submit_detached


logger = logging.getLogger("settlement.referrals")

_ALPHABET = string.ascii_uppercase + string.digits
_PREFIX_MAX = 6
_SUFFIX_LEN = 3
_MAX_ATTEMPTS = 10


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def compute_discount(subtotal_cents: int, discount_percent) -> int:
    """Discount in cents, half-up to the cent."""
    pct = percent(discount_percent)
    if pct <= 0:
        return 0
    raw = Decimal(int(subtotal_cents)) * pct / Decimal(100)
    return min(int(subtotal_cents), int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def resolve_referral_code(
    store,
    code: Optional[str],
    *,
    buyer_id: Optional[str] = None,
    ip: Optional[str] = None,
    email: Optional[str] = None,
    at: Optional[datetime] = None,
) -> ReferralPartner:
    """
    Validate a code at checkout and return the partner behind it.

    The usage-cap check here is advisory; the ledger's guarded credit is what
    actually enforces the cap.
    """
    normalized = normalize_code(code)
    if not normalized:
        raise ValidationFailed("REFERRAL_CODE_REQUIRED")

    partner = store.get_partner_by_code(normalized)
    if partner is None:
        raise NotFound("INVALID_REFERRAL_CODE")

    if partner.status != rm.PARTNER_ACTIVE:
        raise ValidationFailed("REFERRAL_CODE_INACTIVE")

    now = at or datetime.now(timezone.utc)
    if partner.expires_at is not None and partner.expires_at <= now:
        raise ValidationFailed("REFERRAL_CODE_EXPIRED")

    if partner.max_uses is not None and partner.total_uses >= partner.max_uses:
        raise ValidationFailed("REFERRAL_CODE_EXHAUSTED")

    if buyer_id and partner.buyer_identifier and buyer_id == partner.buyer_identifier:
        from app.referrals.fraud import record_self_use

        submit_detached(
            record_self_use,
            store,
            referral_code=normalized,
            buyer_id=buyer_id,
            ip=ip,
            email=email,
        )
        raise ValidationFailed("SELF_REFERRAL")

    return partner


def _prefix(name: str) -> str:
    cleaned = re.sub(r"[^A-Z0-9]", "", (name or "").upper())
    return cleaned[:_PREFIX_MAX] or "REF"


def generate_referral_code(store, creator_name: str) -> str:
    prefix = _prefix(creator_name)
    for _ in range(_MAX_ATTEMPTS):
        candidate = prefix + "".join(secrets.choice(_ALPHABET) for _ in range(_SUFFIX_LEN))
        if store.get_partner_by_code(candidate) is None:
            return candidate

    # crowded prefix; base36 millis are unique enough
    fallback = prefix + _base36(int(time.time() * 1000))[-6:]
    logger.warning("referral_code_fallback prefix=%s code=%s", prefix, fallback)
    return fallback


def _base36(n: int) -> str:
    digits = string.digits + string.ascii_uppercase
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = digits[r] + out
    return out or "0"

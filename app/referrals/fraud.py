# app/referrals/fraud.py
"""
Referral-code usage heuristics. Signals only: nothing here blocks a checkout,
and every store call is wrapped so a failure is logged and dropped.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.referrals import model as rm
from app.referrals.model import FRAUD_LOG_RETENTION, FraudLogEntry
from app.workers.dispatch import submit_detached
from app.workers.notifier import FRAUD_FLAG, notify_event
from services.metrics import increment_fraud_flag
from services.redaction import redact_text


logger = logging.getLogger("settlement.fraud")

RAPID_REPEAT_WINDOW = timedelta(minutes=10)
# strictly more than this many usages raises a flag
FLAG_THRESHOLD = 3


def _now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: Optional[str]) -> Optional[str]:
    return (email or "").strip().lower() or None


def _insert(store, *, referral_code: str, type: str, ip, email, buyer_id, details: str, at: datetime) -> bool:
    try:
        store.insert_fraud_log(
            FraudLogEntry(
                id=uuid.uuid4(),
                referral_code=referral_code,
                type=type,
                created_at=at,
                ip=ip,
                email=email,
                buyer_id=buyer_id,
                details=details,
            )
        )
        return True
    except Exception:
        logger.exception("fraud_log_insert_failed type=%s code=%s", type, referral_code)
        return False


def _flag(store, *, referral_code: str, type: str, ip, email, buyer_id, details: str, at: datetime) -> bool:
    if not _insert(store, referral_code=referral_code, type=type, ip=ip, email=email, buyer_id=buyer_id, details=details, at=at):
        return False
    increment_fraud_flag(type)
    logger.warning(
        "fraud_flag type=%s code=%s ip=%s email=%s",
        type,
        referral_code,
        redact_text(ip or ""),
        redact_text(email or ""),
    )
    submit_detached(
        notify_event,
        FRAUD_FLAG,
        {"type": type, "referral_code": referral_code, "details": details},
    )
    return True


def record_code_usage(
    store,
    *,
    referral_code: str,
    ip: Optional[str] = None,
    email: Optional[str] = None,
    buyer_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[str]:
    """
    Record one checkout attempt with a referral code, then evaluate both
    heuristics. Counts include the usage recorded here. Returns the flag
    types raised.
    """
    at = now or _now()
    email = normalize_email(email)
    raised: list[str] = []

    _insert(store, referral_code=referral_code, type=rm.FRAUD_CODE_USAGE, ip=ip, email=email, buyer_id=buyer_id, details="", at=at)

    if ip:
        try:
            count = store.count_fraud_logs(
                referral_code=referral_code,
                type=rm.FRAUD_CODE_USAGE,
                ip=ip,
                since=at - RAPID_REPEAT_WINDOW,
            )
        except Exception:
            logger.exception("fraud_rapid_repeat_check_failed code=%s", referral_code)
            count = 0
        if count > FLAG_THRESHOLD:
            details = f"{count} uses from one address within {int(RAPID_REPEAT_WINDOW.total_seconds() // 60)} minutes"
            if _flag(store, referral_code=referral_code, type=rm.FRAUD_RAPID_REPEAT, ip=ip, email=email, buyer_id=buyer_id, details=details, at=at):
                raised.append(rm.FRAUD_RAPID_REPEAT)

    if email:
        try:
            count = store.count_fraud_logs(
                referral_code=referral_code,
                type=rm.FRAUD_CODE_USAGE,
                email=email,
            )
        except Exception:
            logger.exception("fraud_pattern_check_failed code=%s", referral_code)
            count = 0
        if count > FLAG_THRESHOLD:
            details = f"{count} uses with one email"
            if _flag(store, referral_code=referral_code, type=rm.FRAUD_SUSPICIOUS_PATTERN, ip=ip, email=email, buyer_id=buyer_id, details=details, at=at):
                raised.append(rm.FRAUD_SUSPICIOUS_PATTERN)

    return raised


def record_self_use(
    store,
    *,
    referral_code: str,
    buyer_id: Optional[str],
    ip: Optional[str] = None,
    email: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    return _flag(
        store,
        referral_code=referral_code,
        type=rm.FRAUD_SELF_USE,
        ip=ip,
        email=email,
        buyer_id=buyer_id,
        details="partner attempted to use own code",
        at=now or _now(),
    )


def purge_expired_fraud_logs(store, *, now: Optional[datetime] = None) -> int:
    cutoff = (now or _now()) - FRAUD_LOG_RETENTION
    purged = store.purge_fraud_logs(before=cutoff)
    logger.info("fraud_logs_purged count=%s before=%s", purged, cutoff.isoformat())
    return purged

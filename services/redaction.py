from __future__ import annotations

import re
from typing import Any


_EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-])([A-Za-z0-9._%+-]*)(@[A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
_PHONE_RE = re.compile(r"\+\d{6,15}")
_UPI_RE = re.compile(r"\b([A-Za-z0-9._-])([A-Za-z0-9._-]*)(@[A-Za-z]{2,})\b")
_IPV4_RE = re.compile(r"\b(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})\b")

_SENSITIVE_KEY_MARKERS = (
    "token",
    "authorization",
    "secret",
    "signature",
    "password",
)

# payout details: keep only the tail
_TAIL_ONLY_KEYS = (
    "account_number",
    "accountnumber",
    "ifsc_code",
    "ifsccode",
)


def _mask_email(match: re.Match) -> str:
    first = match.group(1)
    domain = match.group(3)
    return f"{first}***{domain}"


def _mask_phone(value: str) -> str:
    if len(value) <= 8:
        return value
    prefix = value[:6]
    suffix = value[-2:]
    return f"{prefix}****{suffix}"


def _mask_ip(match: re.Match) -> str:
    return f"{match.group(1)}.{match.group(2)}.*.*"


def mask_tail(value: str, keep: int = 4) -> str:
    value = value or ""
    if len(value) <= keep:
        return "*" * len(value)
    return "*" * (len(value) - keep) + value[-keep:]


def redact_text(value: str) -> str:
    masked = _EMAIL_RE.sub(_mask_email, value)
    masked = _UPI_RE.sub(_mask_email, masked)

    def _phone_replace(match: re.Match) -> str:
        return _mask_phone(match.group(0))

    masked = _PHONE_RE.sub(_phone_replace, masked)
    masked = _IPV4_RE.sub(_mask_ip, masked)

    for marker in ("access_token", "refresh_token", "bearer"):
        if marker in masked.lower():
            return "[REDACTED]"

    return masked


def _is_sensitive_key(key: str) -> bool:
    key_l = (key or "").lower()
    return any(marker in key_l for marker in _SENSITIVE_KEY_MARKERS)


def redact_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return redact_dict(value)
    if isinstance(value, list):
        return [redact_value(v) for v in value]
    return value


def redact_dict(payload: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in payload.items():
        if _is_sensitive_key(k):
            out[k] = "[REDACTED]"
        elif (k or "").lower() in _TAIL_ONLY_KEYS and isinstance(v, str):
            out[k] = mask_tail(v)
        else:
            out[k] = redact_value(v)
    return out

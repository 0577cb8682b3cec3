from __future__ import annotations

from threading import Lock
from typing import Tuple


_lock = Lock()
_counters: dict[str, dict[Tuple[Tuple[str, str], ...], int]] = {}


def _inc(name: str, labels: dict[str, str] | None = None, value: int = 1) -> None:
    key = tuple(sorted((labels or {}).items()))
    with _lock:
        series = _counters.setdefault(name, {})
        series[key] = int(series.get(key, 0)) + int(value)


def increment_http_requests(route: str, status: int) -> None:
    _inc("http_requests_total", {"route": route, "status": str(status)})


def increment_webhook_event(event: str, signature_valid: bool, result: str) -> None:
    _inc(
        "webhook_events_total",
        {
            "event": event,
            "signature_valid": str(signature_valid).lower(),
            "result": result,
        },
    )


def increment_settlement(outcome: str) -> None:
    _inc("commission_settlements_total", {"outcome": outcome})


def increment_payout_transition(to_status: str) -> None:
    _inc("payout_request_transitions_total", {"to_status": to_status})


def increment_fraud_flag(flag_type: str) -> None:
    _inc("referral_fraud_flags_total", {"type": flag_type})


def counter_value(name: str, labels: dict[str, str] | None = None) -> int:
    key = tuple(sorted((labels or {}).items()))
    with _lock:
        return int(_counters.get(name, {}).get(key, 0))


def render_prometheus() -> str:
    lines: list[str] = []
    with _lock:
        for name, series in sorted(_counters.items()):
            lines.append(f"# TYPE {name} counter")
            for labels, value in sorted(series.items()):
                if labels:
                    label_str = ",".join(f'{k}="{v}"' for k, v in labels)
                    lines.append(f"{name}{{{label_str}}} {value}")
                else:
                    lines.append(f"{name} {value}")
    return "\n".join(lines) + ("\n" if lines else "")

from __future__ import annotations

import logging
from typing import Any

from services.redaction import redact_dict


logger = logging.getLogger("settlement.audit")


def write_audit_log(
    store,
    *,
    actor: str,
    action: str,
    target_id: str | None,
    metadata: dict[str, Any] | None = None,
) -> None:
    store.insert_audit_event(
        actor=actor,
        action=action,
        target_id=target_id,
        metadata=redact_dict(metadata or {}),
    )
    logger.info("audit action=%s actor=%s target_id=%s", action, actor, target_id)

# routes/admin_fraud.py
from __future__ import annotations

from dataclasses import asdict
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from app.referrals.codes import normalize_code
from deps.admin import require_admin
from deps.store import get_store
from schemas import FraudLogItem


router = APIRouter(prefix="/v1/admin/fraud", tags=["admin_fraud"])

FraudType = Literal["code_usage", "self_use", "rapid_repeat", "suspicious_pattern"]


@router.get("/logs")
def list_logs(
    referral_code: Optional[str] = Query(None, max_length=32),
    type: Optional[list[FraudType]] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    _admin=Depends(require_admin),
    store=Depends(get_store),
):
    """
    Returns:
      { "logs": [...], "count": N, "limit": limit }
    """
    logs = store.list_fraud_logs(
        referral_code=normalize_code(referral_code) or None,
        types=type,
        limit=limit,
    )
    return {"logs": [FraudLogItem(**asdict(e)) for e in logs], "count": len(logs), "limit": limit}

from __future__ import annotations

import os

from fastapi import APIRouter, Depends

from deps.store import get_store
from settings import settings

router = APIRouter(tags=["health"])

MIGRATION_REVISION = "0001_settlement_schema"


def _check_store(store) -> tuple[bool, str | None]:
    try:
        store.ping()
        return True, None
    except Exception as exc:
        return False, f"{type(exc).__name__}: {exc}"


def _resolve_git_sha() -> str | None:
    return (
        (os.getenv("GIT_SHA") or "").strip()
        or (os.getenv("FLY_IMAGE_REF") or "").strip()
        or None
    )


@router.get("/health")
def health():
    return {
        "ok": True,
        "env": settings.ENV,
        "gateway_mode": settings.GATEWAY_MODE,
        "git_sha": _resolve_git_sha(),
    }


@router.get("/readyz")
def readyz(store=Depends(get_store)):
    store_ok, store_error = _check_store(store)
    return {
        "ready": store_ok,
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "git_sha": _resolve_git_sha(),
        "store_backend": settings.STORE_BACKEND,
        "store_ok": store_ok,
        "store_error": store_error,
        "migration_revision": MIGRATION_REVISION,
    }

# deps/store.py
from __future__ import annotations

import threading

from settings import settings

_lock = threading.Lock()
_store = None


def get_store():
    """Process-wide store; tests replace it through dependency_overrides."""
    global _store
    with _lock:
        if _store is None:
            if settings.STORE_BACKEND == "memory":
                from app.store.memory import MemoryStore
                _store = MemoryStore(default_payout_threshold_cents=settings.DEFAULT_PAYOUT_THRESHOLD_CENTS)
            else:
                from app.store.postgres import PostgresStore
                _store = PostgresStore()
        return _store


def get_gateway():
    from app.providers.factory import get_gateway as _factory
    return _factory()

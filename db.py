import logging
from contextlib import contextmanager

import psycopg2
import psycopg2.extras
from psycopg2.pool import SimpleConnectionPool

from settings import settings


logger = logging.getLogger("settlement.db")

_pool: SimpleConnectionPool | None = None

# applied to every checkout from the pool
_SESSION_SETTINGS = (
    "SET statement_timeout = '5000ms';",
    "SET lock_timeout = '2000ms';",
    "SET idle_in_transaction_session_timeout = '5000ms';",
    "SET application_name = 'settlement_api';",
)


def init_pool() -> None:
    """
    Create the connection pool once. Raises if DATABASE_URL is unset so a
    misconfigured deploy fails on the first query instead of hanging.
    """
    global _pool
    if _pool is not None:
        return
    dsn = (settings.DATABASE_URL or "").strip()
    if not dsn:
        raise RuntimeError("DATABASE_URL is not set")
    psycopg2.extras.register_uuid()
    _pool = SimpleConnectionPool(
        minconn=1,
        maxconn=max(1, int(settings.DB_POOL_MAX)),
        dsn=dsn,
        connect_timeout=5,
    )
    logger.info("db_pool_ready maxconn=%s", settings.DB_POOL_MAX)


def close_pool() -> None:
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None
        logger.info("db_pool_closed")


@contextmanager
def get_conn():
    """
    One transaction per checkout: commit on clean exit, roll back on any
    error. Composite store operations rely on this to stay all-or-nothing.
    """
    if _pool is None:
        init_pool()

    conn = _pool.getconn()
    try:
        with conn.cursor() as cur:
            for stmt in _SESSION_SETTINGS:
                cur.execute(stmt)
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        _pool.putconn(conn)

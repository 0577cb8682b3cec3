# app/workers/dispatch.py
"""
Detached execution for side effects that must never hold up or fail a
settlement: notifications, fraud logging, analytics.

`submit_detached` returns immediately. Exceptions raised by the task are
logged by a done-callback and discarded.
"""
from __future__ import annotations

import contextvars
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional

from settings import settings


logger = logging.getLogger("settlement.dispatch")

_lock = threading.Lock()
_executor: Optional[ThreadPoolExecutor] = None
_inflight: set[Future] = set()


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    with _lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=max(1, int(settings.DISPATCH_MAX_WORKERS)),
                thread_name_prefix="detached",
            )
        return _executor


def _on_done(fut: Future, name: str) -> None:
    with _lock:
        _inflight.discard(fut)
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        logger.error("detached_task_failed task=%s error=%s", name, repr(exc), exc_info=exc)


def submit_detached(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
    name = getattr(fn, "__name__", repr(fn))
    try:
        ctx = contextvars.copy_context()
        fut = _get_executor().submit(ctx.run, fn, *args, **kwargs)
    except RuntimeError:
        # executor already shut down (process exit)
        logger.warning("detached_task_dropped task=%s reason=executor_shutdown", name)
        return None
    with _lock:
        _inflight.add(fut)
    fut.add_done_callback(lambda f: _on_done(f, name))
    return fut


def drain(timeout: float = 5.0) -> bool:
    """Wait for every in-flight task. Returns False if some are still running."""
    with _lock:
        pending = list(_inflight)
    if not pending:
        return True
    _, not_done = wait(pending, timeout=timeout)
    return not not_done


def shutdown(wait_for_tasks: bool = True) -> None:
    global _executor
    with _lock:
        ex, _executor = _executor, None
    if ex is not None:
        ex.shutdown(wait=wait_for_tasks)

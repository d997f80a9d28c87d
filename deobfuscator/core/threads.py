"""
Background execution for blocking network work.

Fetches are submitted to a shared thread pool and awaited by the calling
worker. Work submitted from a pool thread runs inline, so a fetch nested in
another background task cannot starve the pool.
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

from ..config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()
_local = threading.local()


def _mark_background_thread():
    _local.is_background = True


def is_background_thread() -> bool:
    return getattr(_local, "is_background", False)


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    if _executor is None:
        with _executor_lock:
            if _executor is None:
                _executor = ThreadPoolExecutor(
                    max_workers=get_settings().fetch_workers,
                    thread_name_prefix="deobfuscator-fetch",
                    initializer=_mark_background_thread,
                )
    return _executor


def run_on_background_thread(func: Callable[..., T], *args) -> T:
    """Run *func* on the background pool and block until it returns."""
    if is_background_thread():
        return func(*args)
    return _get_executor().submit(func, *args).result()


def shutdown_background_executor():
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=False, cancel_futures=True)
            _executor = None


def verify_off_main_thread():
    """Blocking network calls on the main thread are a programming error."""
    if threading.current_thread() is not threading.main_thread():
        return
    if get_settings().debug:
        raise RuntimeError("Must call off the main thread")
    logger.error("Blocking call made on the main thread")

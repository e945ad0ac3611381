"""Async adapter for blocking store operations.

Sheets and file-backed store calls block, so they run in a bounded
:class:`~concurrent.futures.ThreadPoolExecutor`. :func:`astore_call`
additionally maps backend failures onto :class:`~shared.errors.StoreUnavailable`
so command handlers deal with one error type.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from threading import Lock
from typing import Callable, ParamSpec, TypeVar

from gspread.exceptions import GSpreadException
from requests import exceptions as requests_exceptions

from shared.errors import StoreUnavailable

P = ParamSpec("P")
T = TypeVar("T")

_logger = logging.getLogger("hq.sheets.async")
_EXECUTOR: ThreadPoolExecutor | None = None
_EXECUTOR_LOCK = Lock()
_MAX_WORKERS = 4

_BACKEND_ERRORS = (
    GSpreadException,
    requests_exceptions.RequestException,
    OSError,
    RuntimeError,
    KeyError,
    asyncio.TimeoutError,
)


def _get_executor() -> ThreadPoolExecutor:
    global _EXECUTOR
    if _EXECUTOR is None:
        with _EXECUTOR_LOCK:
            if _EXECUTOR is None:
                _EXECUTOR = ThreadPoolExecutor(
                    max_workers=_MAX_WORKERS,
                    thread_name_prefix="store-io",
                )
                _logger.info("StoreAsyncAdapter initialized (max_workers=%d)", _MAX_WORKERS)
    return _EXECUTOR


def shutdown_executor(wait: bool = True) -> None:
    """Shut down the shared executor if it has been initialised."""

    global _EXECUTOR
    if _EXECUTOR is not None:
        with _EXECUTOR_LOCK:
            if _EXECUTOR is not None:
                _EXECUTOR.shutdown(wait=wait)
                _EXECUTOR = None
                _logger.info("StoreAsyncAdapter executor shut down")


async def arun(
    func: Callable[P, T],
    *args: P.args,
    timeout: float | None = None,
    **kwargs: P.kwargs,
) -> T:
    """Execute ``func`` in the adapter executor and await the result."""

    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(_get_executor(), partial(func, *args, **kwargs))
    if timeout is not None:
        return await asyncio.wait_for(future, timeout)
    return await future


async def astore_call(
    operation: str,
    func: Callable[P, T],
    *args: P.args,
    timeout: float | None = None,
    **kwargs: P.kwargs,
) -> T:
    """Run a blocking store call, surfacing backend failures as ``StoreUnavailable``."""

    try:
        return await arun(func, *args, timeout=timeout, **kwargs)
    except StoreUnavailable:
        raise
    except _BACKEND_ERRORS as exc:
        _logger.warning("store call failed", extra={"operation": operation, "error": str(exc)})
        raise StoreUnavailable(operation, str(exc) or exc.__class__.__name__) from exc


__all__ = ["arun", "astore_call", "shutdown_executor"]

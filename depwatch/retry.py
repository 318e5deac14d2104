"""Retry helpers for operations that may fail transiently."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from depwatch.util import Context

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Outcome of a retried operation: its value, or the error that ended it."""

    value: T | None = None
    error: Exception | None = None


def retry(
    ctx: Context,
    operation: str,
    fn: Callable[[], T],
    num_attempts: int,
    backoff: float,
    can_retry: Callable[[Exception], bool],
) -> RetryResult[T]:
    """Call fn up to num_attempts times, waiting backoff seconds between failures.

    Stops early when fn succeeds, when can_retry returns False for the error,
    or when ctx ends.
    """
    err: Exception | None = None
    for attempt in range(1, num_attempts + 1):
        if ctx.done():
            logger.error("Context has been cancelled, stopping retry (operation=%s)", operation)
            return RetryResult(error=ctx.error())
        try:
            value = fn()
        except Exception as exc:  # noqa: BLE001 - any failure is a retry candidate
            err = exc
        else:
            return RetryResult(value=value)
        if not can_retry(err):
            logger.error(
                "Exiting retry as can_retry has returned false (operation=%s, attempt=%d): %s",
                operation,
                attempt,
                err,
            )
            return RetryResult(error=err)
        if ctx.wait(backoff):
            logger.error("Context has been cancelled, stopping retry (operation=%s)", operation)
            return RetryResult(error=ctx.error())
        logger.info(
            "Will attempt to retry operation (operation=%s, attempt=%d): %s", operation, attempt, err
        )
    return RetryResult(error=err)


def retry_until_predicate(
    ctx: Context,
    operation: str,
    predicate: Callable[[], bool],
    timeout: float,
    interval: float,
) -> bool:
    """Poll predicate every interval seconds until it holds, timeout passes or ctx ends."""
    deadline = time.monotonic() + timeout
    while True:
        if ctx.done():
            logger.info("Context has been cancelled, exiting retrying operation (operation=%s)", operation)
            return False
        if time.monotonic() >= deadline:
            logger.info("Timed out waiting for predicate to be true (operation=%s)", operation)
            return False
        if predicate():
            return True
        ctx.wait(interval)


def retry_on_error(
    ctx: Context,
    operation: str,
    fn: Callable[[], Any],
    interval: float,
) -> None:
    """Call fn until it does not raise or ctx ends, pausing interval seconds after failures."""
    while True:
        if ctx.done():
            logger.info("Context has either timed-out or has been cancelled (operation=%s)", operation)
            return
        try:
            fn()
        except Exception as exc:  # noqa: BLE001 - any failure is retried
            logger.error(
                "Error encountered during retry. Will re-attempt if possible (operation=%s): %s",
                operation,
                exc,
            )
            ctx.wait(interval)
            continue
        return


def always_retry(error: Exception) -> bool:
    """Retry predicate that accepts every error."""
    return True
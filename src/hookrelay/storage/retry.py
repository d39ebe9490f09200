"""Retry utilities for storage operations.

Transient network errors talking to Qdrant are retried with exponential
backoff. Once retries are exhausted the error surfaces as StorageError.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import httpx
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from hookrelay.exceptions import StorageError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Only network/server errors, never local validation errors
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    httpx.ConnectError,
    httpx.TimeoutException,
    ResponseHandlingException,
    UnexpectedResponse,
)


def _log_retry(retry_state: RetryCallState) -> None:
    """Log a retry before tenacity sleeps."""
    logger.warning(
        "Retrying Qdrant operation %s (attempt %d): %s",
        retry_state.fn.__name__ if retry_state.fn else "unknown",
        retry_state.attempt_number,
        retry_state.outcome.exception() if retry_state.outcome else None,
    )


storage_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    before_sleep=_log_retry,
    reraise=True,
)


def storage_operation(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Retry a Qdrant call and raise StorageError once retries run out."""
    retried = storage_retry(func)

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await retried(*args, **kwargs)
        except TRANSIENT_ERRORS as e:
            raise StorageError(f"{func.__name__} failed: {e}") from e

    return wrapper

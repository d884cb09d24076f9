"""Bounded exponential backoff for transient source and LLM failures.

Transient: timeouts, connection failures, HTTP 429 and any 5xx, and
rate-limit messages. Permanent (401, 403, 404) failures are raised
immediately so callers can skip the affected path.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

import requests

from .errors import LLMError, SourceError

T = TypeVar("T")
logger = logging.getLogger(__name__)

RETRY_DELAYS: tuple[float, ...] = (1.0, 4.0, 16.0)

_PERMANENT_STATUSES = frozenset({401, 403, 404})


def _status_of(exc: BaseException) -> int | None:
    match exc:
        case SourceError(status_code=int() as status) | LLMError(
            status_code=int() as status
        ):
            return status
        case requests.HTTPError(response=response) if response is not None:
            return response.status_code
        case _:
            return None


def is_transient_error(exc: BaseException) -> bool:
    """Decide whether ``exc`` is worth retrying.

    Args:
        exc: The exception raised by the attempted call.

    Returns:
        True for timeouts, connection errors, 429 and 5xx responses, and
        rate-limit messages; False for everything else, including
        401/403/404.
    """
    status = _status_of(exc)
    if status is not None:
        if status in _PERMANENT_STATUSES:
            return False
        if status == 429 or status >= 500:
            return True

    if isinstance(
        exc, (requests.Timeout, requests.ConnectionError, TimeoutError)
    ):
        return True

    message = str(exc).lower()
    return "rate limit" in message or "timed out" in message


def with_retry(
    func: Callable[[], T],
    delays: tuple[float, ...] = RETRY_DELAYS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` and retry transient failures with backoff.

    Args:
        func: Zero-argument callable to invoke.
        delays: Wait (seconds) before each retry; its length bounds the
            number of retries.
        sleep: Sleep function, injectable for tests.

    Returns:
        The first successful result.

    Raises:
        Exception: The last error once retries are exhausted, or the first
            non-transient error.
    """
    attempt = 0
    while True:
        try:
            return func()
        except Exception as exc:
            if attempt >= len(delays) or not is_transient_error(exc):
                raise
            delay = delays[attempt]
            attempt += 1
            logger.warning(
                "Transient error (attempt %d/%d), retrying in %.0fs: %s",
                attempt,
                len(delays),
                delay,
                exc,
            )
            sleep(delay)

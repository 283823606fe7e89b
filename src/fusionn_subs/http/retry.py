"""Tenacity retry policy shared by the outbound HTTP clients."""

from __future__ import annotations

import logging

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.RemoteProtocolError,
)


def _is_retryable_response(response: object) -> bool:
    status_code = getattr(response, "status_code", None)
    return status_code in RETRYABLE_STATUS_CODES


def create_http_retry_policy(
    *,
    max_retries: int = 3,
    min_wait_seconds: float = 5.0,
    max_wait_seconds: float = 30.0,
) -> Retrying:
    """Retry transport errors and 429/5xx responses with exponential backoff.

    ``max_retries`` counts retries, not attempts. The last response is
    returned as-is once retries are exhausted so callers can report its status.
    """

    return Retrying(
        stop=stop_after_attempt(max(0, max_retries) + 1),
        wait=wait_exponential(multiplier=min_wait_seconds, max=max_wait_seconds),
        retry=(
            retry_if_exception_type(RETRYABLE_EXCEPTIONS)
            | retry_if_result(_is_retryable_response)
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        retry_error_callback=lambda state: state.outcome.result() if state.outcome else None,
        reraise=True,
    )

"""Retry policy for Qdrant calls made by the webhook store.

Registration and audit writes sit on the delivery path, so a brief Qdrant
hiccup is retried a few times before it surfaces as a StorageError. Errors
the server will repeat on every call (bad filters, missing collections,
schema mismatches) are raised immediately.
"""

from __future__ import annotations

import logging

import httpx
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

STORAGE_RETRY_ATTEMPTS = 3


def is_transient(exc: BaseException) -> bool:
    """Whether a failed Qdrant call is worth repeating.

    Transport failures and 5xx/429 answers are; any other HTTP status is not.
    """
    if isinstance(exc, (httpx.TransportError, ResponseHandlingException)):
        return True
    if isinstance(exc, UnexpectedResponse):
        status = exc.status_code
        return status is not None and (status >= 500 or status == 429)
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Qdrant call %s failed (attempt %d/%d), retrying: %s",
        retry_state.fn.__name__ if retry_state.fn else "unknown",
        retry_state.attempt_number,
        STORAGE_RETRY_ATTEMPTS,
        exc,
    )


qdrant_retry = retry(
    stop=stop_after_attempt(STORAGE_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    retry=retry_if_exception(is_transient),
    before_sleep=_log_retry,
    reraise=True,
)

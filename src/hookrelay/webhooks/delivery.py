"""Webhook delivery with HMAC signatures and exponential backoff retry.

One call to ``DeliveryExecutor.deliver`` is one delivery sequence: the first
attempt plus up to ``retry_attempts`` retries against a single webhook.
Classification of each attempt:

- 2xx: success, stop.
- 4xx: terminal, stop (429 is retryable when ``retry_on_rate_limit`` is set).
- 5xx, other statuses, network errors, timeouts: retry after
  ``backoff_base_seconds * 2**attempt_index``.

The sequence always ends with exactly one audit record and a
``DeliveryResult``; failures are data, not exceptions.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING
from uuid import uuid4

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from hookrelay.config import Settings
from hookrelay.config import settings as default_settings
from hookrelay.exceptions import DeliveryError
from hookrelay.logging import get_logger
from hookrelay.models import DeliveryResult, WebhookDelivery

from .signing import compute_signature

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from hookrelay.models import WebhookConfig, WebhookEnvelope

    from .audit import DeliveryLogger

logger = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

SIGNATURE_HEADER = "X-Webhook-Signature"
DELIVERY_HEADER = "X-Webhook-Delivery"
EVENT_HEADER = "X-Webhook-Event"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"

# Header names a webhook's custom headers may not override (lowercase)
RESERVED_HEADERS = frozenset(
    {
        "content-type",
        SIGNATURE_HEADER.lower(),
        DELIVERY_HEADER.lower(),
        EVENT_HEADER.lower(),
        TIMESTAMP_HEADER.lower(),
    }
)


class RetryableStatusError(DeliveryError):
    """A response arrived but its status allows another attempt."""

    def __init__(self, response: httpx.Response, retry_after: float | None = None) -> None:
        self.response = response
        self.retry_after = retry_after
        super().__init__(
            _describe_status(response),
            status_code=response.status_code,
            retryable=True,
        )


def _describe_status(response: httpx.Response) -> str:
    return f"HTTP {response.status_code} {response.reason_phrase or ''}".rstrip()


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header (delta-seconds or HTTP-date) into seconds."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0.0, (when - datetime.now(UTC)).total_seconds())


def _is_retryable_exception(exc: BaseException) -> bool:
    return isinstance(exc, httpx.RequestError | TimeoutError | RetryableStatusError)


def _read_body(response: httpx.Response) -> str:
    """Best-effort response text; unreadable bodies become an empty string."""
    try:
        return response.text or ""
    except Exception:
        logger.warning(
            "Could not read webhook response body",
            status_code=response.status_code,
            exc_info=True,
        )
        return ""


class DeliveryExecutor:
    """Delivers one envelope to one webhook with timeout, retry and backoff.

    Example:
        ```python
        async with httpx.AsyncClient() as client:
            executor = DeliveryExecutor(client, DeliveryLogger(storage))
            result = await executor.deliver(webhook, envelope)
        ```
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        audit: DeliveryLogger,
        settings: Settings | None = None,
        sleep: SleepFn = asyncio.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the executor.

        Args:
            client: Shared HTTP client used for every attempt.
            audit: Writes the delivery record at the end of each sequence.
            settings: Delivery settings. Defaults to the global settings.
            sleep: Coroutine used for backoff waits.
            monotonic: Clock used to measure sequence duration.
        """
        self._client = client
        self._audit = audit
        self._settings = settings or default_settings
        self._sleep = sleep
        self._monotonic = monotonic
        self._backoff = wait_exponential(
            multiplier=self._settings.backoff_base_seconds,
            exp_base=2,
            max=self._settings.backoff_max_seconds,
        )

    def build_headers(
        self,
        webhook: WebhookConfig,
        envelope: WebhookEnvelope,
        delivery_id: str,
        signature: str,
    ) -> dict[str, str]:
        """Build request headers.

        Custom headers are merged first; protocol headers are applied last
        and tenant values for reserved names are dropped.
        """
        headers: dict[str, str] = {"User-Agent": self._settings.user_agent}

        for name, value in webhook.headers.items():
            if name.lower() in RESERVED_HEADERS:
                logger.warning(
                    "Ignoring reserved header on webhook",
                    webhook_id=webhook.id,
                    header=name,
                )
                continue
            if name.lower() == "user-agent":
                headers.pop("User-Agent", None)
            headers[name] = value

        headers.update(
            {
                "Content-Type": "application/json",
                SIGNATURE_HEADER: signature,
                DELIVERY_HEADER: delivery_id,
                EVENT_HEADER: envelope.event,
                TIMESTAMP_HEADER: envelope.timestamp_iso,
            }
        )
        return headers

    def _is_retryable_status(self, status_code: int) -> bool:
        if status_code == 429:
            return self._settings.retry_on_rate_limit
        return not 400 <= status_code < 500

    def _wait(self, retry_state: RetryCallState) -> float:
        """Exponential backoff, stretched to honor Retry-After."""
        delay = self._backoff(retry_state)
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RetryableStatusError) and exc.retry_after is not None:
            delay = max(delay, min(exc.retry_after, self._settings.max_retry_after_seconds))
        return float(delay)

    async def deliver(self, webhook: WebhookConfig, envelope: WebhookEnvelope) -> DeliveryResult:
        """Run one delivery sequence and record its outcome.

        Args:
            webhook: Target webhook configuration.
            envelope: Envelope shared by every webhook for this occurrence.

        Returns:
            DeliveryResult mirroring the stored record.
        """
        delivery_id = str(uuid4())
        started = self._monotonic()
        log = logger.bind(
            delivery_id=delivery_id,
            webhook_id=webhook.id,
            webhook_event=envelope.event,
        )

        body = envelope.to_json()
        content = body.encode("utf-8")
        signature = compute_signature(content, webhook.secret)
        headers = self.build_headers(webhook, envelope, delivery_id, signature)

        attempts = 0

        async def send() -> httpx.Response:
            nonlocal attempts
            attempts += 1
            async with asyncio.timeout(webhook.timeout_seconds):
                response = await self._client.post(
                    str(webhook.url),
                    content=content,
                    headers=headers,
                    timeout=webhook.timeout_seconds,
                )
            if response.is_success or not self._is_retryable_status(response.status_code):
                return response
            raise RetryableStatusError(
                response,
                retry_after=parse_retry_after(response.headers.get("Retry-After"))
                if response.status_code == 429
                else None,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(webhook.retry_attempts + 1),
            wait=self._wait,
            retry=retry_if_exception(_is_retryable_exception),
            sleep=self._sleep,
            before_sleep=_log_retry(log),
            reraise=True,
        )

        response: httpx.Response | None = None
        error: str | None = None
        try:
            response = await retrying(send)
        except RetryableStatusError as e:
            response = e.response
        except (httpx.TimeoutException, TimeoutError):
            error = f"Request timed out after {webhook.timeout}ms"
        except httpx.RequestError as e:
            error = str(e) or type(e).__name__
        except Exception as e:
            error = f"Unexpected error: {e}"
            log.exception("Webhook delivery error")

        success = response is not None and response.is_success
        status_code = response.status_code if response is not None else None
        response_text = _read_body(response) if response is not None else ""
        if response is not None and not success:
            error = _describe_status(response)

        duration_ms = int((self._monotonic() - started) * 1000)
        attempt = max(attempts, 1)

        if success:
            log.info(
                "Webhook delivered",
                status_code=status_code,
                attempts=attempt,
                duration_ms=duration_ms,
            )
        else:
            log.warning(
                "Webhook delivery failed",
                status_code=status_code,
                attempts=attempt,
                duration_ms=duration_ms,
                error=error,
            )

        limit = self._settings.response_body_limit
        await self._audit.log(
            WebhookDelivery(
                id=delivery_id,
                webhook_id=webhook.id,
                company_id=webhook.company_id,
                event=envelope.event,
                payload=body,
                success=success,
                status_code=status_code,
                response=response_text[:limit],
                error=error,
                duration_ms=duration_ms,
                attempt=attempt,
            )
        )

        return DeliveryResult(
            delivery_id=delivery_id,
            webhook_id=webhook.id,
            success=success,
            status_code=status_code,
            response=response_text,
            error=error,
            duration_ms=duration_ms,
            attempt=attempt,
        )


def _log_retry(log: BoundLogger) -> Callable[[RetryCallState], None]:
    """Build a tenacity before_sleep hook bound to one delivery."""

    def before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        log.info(
            "Retrying webhook delivery",
            attempt=retry_state.attempt_number,
            delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            reason=str(exc) if exc else None,
        )

    return before_sleep

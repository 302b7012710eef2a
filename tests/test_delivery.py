"""Unit tests for the webhook delivery executor."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta
from email.utils import format_datetime
from unittest.mock import AsyncMock

import httpx
import pytest
from conftest import Endpoint, RecordingSleep

from hookrelay.config import Settings
from hookrelay.exceptions import StorageError
from hookrelay.models import WebhookDelivery
from hookrelay.webhooks import compute_signature, parse_retry_after, verify_signature


def logged_record(store: AsyncMock) -> WebhookDelivery:
    """The single delivery record written to the mock store."""
    store.log_delivery.assert_awaited_once()
    return store.log_delivery.await_args.args[0]


class TestSuccessfulDelivery:
    """Tests for deliveries accepted on the first attempt."""

    @pytest.mark.asyncio
    async def test_first_attempt_success(
        self, make_executor, make_webhook, envelope, store, sleep: RecordingSleep
    ) -> None:
        """A 2xx response should succeed with one attempt and no backoff."""
        endpoint = Endpoint(httpx.Response(200, text="ok"))
        executor = make_executor(endpoint)

        result = await executor.deliver(make_webhook(), envelope)

        assert result.success is True
        assert result.status_code == 200
        assert result.response == "ok"
        assert result.error is None
        assert result.attempt == 1
        assert result.webhook_id == "whk_test123"
        assert endpoint.calls == 1
        assert sleep.delays == []

        record = logged_record(store)
        assert record.id == result.delivery_id
        assert record.success is True
        assert record.attempt == 1
        assert record.payload == envelope.to_json()
        assert record.company_id == "co_123"
        assert record.event == "subscription.created"

    @pytest.mark.asyncio
    async def test_request_shape(self, make_executor, make_webhook, envelope) -> None:
        """The POST should carry the envelope body and protocol headers."""
        endpoint = Endpoint(httpx.Response(204))
        webhook = make_webhook(headers={"Authorization": "Bearer tenant-token"})
        executor = make_executor(endpoint)

        result = await executor.deliver(webhook, envelope)

        request = endpoint.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://example.com/hooks"
        assert request.content == envelope.to_json().encode()
        assert json.loads(request.content) == {
            "event": "subscription.created",
            "timestamp": "2024-01-15T12:30:45.123Z",
            "data": {"subscriptionId": "sub_1"},
            "companyId": "co_123",
        }
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["User-Agent"] == "Hookrelay-Webhooks/1.0"
        assert request.headers["X-Webhook-Event"] == "subscription.created"
        assert request.headers["X-Webhook-Delivery"] == result.delivery_id
        assert request.headers["X-Webhook-Timestamp"] == "2024-01-15T12:30:45.123Z"
        assert request.headers["Authorization"] == "Bearer tenant-token"
        assert verify_signature(
            request.content, "test_secret_value", request.headers["X-Webhook-Signature"]
        )

    @pytest.mark.asyncio
    async def test_reserved_headers_cannot_be_overridden(
        self, make_executor, make_webhook, envelope
    ) -> None:
        """Custom headers must not replace signature or content type."""
        endpoint = Endpoint(httpx.Response(200))
        webhook = make_webhook(
            headers={
                "x-webhook-signature": "sha256=forged",
                "Content-Type": "text/plain",
                "X-Tenant": "acme",
            }
        )
        executor = make_executor(endpoint)

        await executor.deliver(webhook, envelope)

        request = endpoint.requests[0]
        assert request.headers["X-Webhook-Signature"] == compute_signature(
            request.content, "test_secret_value"
        )
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["X-Tenant"] == "acme"

    @pytest.mark.asyncio
    async def test_user_agent_can_be_overridden(
        self, make_executor, make_webhook, envelope
    ) -> None:
        """A tenant-supplied User-Agent replaces the default."""
        endpoint = Endpoint(httpx.Response(200))
        executor = make_executor(endpoint)

        await executor.deliver(make_webhook(headers={"user-agent": "acme/2"}), envelope)

        assert endpoint.requests[0].headers["User-Agent"] == "acme/2"

    @pytest.mark.asyncio
    async def test_distinct_delivery_ids(self, make_executor, make_webhook, envelope) -> None:
        """Every delivery sequence gets its own ID."""
        executor = make_executor(Endpoint(httpx.Response(200)))
        webhook = make_webhook()

        first = await executor.deliver(webhook, envelope)
        second = await executor.deliver(webhook, envelope)

        assert first.delivery_id != second.delivery_id


class TestRetryPolicy:
    """Tests for status classification and exponential backoff."""

    @pytest.mark.asyncio
    async def test_client_error_is_terminal(
        self, make_executor, make_webhook, envelope, store, sleep: RecordingSleep
    ) -> None:
        """4xx responses should not be retried."""
        endpoint = Endpoint(httpx.Response(404, text="no such hook"))
        executor = make_executor(endpoint)

        result = await executor.deliver(make_webhook(retry_attempts=3), envelope)

        assert endpoint.calls == 1
        assert sleep.delays == []
        assert result.success is False
        assert result.status_code == 404
        assert result.error == "HTTP 404 Not Found"
        assert result.response == "no such hook"
        assert result.attempt == 1
        assert logged_record(store).attempt == 1

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(
        self, make_executor, make_webhook, envelope, store, sleep: RecordingSleep
    ) -> None:
        """5xx should be retried with doubling delays, then recorded once."""
        endpoint = Endpoint(httpx.Response(500))
        executor = make_executor(endpoint)

        result = await executor.deliver(make_webhook(retry_attempts=2), envelope)

        assert endpoint.calls == 3
        assert sleep.delays == [1.0, 2.0]
        assert result.success is False
        assert result.status_code == 500
        assert result.error == "HTTP 500 Internal Server Error"
        assert result.attempt == 3

        record = logged_record(store)
        assert record.attempt == 3
        assert record.status_code == 500

    @pytest.mark.asyncio
    async def test_recovers_after_server_errors(
        self, make_executor, make_webhook, envelope, sleep: RecordingSleep
    ) -> None:
        """A success on a later attempt ends the sequence as delivered."""
        endpoint = Endpoint(
            httpx.Response(503),
            httpx.Response(502),
            httpx.Response(200, text="finally"),
        )
        executor = make_executor(endpoint)

        result = await executor.deliver(make_webhook(retry_attempts=3), envelope)

        assert endpoint.calls == 3
        assert sleep.delays == [1.0, 2.0]
        assert result.success is True
        assert result.response == "finally"
        assert result.error is None
        assert result.attempt == 3

    @pytest.mark.asyncio
    async def test_every_attempt_sends_same_body_and_delivery_id(
        self, make_executor, make_webhook, envelope
    ) -> None:
        """Retries reuse the signed body and the delivery ID."""
        endpoint = Endpoint(httpx.Response(500), httpx.Response(200))
        executor = make_executor(endpoint)

        await executor.deliver(make_webhook(retry_attempts=1), envelope)

        first, second = endpoint.requests
        assert first.content == second.content
        assert first.headers["X-Webhook-Delivery"] == second.headers["X-Webhook-Delivery"]
        assert first.headers["X-Webhook-Signature"] == second.headers["X-Webhook-Signature"]

    @pytest.mark.asyncio
    async def test_zero_retries(self, make_executor, make_webhook, envelope) -> None:
        """retry_attempts=0 means exactly one attempt."""
        endpoint = Endpoint(httpx.Response(500))
        executor = make_executor(endpoint)

        result = await executor.deliver(make_webhook(retry_attempts=0), envelope)

        assert endpoint.calls == 1
        assert result.attempt == 1

    @pytest.mark.asyncio
    async def test_backoff_base_from_settings(
        self, make_executor, make_webhook, envelope, sleep: RecordingSleep
    ) -> None:
        """The base delay is configurable."""
        executor = make_executor(
            Endpoint(httpx.Response(500)),
            settings=Settings(_env_file=None, backoff_base_seconds=0.5),
        )

        await executor.deliver(make_webhook(retry_attempts=3), envelope)

        assert sleep.delays == [0.5, 1.0, 2.0]


class TestTransportFailures:
    """Tests for network errors and timeouts."""

    @pytest.mark.asyncio
    async def test_connection_error_is_retried(
        self, make_executor, make_webhook, envelope, store, sleep: RecordingSleep
    ) -> None:
        """Transport errors are retryable and end up on the record."""
        endpoint = Endpoint(httpx.ConnectError("connection refused"))
        executor = make_executor(endpoint)

        result = await executor.deliver(make_webhook(retry_attempts=1), envelope)

        assert endpoint.calls == 2
        assert sleep.delays == [1.0]
        assert result.success is False
        assert result.status_code is None
        assert result.error == "connection refused"
        assert result.attempt == 2

        record = logged_record(store)
        assert record.status_code is None
        assert record.error == "connection refused"

    @pytest.mark.asyncio
    async def test_http_timeout(self, make_executor, make_webhook, envelope) -> None:
        """An httpx timeout is reported with the configured timeout."""
        endpoint = Endpoint(httpx.ReadTimeout("read timed out"))
        executor = make_executor(endpoint)

        result = await executor.deliver(make_webhook(retry_attempts=0), envelope)

        assert result.success is False
        assert result.error == "Request timed out after 10000ms"

    @pytest.mark.asyncio
    async def test_attempt_deadline(self, make_executor, make_webhook, envelope) -> None:
        """A slow receiver is cut off at the webhook's timeout."""
        calls = 0

        async def slow(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            await asyncio.sleep(5)
            return httpx.Response(200)

        executor = make_executor(slow)

        result = await executor.deliver(make_webhook(retry_attempts=0, timeout=20), envelope)

        assert calls == 1
        assert result.success is False
        assert result.status_code is None
        assert result.error == "Request timed out after 20ms"

    @pytest.mark.asyncio
    async def test_timeout_then_success(
        self, make_executor, make_webhook, envelope, sleep: RecordingSleep
    ) -> None:
        """A timed-out attempt fails only that attempt."""
        endpoint = Endpoint(httpx.ConnectTimeout("timed out"), httpx.Response(200))
        executor = make_executor(endpoint)

        result = await executor.deliver(make_webhook(retry_attempts=1), envelope)

        assert result.success is True
        assert result.attempt == 2
        assert sleep.delays == [1.0]


class TestRateLimiting:
    """Tests for 429 handling and Retry-After."""

    @pytest.mark.asyncio
    async def test_retry_after_seconds(
        self, make_executor, make_webhook, envelope, sleep: RecordingSleep
    ) -> None:
        """Retry-After stretches the backoff delay."""
        endpoint = Endpoint(
            httpx.Response(429, headers={"Retry-After": "5"}),
            httpx.Response(200),
        )
        executor = make_executor(endpoint)

        result = await executor.deliver(make_webhook(retry_attempts=1), envelope)

        assert result.success is True
        assert sleep.delays == [5.0]

    @pytest.mark.asyncio
    async def test_retry_after_is_capped(
        self, make_executor, make_webhook, envelope, sleep: RecordingSleep
    ) -> None:
        """An excessive Retry-After is capped by max_retry_after_seconds."""
        endpoint = Endpoint(
            httpx.Response(429, headers={"Retry-After": "3600"}),
            httpx.Response(200),
        )
        executor = make_executor(
            endpoint,
            settings=Settings(_env_file=None, max_retry_after_seconds=30),
        )

        await executor.deliver(make_webhook(retry_attempts=1), envelope)

        assert sleep.delays == [30.0]

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(
        self, make_executor, make_webhook, envelope
    ) -> None:
        """A receiver that keeps returning 429 ends as a failed 429."""
        endpoint = Endpoint(httpx.Response(429))
        executor = make_executor(endpoint)

        result = await executor.deliver(make_webhook(retry_attempts=2), envelope)

        assert endpoint.calls == 3
        assert result.status_code == 429
        assert result.error == "HTTP 429 Too Many Requests"

    @pytest.mark.asyncio
    async def test_rate_limit_terminal_when_disabled(
        self, make_executor, make_webhook, envelope, sleep: RecordingSleep
    ) -> None:
        """With retry_on_rate_limit off, 429 is terminal like other 4xx."""
        endpoint = Endpoint(httpx.Response(429, headers={"Retry-After": "1"}))
        executor = make_executor(
            endpoint,
            settings=Settings(_env_file=None, retry_on_rate_limit=False),
        )

        result = await executor.deliver(make_webhook(retry_attempts=3), envelope)

        assert endpoint.calls == 1
        assert sleep.delays == []
        assert result.attempt == 1


class TestParseRetryAfter:
    """Tests for parse_retry_after."""

    def test_seconds(self):
        """Delta-seconds values are parsed as floats."""
        assert parse_retry_after("120") == 120.0
        assert parse_retry_after(" 2.5 ") == 2.5

    def test_missing_or_invalid(self):
        """Missing or unparseable values give None."""
        assert parse_retry_after(None) is None
        assert parse_retry_after("") is None
        assert parse_retry_after("soon") is None

    def test_negative_clamped(self):
        """Negative values are clamped to zero."""
        assert parse_retry_after("-5") == 0.0

    def test_http_date(self):
        """An HTTP-date is converted to seconds from now."""
        future = datetime.now(UTC) + timedelta(seconds=90)
        delay = parse_retry_after(format_datetime(future, usegmt=True))
        assert delay is not None
        assert 80 <= delay <= 90

    def test_http_date_in_past(self):
        """A date in the past means retry immediately."""
        past = datetime.now(UTC) - timedelta(hours=1)
        assert parse_retry_after(format_datetime(past, usegmt=True)) == 0.0


class TestDeliveryRecord:
    """Tests for the audit record written per sequence."""

    @pytest.mark.asyncio
    async def test_response_truncated_on_record(
        self, make_executor, make_webhook, envelope, store
    ) -> None:
        """The stored response is capped; the returned one is not."""
        executor = make_executor(Endpoint(httpx.Response(200, text="x" * 1500)))

        result = await executor.deliver(make_webhook(), envelope)

        assert len(logged_record(store).response) == 1000
        assert len(result.response) == 1500

    @pytest.mark.asyncio
    async def test_duration_measured_across_sequence(
        self, make_executor, make_webhook, envelope, store
    ) -> None:
        """duration_ms covers the whole sequence on the injected clock."""
        ticks = iter([100.0, 100.25])
        executor = make_executor(
            Endpoint(httpx.Response(200)),
            monotonic=lambda: next(ticks),
        )

        result = await executor.deliver(make_webhook(), envelope)

        assert result.duration_ms == 250
        assert logged_record(store).duration_ms == 250

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_delivery(
        self, make_executor, make_webhook, envelope, store
    ) -> None:
        """A store error while logging is swallowed."""
        store.log_delivery.side_effect = StorageError("log_delivery failed")
        executor = make_executor(Endpoint(httpx.Response(200)))

        result = await executor.deliver(make_webhook(), envelope)

        assert result.success is True
        store.log_delivery.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_secret_not_in_record(
        self, make_executor, make_webhook, envelope, store
    ) -> None:
        """The signing secret never appears in the stored record."""
        executor = make_executor(Endpoint(httpx.Response(200)))

        await executor.deliver(make_webhook(secret="very_private_secret"), envelope)

        assert "very_private_secret" not in logged_record(store).model_dump_json()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("outcomes", "expected"),
        [
            ([httpx.Response(200)], 1),
            ([httpx.Response(404)], 1),
            ([httpx.Response(503), httpx.Response(200)], 2),
            ([httpx.ConnectError("refused")], 3),
        ],
    )
    async def test_record_and_result_agree_on_attempts(
        self, make_executor, make_webhook, envelope, store, outcomes, expected
    ) -> None:
        """The returned result and the stored record count the same attempts."""
        executor = make_executor(Endpoint(*outcomes))

        result = await executor.deliver(make_webhook(retry_attempts=2), envelope)

        assert result.attempt == expected
        assert logged_record(store).attempt == result.attempt

"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from hookrelay.config import Settings
from hookrelay.models import WebhookConfig, WebhookEnvelope
from hookrelay.webhooks import DeliveryExecutor, DeliveryLogger

# Add tests directory to path so helpers can be imported from conftest
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

FIXED_TIME = datetime(2024, 1, 15, 12, 30, 45, 123000, tzinfo=UTC)


class RecordingSleep:
    """Backoff sleep that records requested delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class Endpoint:
    """Scripted receiver for httpx.MockTransport.

    Each request consumes the next scripted outcome; the last one repeats.
    An outcome is an httpx.Response or an exception to raise.
    """

    def __init__(self, *outcomes: httpx.Response | Exception) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        # Fresh copy so a repeated outcome is never bound to two requests
        return httpx.Response(
            outcome.status_code,
            headers=outcome.headers,
            content=outcome.content,
        )

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def store() -> AsyncMock:
    """Create a mock webhook store."""
    store = AsyncMock()
    store.list_webhooks = AsyncMock(return_value=[])
    store.get_webhook = AsyncMock(return_value=None)
    store.log_delivery = AsyncMock(side_effect=lambda delivery: delivery.id)
    store.get_delivery_logs = AsyncMock(return_value=[])
    return store


@pytest.fixture
def make_webhook() -> Callable[..., WebhookConfig]:
    """Factory for webhook configurations with test defaults."""

    def factory(**overrides: Any) -> WebhookConfig:
        fields: dict[str, Any] = {
            "id": "whk_test123",
            "company_id": "co_123",
            "url": "https://example.com/hooks",
            "secret": "test_secret_value",
            "events": ["subscription.created"],
        }
        fields.update(overrides)
        return WebhookConfig(**fields)

    return factory


@pytest.fixture
def envelope() -> WebhookEnvelope:
    return WebhookEnvelope(
        event="subscription.created",
        timestamp=FIXED_TIME,
        data={"subscriptionId": "sub_1"},
        company_id="co_123",
    )


@pytest.fixture
async def make_executor(
    store: AsyncMock,
    settings: Settings,
    sleep: RecordingSleep,
):
    """Factory for executors whose HTTP traffic goes to a mock handler."""
    clients: list[httpx.AsyncClient] = []

    def factory(handler: Callable[..., Any], **kwargs: Any) -> DeliveryExecutor:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        kwargs.setdefault("settings", settings)
        kwargs.setdefault("sleep", sleep)
        return DeliveryExecutor(client, DeliveryLogger(store), **kwargs)

    yield factory

    for client in clients:
        await client.aclose()

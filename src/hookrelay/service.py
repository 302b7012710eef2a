"""Core hookrelay service layer.

This module provides the WebhookService that wires storage, the HTTP client,
the delivery executor and the dispatcher into one object.

Example:
    ```python
    from hookrelay.service import WebhookService

    async with WebhookService.create() as hooks:
        webhook = await hooks.register_webhook(
            company_id="co_123",
            url="https://example.com/hooks",
            events=["subscription.created"],
        )

        results = await hooks.billing.subscription_created(
            "co_123", subscription, customer
        )
        for result in results:
            print(result.delivery_id, result.success, result.attempt)
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from hookrelay.adapters import BillingEvents, CompanyDirectory, RecruitingEvents
from hookrelay.config import Settings
from hookrelay.logging import configure_logging, get_logger
from hookrelay.models import WebhookConfig
from hookrelay.storage import WebhookStorage
from hookrelay.webhooks import DeliveryExecutor, DeliveryLogger, WebhookDispatcher

if TYPE_CHECKING:
    from collections.abc import Mapping

    from hookrelay.models import DeliveryResult, WebhookDelivery

logger = get_logger(__name__)


@dataclass
class WebhookService:
    """High-level hookrelay service for registering webhooks and emitting events.

    This service provides a simple interface for:
    - register_webhook(): Store a new subscriber with configured defaults
    - trigger_event(): Deliver an event to every subscribed webhook
    - send_test(): Send a webhook.test event to one webhook
    - get_delivery_logs(): Read a webhook's recent delivery records
    - billing / recruiting: Event adapters bound to this service

    Attributes:
        storage: Storage backend (Qdrant).
        settings: Configuration settings.
        http_client: Shared HTTP client for deliveries. Created on initialize()
            when not supplied; a supplied client is not closed by the service.
        directory: Optional lookup from billing identifiers to companies.
    """

    storage: WebhookStorage
    settings: Settings
    http_client: httpx.AsyncClient | None = None
    directory: CompanyDirectory | None = None

    _owns_client: bool = field(default=False, init=False, repr=False)
    _dispatcher: WebhookDispatcher | None = field(default=None, init=False, repr=False)

    @classmethod
    def create(cls, settings: Settings | None = None) -> WebhookService:
        """Create a WebhookService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.

        Returns:
            Configured WebhookService instance.
        """
        if settings is None:
            settings = Settings()

        return cls(
            storage=WebhookStorage(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                prefix=settings.collection_prefix,
                max_scroll_limit=settings.storage_max_scroll_limit,
            ),
            settings=settings,
        )

    @property
    def dispatcher(self) -> WebhookDispatcher:
        """The dispatcher, raising if the service is not initialized."""
        if self._dispatcher is None:
            raise RuntimeError("Service not initialized. Call initialize() first.")
        return self._dispatcher

    @property
    def billing(self) -> BillingEvents:
        return BillingEvents(self.dispatcher, directory=self.directory)

    @property
    def recruiting(self) -> RecruitingEvents:
        return RecruitingEvents(self.dispatcher)

    async def initialize(self) -> None:
        """Initialize logging, storage collections and the HTTP client."""
        configure_logging(level=self.settings.log_level, format=self.settings.log_format)
        await self.storage.initialize()

        if self.http_client is None:
            self.http_client = httpx.AsyncClient()
            self._owns_client = True

        executor = DeliveryExecutor(
            self.http_client,
            DeliveryLogger(self.storage),
            settings=self.settings,
        )
        self._dispatcher = WebhookDispatcher(
            self.storage,
            executor,
            max_concurrent=self.settings.max_concurrent_deliveries,
        )
        logger.info("Webhook service initialized", env=self.settings.env)

    async def close(self) -> None:
        """Close the HTTP client (if owned) and the storage connection."""
        if self._owns_client and self.http_client is not None:
            await self.http_client.aclose()
            self.http_client = None
            self._owns_client = False
        self._dispatcher = None
        await self.storage.close()

    async def __aenter__(self) -> WebhookService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def register_webhook(
        self,
        company_id: str,
        url: str,
        events: list[str],
        **fields: Any,
    ) -> WebhookConfig:
        """Register a webhook, filling timeout and retries from settings.

        Args:
            company_id: Tenant that owns the webhook.
            url: Endpoint that receives events.
            events: Event names to subscribe to.
            **fields: Any other WebhookConfig field (name, headers, secret, ...).

        Returns:
            The stored WebhookConfig, including its generated secret.
        """
        fields.setdefault("timeout", self.settings.default_timeout_ms)
        fields.setdefault("retry_attempts", self.settings.default_retry_attempts)
        webhook = WebhookConfig(company_id=company_id, url=url, events=events, **fields)
        await self.storage.store_webhook(webhook)
        logger.info(
            "Webhook registered",
            webhook_id=webhook.id,
            company_id=company_id,
            events=webhook.events,
        )
        return webhook

    async def trigger_event(
        self,
        company_id: str,
        event: str,
        data: Mapping[str, Any],
    ) -> list[DeliveryResult]:
        """Deliver an event to every active webhook of a company subscribed to it."""
        return await self.dispatcher.trigger_event(company_id, event, data)

    async def send_test(self, webhook_id: str) -> DeliveryResult:
        """Send a webhook.test event to one webhook."""
        return await self.dispatcher.send_test(webhook_id)

    async def get_delivery_logs(
        self,
        webhook_id: str,
        limit: int | None = None,
    ) -> list[WebhookDelivery]:
        """Most recent delivery records for a webhook, newest first."""
        return await self.dispatcher.get_delivery_logs(
            webhook_id, limit=limit or self.settings.delivery_log_limit
        )


__all__ = ["WebhookService"]

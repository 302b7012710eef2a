"""Fan-out of one event occurrence to every subscribed webhook.

Webhook delivery is a side effect of a business operation and must never
fail it. Every public method here returns data; store errors, delivery
errors and unexpected exceptions are logged and turned into empty lists or
failed results.

Deliveries for one trigger all run at once and are joined with
``asyncio.gather(..., return_exceptions=True)`` so one failing endpoint
cannot cancel, hide or delay the others. A trigger takes as long as its
slowest webhook, not the sum of them. There is no ordering guarantee across
webhooks or across triggers; receivers should rely on ``timestamp``.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from hookrelay.exceptions import NotFoundError
from hookrelay.logging import get_logger
from hookrelay.models import TEST_EVENT, DeliveryResult, WebhookEnvelope, utcnow

if TYPE_CHECKING:
    from hookrelay.models import WebhookConfig, WebhookDelivery
    from hookrelay.storage import WebhookStore

    from .delivery import DeliveryExecutor

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class WebhookDispatcher:
    """Dispatches events to the webhooks registered for a company.

    Example:
        ```python
        dispatcher = WebhookDispatcher(storage, executor)

        results = await dispatcher.trigger_event(
            "co_123", "payment.failed", {"invoiceId": "in_1"}
        )
        failed = [r for r in results if not r.delivered]
        ```
    """

    def __init__(
        self,
        store: WebhookStore,
        executor: DeliveryExecutor,
        max_concurrent: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            store: Source of webhook registrations and delivery logs.
            executor: Runs one delivery sequence per webhook.
            max_concurrent: Optional cap on deliveries in flight per trigger.
                None (the default) runs every matching webhook at once.
            clock: Supplies envelope timestamps.
        """
        self._store = store
        self._executor = executor
        self._max_concurrent = max_concurrent
        self._clock = clock

    async def trigger_event(
        self,
        company_id: str,
        event: str,
        data: Mapping[str, Any],
    ) -> list[DeliveryResult]:
        """Deliver an event to every active webhook of a company subscribed to it.

        Args:
            company_id: Tenant whose webhooks receive the event.
            event: Dot-namespaced event name (exact match against subscriptions).
            data: Event-specific payload.

        Returns:
            One DeliveryResult per matching webhook, or an empty list when none
            match or the webhooks could not be loaded.
        """
        log = logger.bind(company_id=company_id, webhook_event=event)

        try:
            webhooks = await self._store.list_webhooks(company_id, active_only=True)
        except Exception as e:
            log.error("Error loading webhooks for event", error=str(e), exc_info=True)
            return []

        relevant = [wh for wh in webhooks if wh.subscribes_to(event)]
        if not relevant:
            log.debug("No webhooks subscribed to event")
            return []

        envelope = WebhookEnvelope(
            event=event,
            timestamp=self._clock(),
            data=dict(data),
            company_id=company_id,
        )
        log.info("Dispatching webhook event", webhooks=len(relevant))
        return await self._deliver_all(relevant, envelope)

    async def _deliver_all(
        self,
        webhooks: list[WebhookConfig],
        envelope: WebhookEnvelope,
    ) -> list[DeliveryResult]:
        """Deliver concurrently and settle every task."""
        if self._max_concurrent is None:
            limit: asyncio.Semaphore | None = None
        else:
            limit = asyncio.Semaphore(self._max_concurrent)

        async def deliver(webhook: WebhookConfig) -> DeliveryResult:
            if limit is None:
                return await self._executor.deliver(webhook, envelope)
            async with limit:
                return await self._executor.deliver(webhook, envelope)

        outcomes = await asyncio.gather(
            *(deliver(wh) for wh in webhooks),
            return_exceptions=True,
        )

        results: list[DeliveryResult] = []
        for index, (webhook, outcome) in enumerate(zip(webhooks, outcomes, strict=True)):
            if isinstance(outcome, DeliveryResult):
                results.append(outcome)
                continue
            if not isinstance(outcome, Exception):
                # CancelledError and other BaseExceptions are not ours to absorb
                raise outcome
            logger.error(
                "Webhook delivery raised",
                webhook_id=webhook.id,
                webhook_event=envelope.event,
                error=str(outcome),
                exc_info=outcome,
            )
            results.append(
                DeliveryResult.failure(
                    delivery_id=f"failed_{_now_ms()}_{index}",
                    error=str(outcome) or "Unknown error",
                    webhook_id=webhook.id,
                )
            )
        return results

    async def send_test(self, webhook_id: str) -> DeliveryResult:
        """Send a ``webhook.test`` event to one webhook, ignoring its filter.

        Args:
            webhook_id: ID of the webhook to test.

        Returns:
            DeliveryResult of the test delivery, or a failed result when the
            webhook cannot be loaded.
        """
        try:
            webhook = await self._store.get_webhook(webhook_id)
            if webhook is None:
                raise NotFoundError("webhook", webhook_id)
        except Exception as e:
            logger.warning("Webhook test could not start", webhook_id=webhook_id, error=str(e))
            return DeliveryResult.failure(
                delivery_id=f"test_failed_{_now_ms()}",
                error=str(e),
                webhook_id=webhook_id,
            )

        envelope = WebhookEnvelope(
            event=TEST_EVENT,
            timestamp=self._clock(),
            data={
                "message": "This is a test webhook delivery",
                "webhookId": webhook.id,
            },
            company_id=webhook.company_id,
        )
        return await self._executor.deliver(webhook, envelope)

    async def get_delivery_logs(
        self,
        webhook_id: str,
        limit: int = 50,
    ) -> list[WebhookDelivery]:
        """Most recent delivery records for a webhook, newest first.

        Returns an empty list if the store cannot be read.
        """
        try:
            return await self._store.get_delivery_logs(webhook_id, limit=limit)
        except Exception as e:
            logger.error(
                "Error fetching delivery logs",
                webhook_id=webhook_id,
                error=str(e),
                exc_info=True,
            )
            return []

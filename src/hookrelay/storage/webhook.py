"""Webhook storage operations for hookrelay.

Provides methods to store, retrieve, and manage webhooks and delivery logs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from qdrant_client import models

from hookrelay.models import WebhookConfig, WebhookDelivery, utcnow

from .base import match

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


class WebhookMixin:
    """Mixin providing webhook operations for WebhookStorage.

    This mixin expects the following attributes/methods from the base class:
    - _collection_name(record_type) -> str
    - _build_key(record_id, company_id) -> str
    - _key_to_point_id(key) -> str
    - _record_to_payload(record) -> dict
    - _decode(payloads, record_class) -> list[RecordT]
    - _upsert(record_type, key, payload)
    - _scroll(record_type, conditions, limit, order_by=None) -> list[dict]
    - _storage_errors(operation) -> context manager
    - client: AsyncQdrantClient
    """

    _collection_name: Any
    _build_key: Any
    _key_to_point_id: Any
    _record_to_payload: Any
    _decode: Any
    _upsert: Any
    _scroll: Any
    _storage_errors: Callable[[str], Iterator[None]]
    _max_scroll_limit: int
    client: Any

    async def store_webhook(self, webhook: WebhookConfig) -> str:
        """Store a webhook configuration.

        Args:
            webhook: WebhookConfig to store.

        Returns:
            The webhook ID.
        """
        payload = self._record_to_payload(webhook)
        # Stored as a plain string so it round-trips through HttpUrl
        payload["url"] = str(webhook.url)

        with self._storage_errors("store_webhook"):
            await self._upsert(
                "webhooks", self._build_key(webhook.id, webhook.company_id), payload
            )
        return webhook.id

    async def get_webhook(self, webhook_id: str) -> WebhookConfig | None:
        """Get a webhook by ID.

        Args:
            webhook_id: ID of the webhook.

        Returns:
            WebhookConfig or None if not found.
        """
        with self._storage_errors("get_webhook"):
            payloads = await self._scroll("webhooks", [match("id", webhook_id)], 1)
        webhooks: list[WebhookConfig] = self._decode(payloads, WebhookConfig)
        return webhooks[0] if webhooks else None

    async def list_webhooks(
        self,
        company_id: str,
        active_only: bool = False,
        limit: int | None = None,
    ) -> list[WebhookConfig]:
        """List webhooks for a company.

        Args:
            company_id: Tenant to list webhooks for.
            active_only: If True, only return active webhooks.
            limit: Maximum webhooks to return.

        Returns:
            List of WebhookConfig.
        """
        conditions: list[models.FieldCondition] = [match("company_id", company_id)]
        if active_only:
            conditions.append(match("is_active", True))

        with self._storage_errors("list_webhooks"):
            payloads = await self._scroll(
                "webhooks", conditions, limit or self._max_scroll_limit
            )
        webhooks: list[WebhookConfig] = self._decode(payloads, WebhookConfig)
        return webhooks

    async def get_webhooks_for_event(self, company_id: str, event: str) -> list[WebhookConfig]:
        """Get all active webhooks of a company that subscribe to an event."""
        webhooks = await self.list_webhooks(company_id, active_only=True)
        return [wh for wh in webhooks if wh.subscribes_to(event)]

    async def update_webhook(self, webhook_id: str, **updates: Any) -> WebhookConfig | None:
        """Update a webhook configuration.

        Updates are validated against the model; unknown fields raise.

        Args:
            webhook_id: ID of the webhook to update.
            **updates: Fields to update.

        Returns:
            Updated WebhookConfig or None if not found.
        """
        webhook = await self.get_webhook(webhook_id)
        if webhook is None:
            return None

        data = webhook.model_dump()
        data.update(updates)
        data["id"] = webhook.id
        data["company_id"] = webhook.company_id
        data["updated_at"] = utcnow()
        updated = WebhookConfig.model_validate(data)

        await self.store_webhook(updated)
        return updated

    async def delete_webhook(self, webhook_id: str) -> bool:
        """Delete a webhook configuration.

        Delivery records are kept; the audit trail is append-only.

        Args:
            webhook_id: ID of the webhook to delete.

        Returns:
            True if deleted, False if not found.
        """
        # Raw lookup so records that no longer validate can still be removed
        with self._storage_errors("delete_webhook"):
            payloads = await self._scroll("webhooks", [match("id", webhook_id)], 1)
            if not payloads:
                return False
            key = self._build_key(webhook_id, payloads[0]["company_id"])
            await self.client.delete(
                collection_name=self._collection_name("webhooks"),
                points_selector=models.PointIdsList(points=[self._key_to_point_id(key)]),
            )
        return True

    async def log_delivery(self, delivery: WebhookDelivery) -> str:
        """Append a delivery record.

        Args:
            delivery: WebhookDelivery to log.

        Returns:
            The delivery ID.
        """
        with self._storage_errors("log_delivery"):
            await self._upsert(
                "webhook_deliveries",
                self._build_key(delivery.id, delivery.company_id),
                self._record_to_payload(delivery),
            )
        return delivery.id

    async def get_delivery_logs(
        self,
        webhook_id: str,
        limit: int = 50,
    ) -> list[WebhookDelivery]:
        """Get delivery logs for a webhook.

        Args:
            webhook_id: ID of the webhook.
            limit: Maximum entries to return.

        Returns:
            List of WebhookDelivery sorted by created_at (newest first).
        """
        if limit <= 0:
            return []
        with self._storage_errors("get_delivery_logs"):
            payloads = await self._scroll(
                "webhook_deliveries",
                [match("webhook_id", webhook_id)],
                min(limit, self._max_scroll_limit),
                order_by=models.OrderBy(key="created_at", direction=models.Direction.DESC),
            )
        deliveries: list[WebhookDelivery] = self._decode(payloads, WebhookDelivery)
        return deliveries

"""Qdrant storage client for hookrelay.

This module provides the WebhookStorage class that combines the storage
base with webhook and delivery-log operations.

Example:
    ```python
    from hookrelay.storage import WebhookStorage

    async with WebhookStorage() as storage:
        await storage.store_webhook(webhook)
        active = await storage.list_webhooks("co_123", active_only=True)
    ```
"""

from __future__ import annotations

from typing import Any

from .base import StorageBase
from .webhook import WebhookMixin


class WebhookStorage(WebhookMixin, StorageBase):
    """Async Qdrant storage for webhooks and their delivery records.

    This class combines functionality from:
    - WebhookMixin: store_webhook, get_webhook, list_webhooks, update_webhook,
      delete_webhook, log_delivery, get_delivery_logs
    - StorageBase: client lifecycle, collections, key helpers

    Attributes:
        client: Async Qdrant client instance.
    """

    async def __aenter__(self) -> WebhookStorage:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()


__all__ = ["WebhookStorage"]

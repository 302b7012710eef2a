"""Storage backends for hookrelay.

This module provides the storage layer for persisting webhook
registrations and delivery records to Qdrant.

Example:
    ```python
    from hookrelay.storage import WebhookStorage

    async with WebhookStorage() as storage:
        await storage.store_webhook(webhook)
        logs = await storage.get_delivery_logs(webhook.id, limit=20)
    ```
"""

from .base import COLLECTION_NAMES, WebhookStore
from .client import WebhookStorage

__all__ = [
    "COLLECTION_NAMES",
    "WebhookStorage",
    "WebhookStore",
]

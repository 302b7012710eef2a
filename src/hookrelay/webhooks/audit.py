"""Delivery audit trail.

Each delivery sequence produces exactly one ``WebhookDelivery`` record.
Losing a record degrades the audit trail but never changes the outcome of
a delivery that already happened, so write failures are logged and dropped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hookrelay.logging import get_logger

if TYPE_CHECKING:
    from hookrelay.models import WebhookDelivery
    from hookrelay.storage import WebhookStore

logger = get_logger(__name__)


class DeliveryLogger:
    """Writes delivery records to the webhook store."""

    def __init__(self, store: WebhookStore) -> None:
        self._store = store

    async def log(self, record: WebhookDelivery) -> None:
        """Persist one delivery record. Never raises."""
        try:
            await self._store.log_delivery(record)
        except Exception as e:
            logger.error(
                "Failed to log webhook delivery",
                delivery_id=record.id,
                webhook_id=record.webhook_id,
                webhook_event=record.event,
                error=str(e),
                exc_info=True,
            )

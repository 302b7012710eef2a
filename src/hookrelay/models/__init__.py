"""Data models for hookrelay.

Webhook Types:
    - WebhookConfig: A tenant's registered endpoint and delivery policy
    - WebhookEnvelope: The wire payload for one event occurrence
    - WebhookDelivery: Audit record of one delivery sequence
    - DeliveryResult: Outcome handed back to the caller
"""

from .base import from_unix, generate_id, isoformat, utcnow
from .webhook import (
    ALL_EVENT_TYPES,
    TEST_EVENT,
    DeliveryResult,
    DeliverySummary,
    EventType,
    WebhookConfig,
    WebhookDelivery,
    WebhookEnvelope,
    generate_secret,
    summarize_results,
)

__all__ = [
    # Helpers
    "from_unix",
    "generate_id",
    "generate_secret",
    "isoformat",
    "utcnow",
    # Webhook types
    "ALL_EVENT_TYPES",
    "EventType",
    "TEST_EVENT",
    "WebhookConfig",
    "WebhookEnvelope",
    "WebhookDelivery",
    # Results
    "DeliveryResult",
    "DeliverySummary",
    "summarize_results",
]

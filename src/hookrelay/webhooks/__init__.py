"""Webhook delivery engine for hookrelay.

Provides HMAC-signed webhook delivery with exponential backoff retry,
concurrent fan-out, and an audit record per delivery.

Example:
    ```python
    from hookrelay.webhooks import DeliveryExecutor, DeliveryLogger, WebhookDispatcher

    executor = DeliveryExecutor(http_client, DeliveryLogger(storage))
    dispatcher = WebhookDispatcher(storage, executor)

    results = await dispatcher.trigger_event(
        "co_123",
        "subscription.created",
        {"subscriptionId": "sub_1"},
    )
    ```
"""

from .audit import DeliveryLogger
from .delivery import RESERVED_HEADERS, DeliveryExecutor, parse_retry_after
from .dispatcher import WebhookDispatcher
from .signing import compute_signature, sign_envelope, verify_signature

__all__ = [
    "RESERVED_HEADERS",
    "DeliveryExecutor",
    "DeliveryLogger",
    "WebhookDispatcher",
    "compute_signature",
    "parse_retry_after",
    "sign_envelope",
    "verify_signature",
]

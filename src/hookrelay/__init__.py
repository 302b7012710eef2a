"""hookrelay: Signed outbound webhooks.

Delivers tenant events to registered HTTP endpoints with HMAC-SHA256
signatures, per-attempt timeouts, exponential backoff retry, and an audit
record for every delivery.

Quick Start:
    from hookrelay.service import WebhookService

    async with WebhookService.create() as hooks:
        # Register a subscriber
        webhook = await hooks.register_webhook(
            company_id="co_123",
            url="https://example.com/hooks",
            events=["payment.failed"],
        )

        # Emit an event
        results = await hooks.trigger_event(
            "co_123",
            "payment.failed",
            {"invoiceId": "in_1", "amountDue": 4900},
        )

Receivers verify deliveries with:
    from hookrelay.webhooks import verify_signature

    verify_signature(raw_body, secret, request.headers["X-Webhook-Signature"])
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    DeliveryError,
    HookRelayError,
    NotFoundError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import configure_logging, get_logger, redact_secrets

# Models
from .models import (
    DeliveryResult,
    DeliverySummary,
    WebhookConfig,
    WebhookDelivery,
    WebhookEnvelope,
    summarize_results,
)

# Service
from .service import WebhookService

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "HookRelayError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "ConfigurationError",
    "DeliveryError",
    # Logging
    "configure_logging",
    "get_logger",
    "redact_secrets",
    # Models
    "WebhookConfig",
    "WebhookEnvelope",
    "WebhookDelivery",
    "DeliveryResult",
    "DeliverySummary",
    "summarize_results",
    # Service
    "WebhookService",
]

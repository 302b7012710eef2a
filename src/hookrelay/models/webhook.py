"""Webhook models for outbound event delivery.

Provides subscriber registration, the wire envelope, and the audit record
written once per delivery sequence.
"""

from __future__ import annotations

import secrets
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_serializer

from .base import generate_id, isoformat, utcnow

# Event names a subscriber can register for
EventType = Literal[
    # Recruiting events
    "candidate.created",
    "candidate.updated",
    "candidate.status_changed",
    "interview.scheduled",
    "interview.completed",
    "interview.cancelled",
    "job.created",
    "job.updated",
    "job.published",
    "job.closed",
    "application.submitted",
    "application.reviewed",
    "evaluation.completed",
    # Billing events
    "subscription.created",
    "subscription.updated",
    "subscription.cancelled",
    "payment.succeeded",
    "payment.failed",
    "invoice.created",
    "invoice.paid",
    "invoice.payment_failed",
    "customer.created",
    "customer.updated",
    "plan.changed",
]

ALL_EVENT_TYPES: list[EventType] = list(EventType.__args__)  # type: ignore[attr-defined]

TEST_EVENT = "webhook.test"


def generate_secret() -> str:
    """Generate a new signing secret (32 random bytes, hex encoded)."""
    return secrets.token_hex(32)


class WebhookConfig(BaseModel):
    """A tenant's registered receiving endpoint.

    Attributes:
        id: Unique identifier for this webhook.
        company_id: Tenant that owns this webhook.
        name: Human-readable label.
        url: Endpoint that receives POSTed events.
        secret: Shared secret for HMAC-SHA256 signatures. Never logged.
        events: Event names this webhook subscribes to.
        headers: Extra HTTP headers sent with every delivery.
        is_active: Inactive webhooks are skipped entirely.
        retry_attempts: Additional attempts beyond the first.
        timeout: Per-attempt timeout in milliseconds.
        created_at: When the webhook was registered.
        updated_at: When the webhook was last modified.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    company_id: str = Field(description="Tenant that owns this webhook")
    name: str = Field(default="", description="Human-readable label")
    url: HttpUrl = Field(description="Endpoint to receive events")
    secret: str = Field(
        default_factory=generate_secret,
        repr=False,
        description="Shared secret for HMAC-SHA256 signatures",
    )
    events: list[EventType] = Field(min_length=1, description="Event names to subscribe to")
    headers: dict[str, str] = Field(default_factory=dict, description="Extra request headers")
    is_active: bool = Field(default=True, description="Whether webhook is active")
    retry_attempts: int = Field(
        default=3, ge=0, le=5, description="Additional attempts after the first"
    )
    timeout: int = Field(default=10000, gt=0, le=30000, description="Per-attempt timeout in ms")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def subscribes_to(self, event: str) -> bool:
        """Check if this webhook is active and subscribed to the event."""
        return self.is_active and event in self.events

    def masked_secret(self) -> str:
        """Secret in the only form safe to show back to a tenant."""
        return f"wh_{self.secret[:8]}..."

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000


class WebhookEnvelope(BaseModel):
    """Event payload sent to every matching webhook for one occurrence.

    The envelope is frozen; ``to_json()`` yields the exact body that is
    signed and transmitted.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    event: str = Field(description="Dot-namespaced event name")
    timestamp: datetime = Field(default_factory=utcnow, description="When the event occurred")
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific payload")
    company_id: str = Field(alias="companyId", description="Owning tenant")

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return isoformat(value)

    @property
    def timestamp_iso(self) -> str:
        return isoformat(self.timestamp)

    def to_json(self) -> str:
        """Serialize to the canonical wire form."""
        return self.model_dump_json(by_alias=True)


class WebhookDelivery(BaseModel):
    """Audit record for one delivery sequence (first attempt plus retries).

    Attributes:
        id: Delivery ID, also sent as the X-Webhook-Delivery header.
        webhook_id: ID of the webhook configuration.
        company_id: Tenant that owns the webhook.
        event: Event name that was delivered.
        payload: Serialized envelope that was sent.
        success: Whether the final response was 2xx.
        status_code: Final HTTP status code, if any response was received.
        response: Response body, truncated to 1000 characters.
        error: Error description if the sequence failed.
        duration_ms: Wall-clock time of the whole sequence.
        attempt: Number of HTTP attempts made.
        created_at: When the record was written.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(description="Delivery ID")
    webhook_id: str = Field(description="ID of the webhook configuration")
    company_id: str = Field(description="Tenant that owns the webhook")
    event: str = Field(description="Event name")
    payload: str = Field(description="Serialized envelope")
    success: bool = Field(default=False)
    status_code: int | None = Field(default=None, description="Final HTTP status code")
    response: str | None = Field(default=None, description="Truncated response body")
    error: str | None = Field(default=None, description="Error message if failed")
    duration_ms: int = Field(default=0, ge=0)
    attempt: int = Field(default=1, ge=1, description="Attempts made")
    created_at: datetime = Field(default_factory=utcnow)


class DeliveryResult(BaseModel):
    """Outcome of one delivery sequence, returned to the caller.

    A result exists for every matching webhook, whether or not the endpoint
    accepted the event. Check ``delivered`` before assuming receipt.
    """

    model_config = ConfigDict(extra="forbid")

    delivery_id: str
    webhook_id: str | None = None
    success: bool = False
    status_code: int | None = None
    response: str | None = None
    error: str | None = None
    duration_ms: int = 0
    attempt: int = 0

    @property
    def delivered(self) -> bool:
        return self.success

    @classmethod
    def failure(
        cls, delivery_id: str, error: str, webhook_id: str | None = None
    ) -> DeliveryResult:
        """Result for a delivery that never produced a record."""
        return cls(delivery_id=delivery_id, webhook_id=webhook_id, success=False, error=error)


class DeliverySummary(BaseModel):
    """Counts of delivered and failed results for one trigger."""

    model_config = ConfigDict(extra="forbid")

    total: int = 0
    delivered: int = 0
    failed: int = 0

    @property
    def all_delivered(self) -> bool:
        return self.failed == 0


def summarize_results(results: Iterable[DeliveryResult]) -> DeliverySummary:
    """Count delivered and failed results."""
    summary = DeliverySummary()
    for result in results:
        summary.total += 1
        if result.delivered:
            summary.delivered += 1
        else:
            summary.failed += 1
    return summary


__all__ = [
    "ALL_EVENT_TYPES",
    "TEST_EVENT",
    "DeliveryResult",
    "DeliverySummary",
    "EventType",
    "WebhookConfig",
    "WebhookDelivery",
    "WebhookEnvelope",
    "generate_secret",
    "summarize_results",
]

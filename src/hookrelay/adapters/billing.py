"""Billing event adapters.

Shapes payment-processor objects (subscriptions, invoices, customers, in the
form of Stripe API objects or plain dicts with the same keys) into webhook
``data`` and triggers the matching event. Adapters only translate; they hold
no business logic.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from hookrelay.logging import get_logger
from hookrelay.models import from_unix, isoformat, utcnow

if TYPE_CHECKING:
    from hookrelay.models import DeliveryResult
    from hookrelay.webhooks import WebhookDispatcher

logger = get_logger(__name__)

StripeObject = Mapping[str, Any]


class CompanyDirectory(Protocol):
    """Maps payment-processor identifiers to the owning company."""

    async def get_company_id_by_customer(self, customer_id: str) -> str | None: ...

    async def get_company_id_by_subscription(self, subscription_id: str) -> str | None: ...


def _get(obj: Any, *path: str | int) -> Any:
    """Follow a key/index path through nested mappings and lists, or None."""
    current = obj
    for key in path:
        if current is None:
            return None
        if isinstance(key, int):
            if not isinstance(current, list | tuple) or len(current) <= key:
                return None
            current = current[key]
        elif isinstance(current, Mapping):
            current = current.get(key)
        else:
            current = getattr(current, key, None)
    return current


def _id_of(value: Any) -> Any:
    """ID of an expandable field, which may be an ID string or an object."""
    if isinstance(value, Mapping):
        return value.get("id")
    return value


def _price_id(subscription: StripeObject) -> str | None:
    return _get(subscription, "items", "data", 0, "price", "id")


def _period(subscription: StripeObject, field: str) -> str | None:
    # Newer API versions moved billing periods onto subscription items
    value = _get(subscription, field)
    if value is None:
        value = _get(subscription, "items", "data", 0, field)
    return from_unix(value)


def _invoice_subscription_id(invoice: StripeObject) -> str | None:
    subscription = _get(invoice, "subscription")
    if subscription is None:
        subscription = _get(invoice, "parent", "subscription_details", "subscription")
    return _id_of(subscription)


class BillingEvents:
    """Trigger helpers for subscription, payment, customer, plan and invoice events.

    Example:
        ```python
        billing = BillingEvents(dispatcher)
        await billing.subscription_created("co_123", subscription, customer)
        ```
    """

    def __init__(
        self,
        dispatcher: WebhookDispatcher,
        directory: CompanyDirectory | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._dispatcher = dispatcher
        self._directory = directory
        self._clock = clock

    def _now(self) -> str:
        return isoformat(self._clock())

    async def _trigger(
        self, company_id: str, event: str, data: dict[str, Any]
    ) -> list[DeliveryResult]:
        return await self._dispatcher.trigger_event(company_id, event, data)

    async def subscription_created(
        self,
        company_id: str,
        subscription: StripeObject,
        customer: StripeObject,
    ) -> list[DeliveryResult]:
        """Trigger ``subscription.created``."""
        return await self._trigger(
            company_id,
            "subscription.created",
            {
                "subscriptionId": _get(subscription, "id"),
                "customerId": _get(customer, "id"),
                "status": _get(subscription, "status"),
                "priceId": _price_id(subscription),
                "currentPeriodStart": _period(subscription, "current_period_start"),
                "currentPeriodEnd": _period(subscription, "current_period_end"),
            },
        )

    async def subscription_updated(
        self,
        company_id: str,
        subscription: StripeObject,
        previous_attributes: Mapping[str, Any] | None = None,
    ) -> list[DeliveryResult]:
        """Trigger ``subscription.updated``."""
        return await self._trigger(
            company_id,
            "subscription.updated",
            {
                "subscriptionId": _get(subscription, "id"),
                "status": _get(subscription, "status"),
                "priceId": _price_id(subscription),
                "currentPeriodStart": _period(subscription, "current_period_start"),
                "currentPeriodEnd": _period(subscription, "current_period_end"),
                "cancelAtPeriodEnd": bool(_get(subscription, "cancel_at_period_end")),
                "previousAttributes": dict(previous_attributes) if previous_attributes else None,
            },
        )

    async def subscription_cancelled(
        self,
        company_id: str,
        subscription: StripeObject,
    ) -> list[DeliveryResult]:
        """Trigger ``subscription.cancelled``."""
        return await self._trigger(
            company_id,
            "subscription.cancelled",
            {
                "subscriptionId": _get(subscription, "id"),
                "cancelledAt": self._now(),
                "endedAt": from_unix(_get(subscription, "ended_at")),
            },
        )

    async def payment_succeeded(
        self,
        company_id: str,
        invoice: StripeObject,
    ) -> list[DeliveryResult]:
        """Trigger ``payment.succeeded``."""
        return await self._trigger(
            company_id,
            "payment.succeeded",
            {
                "invoiceId": _get(invoice, "id"),
                "subscriptionId": _invoice_subscription_id(invoice),
                "customerId": _id_of(_get(invoice, "customer")),
                "amountPaid": _get(invoice, "amount_paid"),
                "currency": _get(invoice, "currency"),
                "paidAt": self._now(),
                "receiptUrl": _get(invoice, "hosted_invoice_url"),
            },
        )

    async def payment_failed(
        self,
        company_id: str,
        invoice: StripeObject,
    ) -> list[DeliveryResult]:
        """Trigger ``payment.failed``."""
        return await self._trigger(
            company_id,
            "payment.failed",
            {
                "invoiceId": _get(invoice, "id"),
                "subscriptionId": _invoice_subscription_id(invoice),
                "customerId": _id_of(_get(invoice, "customer")),
                "amountDue": _get(invoice, "amount_due"),
                "currency": _get(invoice, "currency"),
                "attemptCount": _get(invoice, "attempt_count"),
                "nextPaymentAttempt": from_unix(_get(invoice, "next_payment_attempt")),
            },
        )

    async def customer_created(
        self,
        company_id: str,
        customer: StripeObject,
    ) -> list[DeliveryResult]:
        """Trigger ``customer.created``."""
        return await self._trigger(
            company_id,
            "customer.created",
            {
                "customerId": _get(customer, "id"),
                "email": _get(customer, "email"),
                "name": _get(customer, "name"),
                "createdAt": from_unix(_get(customer, "created")),
            },
        )

    async def customer_updated(
        self,
        company_id: str,
        customer: StripeObject,
        previous_attributes: Mapping[str, Any] | None = None,
    ) -> list[DeliveryResult]:
        """Trigger ``customer.updated``."""
        return await self._trigger(
            company_id,
            "customer.updated",
            {
                "customerId": _get(customer, "id"),
                "email": _get(customer, "email"),
                "name": _get(customer, "name"),
                "previousAttributes": dict(previous_attributes) if previous_attributes else None,
            },
        )

    async def plan_changed(
        self,
        company_id: str,
        old_plan: Any,
        new_plan: Any,
        subscription: StripeObject,
    ) -> list[DeliveryResult]:
        """Trigger ``plan.changed``; the change takes effect at period end."""
        return await self._trigger(
            company_id,
            "plan.changed",
            {
                "subscriptionId": _get(subscription, "id"),
                "oldPlan": old_plan,
                "newPlan": new_plan,
                "changedAt": self._now(),
                "effectiveDate": _period(subscription, "current_period_end"),
            },
        )

    async def invoice_created(
        self,
        company_id: str,
        invoice: StripeObject,
    ) -> list[DeliveryResult]:
        """Trigger ``invoice.created``."""
        return await self._trigger(
            company_id,
            "invoice.created",
            {
                "invoiceId": _get(invoice, "id"),
                "subscriptionId": _invoice_subscription_id(invoice),
                "customerId": _id_of(_get(invoice, "customer")),
                "amountDue": _get(invoice, "amount_due"),
                "currency": _get(invoice, "currency"),
                "dueDate": from_unix(_get(invoice, "due_date")),
                "status": _get(invoice, "status"),
            },
        )

    async def invoice_paid(
        self,
        company_id: str,
        invoice: StripeObject,
    ) -> list[DeliveryResult]:
        """Trigger ``invoice.paid``."""
        return await self._trigger(
            company_id,
            "invoice.paid",
            {
                "invoiceId": _get(invoice, "id"),
                "subscriptionId": _invoice_subscription_id(invoice),
                "customerId": _id_of(_get(invoice, "customer")),
                "amountPaid": _get(invoice, "amount_paid"),
                "currency": _get(invoice, "currency"),
                "paidAt": self._now(),
                "receiptUrl": _get(invoice, "hosted_invoice_url"),
            },
        )

    async def company_id_for_customer(self, customer_id: str) -> str | None:
        """Resolve the company that owns a payment-processor customer.

        Returns None when no directory is configured or the lookup fails.
        """
        if self._directory is None:
            return None
        try:
            return await self._directory.get_company_id_by_customer(customer_id)
        except Exception as e:
            logger.error("Error resolving company from customer", customer_id=customer_id, error=str(e))
            return None

    async def company_id_for_subscription(self, subscription_id: str) -> str | None:
        """Resolve the company that owns a payment-processor subscription.

        Returns None when no directory is configured or the lookup fails.
        """
        if self._directory is None:
            return None
        try:
            return await self._directory.get_company_id_by_subscription(subscription_id)
        except Exception as e:
            logger.error(
                "Error resolving company from subscription",
                subscription_id=subscription_id,
                error=str(e),
            )
            return None

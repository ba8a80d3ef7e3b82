"""
Typed decoding of Stripe webhook payloads.

Handlers never reach into raw event dicts: each recognised event type is
parsed here into a frozen dataclass, and anything missing or ill-typed is
rejected with MalformedEvent before a handler runs.

Both payload generations are accepted:
- invoices carry the subscription id either at `subscription` or at
  `parent.subscription_details.subscription`;
- subscriptions carry the billing period either at the top level or on
  their first item.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Union

from renewal_billing.billing.errors import MalformedEvent
from renewal_billing.models.subscription import SubscriptionStatus


class EventKind(str, Enum):
    CHECKOUT_SESSION_COMPLETED = "checkout_session_completed"
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_DELETED = "subscription_deleted"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"


STRIPE_EVENT_KINDS = {
    "checkout.session.completed": EventKind.CHECKOUT_SESSION_COMPLETED,
    "customer.subscription.created": EventKind.SUBSCRIPTION_CREATED,
    "customer.subscription.updated": EventKind.SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": EventKind.SUBSCRIPTION_DELETED,
    "invoice.payment_succeeded": EventKind.PAYMENT_SUCCEEDED,
    "invoice.paid": EventKind.PAYMENT_SUCCEEDED,
    "invoice.payment_failed": EventKind.PAYMENT_FAILED,
}


@dataclass(frozen=True)
class CheckoutSessionCompleted:
    session_id: str
    customer_email: str
    subscription_id: Optional[str] = None
    customer_id: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SubscriptionSnapshot:
    subscription_id: str
    status: SubscriptionStatus
    customer_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    price_id: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class InvoiceOutcome:
    invoice_id: str
    subscription_id: Optional[str] = None
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None


EventPayload = Union[CheckoutSessionCompleted, SubscriptionSnapshot, InvoiceOutcome]


@dataclass(frozen=True)
class BillingEvent:
    event_id: str
    kind: EventKind
    stripe_type: str
    payload: EventPayload

    def log_context(self):
        context = {"event_id": self.event_id, "event_type": self.stripe_type}
        subscription_id = getattr(self.payload, "subscription_id", None)
        customer_id = getattr(self.payload, "customer_id", None)
        if subscription_id:
            context["subscription_id"] = subscription_id
        if customer_id:
            context["customer_id"] = customer_id
        return context


def _mapping(value, what):
    if not isinstance(value, Mapping):
        raise MalformedEvent(f"{what} must be an object")
    return value


def _required_str(obj, key, what):
    value = obj.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedEvent(f"{what} is missing {key!r}")
    return value


def _optional_str(value):
    return value if isinstance(value, str) and value else None


def _ref_id(value):
    """Stripe sends related objects either as an id string or expanded."""
    if isinstance(value, Mapping):
        return _optional_str(value.get("id"))
    return _optional_str(value)


def _timestamp(value, what):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedEvent(f"{what} must be epoch seconds")
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        raise MalformedEvent(f"{what} is out of range")


def _first_item(obj):
    items = obj.get("items")
    if isinstance(items, Mapping):
        data = items.get("data")
        if isinstance(data, list) and data and isinstance(data[0], Mapping):
            return data[0]
    return None


def _price_id(obj, item):
    if item is not None:
        price_id = _ref_id(item.get("price"))
        if price_id:
            return price_id
    # Pre-2018 API versions still send the legacy plan object.
    return _ref_id(obj.get("plan"))


def decode_subscription(obj) -> SubscriptionSnapshot:
    """Decode a Stripe subscription object, from an event or from the API."""
    obj = _mapping(obj, "subscription")
    subscription_id = _required_str(obj, "id", "subscription")

    raw_status = obj.get("status")
    try:
        status = SubscriptionStatus(raw_status)
    except ValueError:
        raise MalformedEvent(f"subscription {subscription_id} has unknown status {raw_status!r}")

    item = _first_item(obj)
    period_source = obj if obj.get("current_period_start") is not None else (item or {})

    cancel_at_period_end = obj.get("cancel_at_period_end", False)
    if not isinstance(cancel_at_period_end, bool):
        raise MalformedEvent(f"subscription {subscription_id} cancel_at_period_end must be a boolean")

    metadata = obj.get("metadata") or {}
    return SubscriptionSnapshot(
        subscription_id=subscription_id,
        status=status,
        customer_id=_ref_id(obj.get("customer")),
        current_period_start=_timestamp(period_source.get("current_period_start"), "current_period_start"),
        current_period_end=_timestamp(period_source.get("current_period_end"), "current_period_end"),
        cancel_at_period_end=cancel_at_period_end,
        price_id=_price_id(obj, item),
        metadata=dict(_mapping(metadata, "subscription metadata")),
    )


def decode_checkout_session(obj) -> CheckoutSessionCompleted:
    obj = _mapping(obj, "checkout session")
    session_id = _required_str(obj, "id", "checkout session")
    metadata = dict(_mapping(obj.get("metadata") or {}, "checkout session metadata"))

    customer_details = obj.get("customer_details") or {}
    email = (
        _optional_str(obj.get("customer_email"))
        or (_optional_str(customer_details.get("email")) if isinstance(customer_details, Mapping) else None)
        or _optional_str(metadata.get("email"))
    )
    if not email:
        raise MalformedEvent(f"checkout session {session_id} carries no customer email")

    return CheckoutSessionCompleted(
        session_id=session_id,
        customer_email=email,
        subscription_id=_ref_id(obj.get("subscription")),
        customer_id=_ref_id(obj.get("customer")),
        metadata=metadata,
    )


def decode_invoice(obj) -> InvoiceOutcome:
    obj = _mapping(obj, "invoice")
    invoice_id = _required_str(obj, "id", "invoice")

    subscription_id = _ref_id(obj.get("subscription"))
    if subscription_id is None:
        parent = obj.get("parent")
        if isinstance(parent, Mapping) and isinstance(parent.get("subscription_details"), Mapping):
            subscription_id = _ref_id(parent["subscription_details"].get("subscription"))

    return InvoiceOutcome(
        invoice_id=invoice_id,
        subscription_id=subscription_id,
        customer_id=_ref_id(obj.get("customer")),
        customer_email=_optional_str(obj.get("customer_email")),
    )


_DECODERS = {
    EventKind.CHECKOUT_SESSION_COMPLETED: decode_checkout_session,
    EventKind.SUBSCRIPTION_CREATED: decode_subscription,
    EventKind.SUBSCRIPTION_UPDATED: decode_subscription,
    EventKind.SUBSCRIPTION_DELETED: decode_subscription,
    EventKind.PAYMENT_SUCCEEDED: decode_invoice,
    EventKind.PAYMENT_FAILED: decode_invoice,
}


def event_type_of(event) -> str:
    event = _mapping(event, "event")
    event_type = event.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedEvent("event is missing 'type'")
    return event_type


def decode_event(event) -> Optional[BillingEvent]:
    """
    Decode a verified event envelope.

    Returns None for event types this service does not model.
    """
    stripe_type = event_type_of(event)
    kind = STRIPE_EVENT_KINDS.get(stripe_type)
    if kind is None:
        return None

    event_id = _required_str(event, "id", "event")
    data = _mapping(event.get("data"), f"event {event_id} data")
    payload = _DECODERS[kind](data.get("object"))
    return BillingEvent(event_id=event_id, kind=kind, stripe_type=stripe_type, payload=payload)

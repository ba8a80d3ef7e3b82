class BillingError(Exception):
    """Base class for webhook ingestion and reconciliation failures."""

    http_status = 500
    retryable = True
    code = "BILLING_ERROR"

    def __init__(self, message, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self):
        return {"error": self.code, "message": self.message}


class SignatureInvalid(BillingError):
    """Missing header, signature mismatch, stale timestamp or unparseable body."""

    http_status = 400
    retryable = False
    code = "SIGNATURE_INVALID"


class MalformedEvent(BillingError):
    """A recognised event type whose payload lacks required fields."""

    http_status = 400
    retryable = False
    code = "MALFORMED_EVENT"


class UserNotFound(BillingError):
    code = "USER_NOT_FOUND"

    def __init__(self, email, **context):
        super().__init__(f"User not found for email: {email}", email=email, **context)
        self.email = email


class SubscriptionNotFound(BillingError):
    """No local record for an external subscription id.

    Usually an update that overtook its creation event; redelivery heals it.
    """

    code = "SUBSCRIPTION_NOT_FOUND"

    def __init__(self, stripe_subscription_id, **context):
        super().__init__(
            f"No subscription record for {stripe_subscription_id}",
            stripe_subscription_id=stripe_subscription_id,
            **context,
        )
        self.stripe_subscription_id = stripe_subscription_id


class StoreUnavailable(BillingError):
    code = "STORE_UNAVAILABLE"


class ProcessorUnavailable(BillingError):
    code = "PROCESSOR_UNAVAILABLE"


class RemoteSubscriptionMissing(BillingError):
    """Stripe answered `resource_missing` for a subscription id."""

    http_status = 404
    retryable = False
    code = "REMOTE_SUBSCRIPTION_MISSING"

    def __init__(self, stripe_subscription_id):
        super().__init__(
            f"Subscription {stripe_subscription_id} does not exist in Stripe",
            stripe_subscription_id=stripe_subscription_id,
        )
        self.stripe_subscription_id = stripe_subscription_id


class UnknownPrice(BillingError):
    """Raised instead of the default-plan fallback when strict plan mapping is on."""

    code = "UNKNOWN_PRICE"

    def __init__(self, price_id):
        super().__init__(f"No plan mapped for price id {price_id!r}", price_id=price_id)
        self.price_id = price_id

import logging
from contextlib import contextmanager
from typing import Optional

import stripe

from renewal_billing.billing.errors import ProcessorUnavailable, RemoteSubscriptionMissing
from renewal_billing.billing.events import SubscriptionSnapshot, decode_subscription

logger = logging.getLogger(__name__)


@contextmanager
def stripe_operation(operation, subscription_id=None):
    """Map Stripe SDK failures onto billing errors."""
    try:
        yield
    except stripe.InvalidRequestError as e:
        if e.code == "resource_missing" and subscription_id:
            raise RemoteSubscriptionMissing(subscription_id) from e
        logger.error(
            "Stripe rejected %s",
            operation,
            extra={"subscription_id": subscription_id, "stripe_error": str(e)},
        )
        raise ProcessorUnavailable(f"Stripe rejected {operation}: {e.user_message or e}") from e
    except stripe.StripeError as e:
        # Connection failures, rate limits, auth and 5xx answers all
        # leave local state untouched and are worth retrying.
        logger.error(
            "Stripe call failed during %s",
            operation,
            exc_info=True,
            extra={"subscription_id": subscription_id, "stripe_error": str(e)},
        )
        raise ProcessorUnavailable(f"Stripe unavailable during {operation}") from e


class StripeGateway:
    """
    Thin client over the Stripe API for the calls reconciliation needs.

    Each gateway owns its own StripeClient so the API key, timeout and
    retry policy never leak through module globals.
    """

    def __init__(self, api_key: str, timeout: int = 10, max_network_retries: int = 2, client=None):
        self.api_key = api_key
        self.timeout = timeout
        self.max_network_retries = max_network_retries
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = stripe.StripeClient(
                self.api_key,
                http_client=stripe.RequestsClient(timeout=self.timeout),
                max_network_retries=self.max_network_retries,
            )
            logger.info(
                "Stripe client initialized",
                extra={
                    "api_key_prefix": self.api_key[:8] + "..." if self.api_key else None,
                    "max_retries": self.max_network_retries,
                    "timeout": self.timeout,
                },
            )
        return self._client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionSnapshot:
        with stripe_operation("retrieve_subscription", subscription_id):
            subscription = self.client.subscriptions.retrieve(subscription_id)
        return decode_subscription(subscription)

    def retrieve_customer_email(self, customer_id: str) -> Optional[str]:
        with stripe_operation("retrieve_customer"):
            customer = self.client.customers.retrieve(customer_id)
        if customer.get("deleted"):
            return None
        return customer.get("email") or None

    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> SubscriptionSnapshot:
        with stripe_operation("update_subscription", subscription_id):
            subscription = self.client.subscriptions.update(
                subscription_id,
                params={"cancel_at_period_end": cancel},
            )
        logger.info(
            "Stripe subscription updated",
            extra={"subscription_id": subscription_id, "cancel_at_period_end": cancel},
        )
        return decode_subscription(subscription)

    def cancel_immediately(self, subscription_id: str) -> SubscriptionSnapshot:
        with stripe_operation("cancel_subscription", subscription_id):
            subscription = self.client.subscriptions.cancel(subscription_id)
        logger.info("Stripe subscription canceled", extra={"subscription_id": subscription_id})
        return decode_subscription(subscription)

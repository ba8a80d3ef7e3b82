"""
Billing-state reconciliation.

Each handler takes a decoded event payload and brings the local
subscription record in line with what Stripe reports. Handlers write
through the store inside the caller's transaction and never commit;
the dispatcher owns the transaction boundary.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from renewal_billing.billing.errors import RemoteSubscriptionMissing, UserNotFound
from renewal_billing.billing.events import (
    CheckoutSessionCompleted,
    InvoiceOutcome,
    SubscriptionSnapshot,
)
from renewal_billing.billing.plans import PlanResolver
from renewal_billing.models.subscription import PlanName, Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)

MANUAL_PERIOD_DAYS = 30


def _utcnow():
    return datetime.now(timezone.utc)


class BillingReconciler:
    def __init__(self, store, users, gateway, plans: PlanResolver, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.users = users
        self.gateway = gateway
        self.plans = plans
        self.clock = clock or _utcnow

    # ============ CREATION ============

    def handle_checkout_completed(self, session: CheckoutSessionCompleted) -> Optional[Subscription]:
        """
        Materialise the subscription a completed checkout paid for.

        The session only names the subscription, so the subscription itself
        is fetched from Stripe for status, period and price. Sessions
        without a subscription (one-off payments) are not billing state.
        """
        if not session.subscription_id:
            logger.info(
                "Checkout session has no subscription, nothing to reconcile",
                extra={"session_id": session.session_id},
            )
            return None

        snapshot = self.gateway.retrieve_subscription(session.subscription_id)
        metadata = {**snapshot.metadata, **session.metadata}
        return self._materialise(
            snapshot,
            email=session.customer_email,
            customer_id=session.customer_id or snapshot.customer_id,
            metadata=metadata,
        )

    def handle_subscription_created(self, snapshot: SubscriptionSnapshot) -> Subscription:
        email = snapshot.metadata.get("email")
        if not email and snapshot.customer_id:
            email = self.gateway.retrieve_customer_email(snapshot.customer_id)
        if not email:
            raise UserNotFound(None, subscription_id=snapshot.subscription_id, customer_id=snapshot.customer_id)

        return self._materialise(snapshot, email=email, customer_id=snapshot.customer_id, metadata=snapshot.metadata)

    def _materialise(self, snapshot, email, customer_id, metadata):
        user_id = self.users.find_id_by_email(email)
        if user_id is None:
            raise UserNotFound(email, subscription_id=snapshot.subscription_id, customer_id=customer_id)

        plan = self.plans.resolve(snapshot.price_id, metadata)
        record = self.store.upsert({
            "user_id": user_id,
            "stripe_customer_id": customer_id,
            "stripe_subscription_id": snapshot.subscription_id,
            "plan_name": plan.value,
            "status": snapshot.status.value,
            "current_period_start": snapshot.current_period_start,
            "current_period_end": snapshot.current_period_end,
            "cancel_at_period_end": snapshot.cancel_at_period_end,
            "updated_at": self.clock(),
        })

        logger.info(
            "Subscription reconciled",
            extra={
                "subscription_id": snapshot.subscription_id,
                "user_id": user_id,
                "plan_name": plan.value,
                "status": snapshot.status.value,
            },
        )
        return record

    # ============ CHANGES ============

    def handle_subscription_updated(self, snapshot: SubscriptionSnapshot) -> Subscription:
        values = {
            "status": snapshot.status.value,
            "cancel_at_period_end": snapshot.cancel_at_period_end,
            "updated_at": self.clock(),
        }
        if snapshot.current_period_start is not None:
            values["current_period_start"] = snapshot.current_period_start
        if snapshot.current_period_end is not None:
            values["current_period_end"] = snapshot.current_period_end

        record = self.store.update(snapshot.subscription_id, values)
        logger.info(
            "Subscription updated",
            extra={"subscription_id": snapshot.subscription_id, "status": snapshot.status.value},
        )
        return record

    def handle_subscription_deleted(self, snapshot: SubscriptionSnapshot) -> Subscription:
        record = self.store.update(
            snapshot.subscription_id,
            {"status": SubscriptionStatus.CANCELED.value, "updated_at": self.clock()},
        )
        logger.info("Subscription canceled", extra={"subscription_id": snapshot.subscription_id})
        return record

    def handle_payment_succeeded(self, invoice: InvoiceOutcome) -> Optional[Subscription]:
        return self._apply_payment(invoice, SubscriptionStatus.ACTIVE)

    def handle_payment_failed(self, invoice: InvoiceOutcome) -> Optional[Subscription]:
        return self._apply_payment(invoice, SubscriptionStatus.PAST_DUE)

    def _apply_payment(self, invoice, status):
        if not invoice.subscription_id:
            logger.info(
                "Invoice is not tied to a subscription, ignoring",
                extra={"invoice_id": invoice.invoice_id},
            )
            return None

        record = self.store.update(invoice.subscription_id, {"status": status.value, "updated_at": self.clock()})
        logger.info(
            "Payment outcome applied",
            extra={
                "subscription_id": invoice.subscription_id,
                "invoice_id": invoice.invoice_id,
                "status": status.value,
            },
        )
        return record

    # ============ OPERATOR ACTIONS ============

    def cancel(self, subscription_id: str, at_period_end: bool = True):
        """
        Cancel in Stripe, then mirror the outcome locally.

        Returns (record, message). A subscription Stripe no longer knows is
        marked canceled locally instead of failing.
        """
        try:
            if at_period_end:
                snapshot = self.gateway.set_cancel_at_period_end(subscription_id, True)
            else:
                snapshot = self.gateway.cancel_immediately(subscription_id)
        except RemoteSubscriptionMissing:
            logger.warning(
                "Subscription missing in Stripe, marking canceled locally",
                extra={"subscription_id": subscription_id},
            )
            record = self.store.update(
                subscription_id,
                {"status": SubscriptionStatus.CANCELED.value, "updated_at": self.clock()},
            )
            return record, "Subscription not found in Stripe, marked as canceled locally"

        record = self.store.update(subscription_id, self._mirror(snapshot))
        if at_period_end:
            message = "Subscription will be canceled at the end of the billing period"
        else:
            message = "Subscription canceled immediately"
        return record, message

    def reactivate(self, subscription_id: str) -> Subscription:
        snapshot = self.gateway.set_cancel_at_period_end(subscription_id, False)
        values = self._mirror(snapshot)
        values["status"] = SubscriptionStatus.ACTIVE.value
        return self.store.update(subscription_id, values)

    def _mirror(self, snapshot):
        values = {
            "status": snapshot.status.value,
            "cancel_at_period_end": snapshot.cancel_at_period_end,
            "updated_at": self.clock(),
        }
        if snapshot.current_period_end is not None:
            values["current_period_end"] = snapshot.current_period_end
        return values

    def provision_manual(self, email, customer_id, subscription_id, plan=PlanName.PROFESSIONAL):
        """Create an active 30-day record for an existing user, bypassing Stripe."""
        user_id = self.users.find_id_by_email(email)
        if user_id is None:
            raise UserNotFound(email, subscription_id=subscription_id)

        now = self.clock()
        record = self.store.upsert({
            "user_id": user_id,
            "stripe_customer_id": customer_id,
            "stripe_subscription_id": subscription_id,
            "plan_name": PlanName(plan).value,
            "status": SubscriptionStatus.ACTIVE.value,
            "current_period_start": now,
            "current_period_end": now + timedelta(days=MANUAL_PERIOD_DAYS),
            "cancel_at_period_end": False,
            "updated_at": now,
        })
        logger.info(
            "Manual subscription provisioned",
            extra={"subscription_id": subscription_id, "user_id": user_id, "plan_name": record.plan_name},
        )
        return record

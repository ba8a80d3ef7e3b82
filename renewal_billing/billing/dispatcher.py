import logging
from dataclasses import dataclass, field

from renewal_billing.billing.errors import BillingError, MalformedEvent, SubscriptionNotFound
from renewal_billing.billing.events import EventKind, decode_event

logger = logging.getLogger(__name__)

ACKNOWLEDGED = {"received": True}


@dataclass
class DispatchResult:
    status_code: int
    body: dict = field(default_factory=lambda: dict(ACKNOWLEDGED))
    outcome: str = "processed"

    @property
    def ok(self):
        return 200 <= self.status_code < 300


def _internal_error():
    return DispatchResult(500, {"error": "INTERNAL_ERROR", "message": "Webhook processing failed"}, "retry")


class WebhookDispatcher:
    """
    Routes one verified event to its reconciliation handler.

    Nothing raised by a handler escapes: every failure is logged with the
    event's context, rolled back and turned into an HTTP status so Stripe
    decides whether to redeliver.
    """

    def __init__(self, reconciler, ledger, store, metrics):
        self.reconciler = reconciler
        self.ledger = ledger
        self.store = store
        self.metrics = metrics
        self.handlers = {
            EventKind.CHECKOUT_SESSION_COMPLETED: reconciler.handle_checkout_completed,
            EventKind.SUBSCRIPTION_CREATED: reconciler.handle_subscription_created,
            EventKind.SUBSCRIPTION_UPDATED: reconciler.handle_subscription_updated,
            EventKind.SUBSCRIPTION_DELETED: reconciler.handle_subscription_deleted,
            EventKind.PAYMENT_SUCCEEDED: reconciler.handle_payment_succeeded,
            EventKind.PAYMENT_FAILED: reconciler.handle_payment_failed,
        }

    def dispatch(self, event: dict) -> DispatchResult:
        stripe_type = event.get("type") if isinstance(event, dict) else None
        event_id = event.get("id") if isinstance(event, dict) else None

        try:
            billing_event = decode_event(event)
        except MalformedEvent as e:
            logger.error(
                "Malformed webhook event: %s",
                e.message,
                extra={"event_id": event_id, "event_type": stripe_type},
            )
            return self._finish(stripe_type, "malformed", DispatchResult(e.http_status, e.to_dict(), "malformed"))
        except Exception:
            logger.exception("Unexpected error while decoding event", extra={"event_id": event_id, "event_type": stripe_type})
            return self._finish(stripe_type, "retry", _internal_error())

        if billing_event is None:
            logger.info("Unhandled event type: %s", stripe_type, extra={"event_id": event_id, "event_type": stripe_type})
            return self._finish(stripe_type, "ignored", DispatchResult(200, outcome="ignored"))

        context = billing_event.log_context()
        try:
            if self.ledger.is_processed(billing_event.event_id):
                logger.info("Event already processed, acknowledging", extra=context)
                return self._finish(stripe_type, "duplicate", DispatchResult(200, outcome="duplicate"))

            self.handlers[billing_event.kind](billing_event.payload)
            self.ledger.mark_processed(billing_event.event_id, stripe_type)
            self.store.commit()
        except SubscriptionNotFound as e:
            logger.warning("Subscription not found: out-of-order or missing creation", extra={**context, **e.context})
            return self._fail(billing_event, e)
        except BillingError as e:
            logger.error(
                "Reconciliation failed: %s",
                e.message,
                extra={**context, **e.context, "error_code": e.code, "retryable": e.retryable},
            )
            return self._fail(billing_event, e)
        except Exception as e:
            logger.exception("Unexpected error while reconciling event", extra=context)
            return self._fail(billing_event, e)

        logger.info("Webhook event processed", extra=context)
        return self._finish(stripe_type, "processed", DispatchResult(200))

    def _fail(self, billing_event, error):
        self.store.rollback()
        self._record_failure(billing_event, error)

        # Stripe only understands 200, 400 and 500 from the webhook.
        if isinstance(error, BillingError):
            status = 400 if error.http_status == 400 else 500
            result = DispatchResult(status, error.to_dict(), "retry" if error.retryable else "rejected")
        else:
            result = _internal_error()
        return self._finish(billing_event.stripe_type, result.outcome, result)

    def _record_failure(self, billing_event, error):
        # Best effort: the failure response must go out even if the ledger
        # write itself cannot be made.
        try:
            self.ledger.record_failure(billing_event.event_id, billing_event.stripe_type, f"{type(error).__name__}: {error}")
            self.store.commit()
        except Exception:
            self.store.rollback()
            logger.warning("Could not record failed attempt", exc_info=True, extra=billing_event.log_context())

    def _finish(self, stripe_type, outcome, result):
        self.metrics.record_webhook_event(stripe_type, outcome)
        return result

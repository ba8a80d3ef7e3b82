from dataclasses import dataclass

from flask import current_app

from renewal_billing.billing.dispatcher import WebhookDispatcher
from renewal_billing.billing.gateway import StripeGateway
from renewal_billing.billing.plans import PlanResolver
from renewal_billing.billing.reconciler import BillingReconciler
from renewal_billing.billing.store import EventLedger, SubscriptionStore, UserDirectory
from renewal_billing.observability.metrics import MetricsManager


@dataclass
class BillingServices:
    """Everything the webhook and API routes need, built once per app."""

    store: SubscriptionStore
    users: UserDirectory
    ledger: EventLedger
    gateway: StripeGateway
    plans: PlanResolver
    metrics: MetricsManager
    reconciler: BillingReconciler
    dispatcher: WebhookDispatcher
    webhook_secret: str
    webhook_tolerance: int


def build_services(config, gateway=None, metrics=None) -> BillingServices:
    metrics = metrics or MetricsManager(enabled=config.get("METRICS_ENABLED", False))
    gateway = gateway or StripeGateway(
        config.get("STRIPE_SECRET_KEY"),
        timeout=config.get("STRIPE_TIMEOUT_SECONDS", 10),
        max_network_retries=config.get("STRIPE_MAX_NETWORK_RETRIES", 2),
    )
    plans = PlanResolver(
        config["STRIPE_PRICE_PLANS"],
        default_plan=config["BILLING_DEFAULT_PLAN"],
        strict=config.get("BILLING_STRICT_PLANS", False),
        metrics=metrics,
    )

    store = SubscriptionStore()
    users = UserDirectory()
    ledger = EventLedger()
    reconciler = BillingReconciler(store, users, gateway, plans)

    return BillingServices(
        store=store,
        users=users,
        ledger=ledger,
        gateway=gateway,
        plans=plans,
        metrics=metrics,
        reconciler=reconciler,
        dispatcher=WebhookDispatcher(reconciler, ledger, store, metrics),
        webhook_secret=config["STRIPE_WEBHOOK_SECRET"],
        webhook_tolerance=config.get("STRIPE_WEBHOOK_TOLERANCE", 300),
    )


def get_services() -> BillingServices:
    return current_app.extensions["billing"]

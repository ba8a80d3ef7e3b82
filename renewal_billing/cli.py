"""Operator commands, mounted as `flask billing ...`."""

import json

import click
from flask.cli import AppGroup

from renewal_billing.billing import get_services
from renewal_billing.billing.errors import BillingError
from renewal_billing.billing.plans import parse_plan_name
from renewal_billing.billing.replay import ReplayError, replay_records
from renewal_billing.models.subscription import PlanName

billing_cli = AppGroup("billing", help="Subscription maintenance commands.")

_PLAN_CHOICES = [plan.value for plan in PlanName if plan is not PlanName.UNKNOWN]


@billing_cli.command("add-subscription")
@click.option("--email", required=True, help="Email of an existing user.")
@click.option("--customer-id", required=True, help="Stripe customer id (cus_...).")
@click.option("--subscription-id", required=True, help="Stripe subscription id (sub_...).")
@click.option("--plan", type=click.Choice(_PLAN_CHOICES, case_sensitive=False), default=PlanName.PROFESSIONAL.value)
def add_subscription(email, customer_id, subscription_id, plan):
    """Provision an active 30-day subscription record without Stripe."""
    services = get_services()
    try:
        with services.store.transaction():
            record = services.reconciler.provision_manual(
                email,
                customer_id,
                subscription_id,
                plan=parse_plan_name(plan),
            )
    except BillingError as e:
        raise click.ClickException(e.message)

    click.echo(f"✅ {record.plan_name} subscription {record.stripe_subscription_id} active until {record.current_period_end:%Y-%m-%d}")


@billing_cli.command("list-subscriptions")
@click.option("--email", default=None, help="Only show subscriptions of this user.")
def list_subscriptions(email):
    """Print subscriptions with their owners."""
    records = get_services().store.list(email=email)
    if not records:
        click.echo("No subscriptions found.")
        return

    for record in records:
        period_end = record.current_period_end.strftime("%Y-%m-%d") if record.current_period_end else "-"
        flag = " (cancels at period end)" if record.cancel_at_period_end else ""
        click.echo(
            f"{record.user.email}\t{record.stripe_subscription_id}\t{record.plan_name}\t{record.status}\t{period_end}{flag}"
        )


@billing_cli.command("replay-events")
@click.argument("batch_file", type=click.File("r"))
def replay_events(batch_file):
    """Feed a queued batch ({"Records": [{"body": ...}]}) through the webhook dispatcher."""
    try:
        batch = json.load(batch_file)
    except ValueError as e:
        raise click.ClickException(f"Batch file is not JSON: {e}")

    try:
        processed = replay_records(get_services().dispatcher, batch)
    except ReplayError as e:
        raise click.ClickException(f"{e.message} ({e.processed} processed before the failure)")

    click.echo(f"✅ Replayed {processed} events")

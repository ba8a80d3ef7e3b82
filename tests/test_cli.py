import json

import pytest

from conftest import stripe_event, subscription_object
from renewal_billing.extensions import db
from renewal_billing.models import Subscription, WebhookEvent

pytestmark = pytest.mark.db


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def write_batch(tmp_path, events):
    path = tmp_path / "batch.json"
    path.write_text(json.dumps({"Records": [{"body": json.dumps(event)} for event in events]}))
    return str(path)


class TestAddSubscription:
    def test_provisions_active_record(self, runner, make_user):
        user = make_user(email="ops@x.com")

        result = runner.invoke(args=[
            "billing", "add-subscription",
            "--email", "ops@x.com",
            "--customer-id", "cus_ops",
            "--subscription-id", "sub_ops",
            "--plan", "starter",
        ])

        assert result.exit_code == 0, result.output
        record = db.session.query(Subscription).filter_by(stripe_subscription_id="sub_ops").one()
        assert record.user_id == user.id
        assert record.plan_name == "Starter"
        assert record.status == "active"

    def test_unknown_user_fails(self, runner):
        result = runner.invoke(args=[
            "billing", "add-subscription",
            "--email", "missing@x.com",
            "--customer-id", "cus_x",
            "--subscription-id", "sub_x",
        ])

        assert result.exit_code != 0
        assert "User not found" in result.output
        assert db.session.query(Subscription).count() == 0


class TestListSubscriptions:
    def test_lists_with_owner_email(self, runner, make_user, make_subscription):
        alice = make_user(email="alice@x.com")
        make_subscription("sub_a", user=alice, plan_name="Enterprise")
        make_subscription("sub_b")

        result = runner.invoke(args=["billing", "list-subscriptions", "--email", "alice@x.com"])

        assert result.exit_code == 0
        assert "alice@x.com" in result.output
        assert "sub_a" in result.output
        assert "sub_b" not in result.output

    def test_empty(self, runner):
        result = runner.invoke(args=["billing", "list-subscriptions"])

        assert "No subscriptions found." in result.output


class TestReplayEvents:
    def test_replays_batch_in_order(self, runner, tmp_path, make_subscription):
        make_subscription("sub_r", status="active")
        path = write_batch(tmp_path, [
            stripe_event("invoice.payment_failed", {"id": "in_1", "subscription": "sub_r"}, "evt_r1"),
            stripe_event("customer.subscription.updated", subscription_object("sub_r", status="unpaid"), "evt_r2"),
        ])

        result = runner.invoke(args=["billing", "replay-events", path])

        assert result.exit_code == 0, result.output
        assert "Replayed 2 events" in result.output
        db.session.expire_all()
        assert db.session.query(Subscription).filter_by(stripe_subscription_id="sub_r").one().status == "unpaid"
        assert db.session.get(WebhookEvent, "evt_r2").is_processed is True

    def test_first_failure_stops_the_batch(self, runner, tmp_path, make_subscription):
        make_subscription("sub_r", status="active")
        path = write_batch(tmp_path, [
            stripe_event("customer.subscription.updated", subscription_object("sub_missing"), "evt_f1"),
            stripe_event("invoice.payment_failed", {"id": "in_2", "subscription": "sub_r"}, "evt_f2"),
        ])

        result = runner.invoke(args=["billing", "replay-events", path])

        assert result.exit_code != 0
        assert "0 processed" in result.output
        db.session.expire_all()
        assert db.session.query(Subscription).filter_by(stripe_subscription_id="sub_r").one().status == "active"

    def test_invalid_file(self, runner, tmp_path):
        path = tmp_path / "batch.json"
        path.write_text("{not json")

        result = runner.invoke(args=["billing", "replay-events", str(path)])

        assert result.exit_code != 0
        assert "not JSON" in result.output

    def test_record_body_must_be_an_object(self, runner, tmp_path):
        path = tmp_path / "batch.json"
        path.write_text(json.dumps({"Records": [{"body": "[1]"}]}))

        result = runner.invoke(args=["billing", "replay-events", str(path)])

        assert result.exit_code != 0
        assert "not a JSON object" in result.output
        assert "0 processed" in result.output
        assert not isinstance(result.exception, AttributeError)

import pytest

from conftest import subscription_object
from renewal_billing.billing.errors import ProcessorUnavailable, RemoteSubscriptionMissing
from renewal_billing.billing.events import decode_subscription
from renewal_billing.extensions import db
from renewal_billing.models import Subscription

pytestmark = [pytest.mark.payment, pytest.mark.db]


def reload(stripe_subscription_id):
    db.session.expire_all()
    return db.session.query(Subscription).filter_by(stripe_subscription_id=stripe_subscription_id).one()


class TestServiceToken:
    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer wrong-token"}, {"Authorization": "Basic test-service-token"}],
    )
    def test_requests_without_valid_token_are_unauthorized(self, client, headers):
        response = client.post("/api/cancel-subscription", json={"subscriptionId": "sub_1"}, headers=headers)

        assert response.status_code == 401
        assert response.get_json()["error"] == "Unauthorized"

    def test_api_is_closed_when_no_token_configured(self, app, client, auth_headers):
        app.config["BILLING_API_TOKEN"] = None

        response = client.get("/api/subscription/sub_1", headers=auth_headers)

        assert response.status_code == 404


class TestCancel:
    def test_cancel_at_period_end_keeps_status_active(self, client, auth_headers, gateway, make_subscription):
        make_subscription("sub_1", status="active")
        gateway.set_cancel_at_period_end.return_value = decode_subscription(
            subscription_object("sub_1", status="active", cancel_at_period_end=True)
        )

        response = client.post("/api/cancel-subscription", json={"subscriptionId": "sub_1"}, headers=auth_headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["subscription"]["cancel_at_period_end"] is True
        assert body["subscription"]["status"] == "active"
        gateway.set_cancel_at_period_end.assert_called_once_with("sub_1", True)

    def test_cancel_immediately(self, client, auth_headers, gateway, make_subscription):
        make_subscription("sub_2", status="active")
        gateway.cancel_immediately.return_value = decode_subscription(subscription_object("sub_2", status="canceled"))

        response = client.post(
            "/api/cancel-subscription",
            json={"subscriptionId": "sub_2", "cancelAtPeriodEnd": False},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert reload("sub_2").status == "canceled"
        gateway.set_cancel_at_period_end.assert_not_called()

    def test_subscription_missing_in_stripe_is_canceled_locally(self, client, auth_headers, gateway, make_subscription):
        make_subscription("sub_3", status="active")
        gateway.set_cancel_at_period_end.side_effect = RemoteSubscriptionMissing("sub_3")

        response = client.post("/api/cancel-subscription", json={"subscriptionId": "sub_3"}, headers=auth_headers)

        assert response.status_code == 200
        assert "not found in Stripe" in response.get_json()["message"]
        assert reload("sub_3").status == "canceled"

    def test_missing_subscription_id_is_bad_request(self, client, auth_headers):
        response = client.post("/api/cancel-subscription", json={}, headers=auth_headers)

        assert response.status_code == 400

    def test_non_boolean_flag_is_bad_request(self, client, auth_headers):
        response = client.post(
            "/api/cancel-subscription",
            json={"subscriptionId": "sub_1", "cancelAtPeriodEnd": "no"},
            headers=auth_headers,
        )

        assert response.status_code == 400

    def test_unknown_local_subscription_is_not_found(self, client, auth_headers, gateway):
        gateway.set_cancel_at_period_end.return_value = decode_subscription(
            subscription_object("sub_404", cancel_at_period_end=True)
        )

        response = client.post("/api/cancel-subscription", json={"subscriptionId": "sub_404"}, headers=auth_headers)

        assert response.status_code == 404

    def test_stripe_outage_leaves_record_untouched(self, client, auth_headers, gateway, make_subscription):
        make_subscription("sub_5", status="active")
        gateway.set_cancel_at_period_end.side_effect = ProcessorUnavailable("Stripe unavailable during update_subscription")

        response = client.post("/api/cancel-subscription", json={"subscriptionId": "sub_5"}, headers=auth_headers)

        assert response.status_code == 500
        assert response.get_json()["error"] == "PROCESSOR_UNAVAILABLE"
        record = reload("sub_5")
        assert record.status == "active"
        assert record.cancel_at_period_end is False


class TestReactivate:
    def test_reactivate_clears_flag_and_sets_active(self, client, auth_headers, gateway, make_subscription):
        make_subscription("sub_6", status="active", cancel_at_period_end=True)
        gateway.set_cancel_at_period_end.return_value = decode_subscription(
            subscription_object("sub_6", cancel_at_period_end=False)
        )

        response = client.post("/api/reactivate-subscription", json={"subscriptionId": "sub_6"}, headers=auth_headers)

        assert response.status_code == 200
        record = reload("sub_6")
        assert record.cancel_at_period_end is False
        assert record.status == "active"
        gateway.set_cancel_at_period_end.assert_called_once_with("sub_6", False)

    def test_reactivate_requires_subscription_id(self, client, auth_headers):
        response = client.post("/api/reactivate-subscription", json={}, headers=auth_headers)

        assert response.status_code == 400


class TestGetSubscription:
    def test_returns_local_record_and_live_status(self, client, auth_headers, gateway, make_subscription):
        make_subscription("sub_7", status="active", plan_name="Enterprise")
        gateway.retrieve_subscription.return_value = decode_subscription(subscription_object("sub_7", status="past_due"))

        response = client.get("/api/subscription/sub_7", headers=auth_headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body["subscription"]["plan_name"] == "Enterprise"
        assert body["subscription"]["status"] == "active"
        assert body["stripe_status"] == "past_due"

    def test_live_status_is_optional(self, client, auth_headers, gateway, make_subscription):
        make_subscription("sub_8")
        gateway.retrieve_subscription.side_effect = ProcessorUnavailable("Stripe unavailable")

        response = client.get("/api/subscription/sub_8", headers=auth_headers)

        assert response.status_code == 200
        assert response.get_json()["stripe_status"] is None

    def test_unknown_subscription_is_not_found(self, client, auth_headers):
        response = client.get("/api/subscription/sub_nope", headers=auth_headers)

        assert response.status_code == 404

import hashlib
import hmac
import json
import time
from unittest.mock import Mock

import pytest
from faker import Faker

from renewal_billing import create_app
from renewal_billing.billing.gateway import StripeGateway
from renewal_billing.extensions import db
from renewal_billing.models import Subscription, User

# Initialize Faker for generating test data
fake = Faker()

WEBHOOK_SECRET = "whsec_test_secret"
API_TOKEN = "test-service-token"

PERIOD_START = 1767225600  # 2026-01-01T00:00:00Z
PERIOD_END = 1769904000  # 2026-02-01T00:00:00Z


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "db: mark test as database-intensive"
    )
    config.addinivalue_line(
        "markers",
        "payment: mark test as payment-related"
    )
    config.addinivalue_line(
        "markers",
        "webhook: mark test as exercising the signed webhook endpoint"
    )


@pytest.fixture()
def gateway():
    """Stripe gateway double; tests set return values per call."""
    mock = Mock(spec=StripeGateway)
    mock.configured = True
    return mock


@pytest.fixture()
def app(gateway):
    app = create_app("testing", gateway=gateway)

    with app.app_context():
        db.create_all()

        yield app

        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def services(app):
    return app.extensions["billing"]


@pytest.fixture()
def make_user(app):
    def _make_user(email=None, user_id=None):
        user = User(id=user_id or fake.uuid4(), email=email or fake.unique.email(), full_name=fake.name())
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture()
def make_subscription(app, make_user):
    """Insert a subscription row directly, bypassing the reconciler."""

    def _make_subscription(stripe_subscription_id=None, user=None, **fields):
        user = user or make_user()
        values = {
            "user_id": user.id,
            "stripe_customer_id": f"cus_{fake.pystr(min_chars=10, max_chars=10)}",
            "stripe_subscription_id": stripe_subscription_id or f"sub_{fake.pystr(min_chars=10, max_chars=10)}",
            "plan_name": "Starter",
            "status": "active",
            "cancel_at_period_end": False,
        }
        values.update(fields)
        record = Subscription(**values)
        db.session.add(record)
        db.session.commit()
        return record

    return _make_subscription


def subscription_object(
    subscription_id="sub_1",
    status="active",
    price_id="price_professional_monthly",
    customer="cus_1",
    metadata=None,
    cancel_at_period_end=False,
    period_start=PERIOD_START,
    period_end=PERIOD_END,
):
    """A Stripe subscription object with the period on the subscription itself."""
    return {
        "id": subscription_id,
        "object": "subscription",
        "status": status,
        "customer": customer,
        "current_period_start": period_start,
        "current_period_end": period_end,
        "cancel_at_period_end": cancel_at_period_end,
        "metadata": metadata or {},
        "items": {
            "object": "list",
            "data": [{"id": "si_1", "price": {"id": price_id, "object": "price"}}],
        },
    }


def stripe_event(event_type, obj, event_id=None):
    return {
        "id": event_id or f"evt_{fake.pystr(min_chars=14, max_chars=14)}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


def sign(payload, secret=WEBHOOK_SECRET, timestamp=None):
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture()
def post_event(client):
    """POST an event to the webhook with a valid signature."""

    def _post_event(event, path="/webhook", **sign_kwargs):
        payload = json.dumps(event)
        return client.post(
            path,
            data=payload,
            headers={"Stripe-Signature": sign(payload, **sign_kwargs)},
            content_type="application/json",
        )

    return _post_event


@pytest.fixture()
def auth_headers():
    return {"Authorization": f"Bearer {API_TOKEN}"}

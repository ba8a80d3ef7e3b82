from .base import BaseConfig


class TestingConfig(BaseConfig):
    """
    Testing configuration.
    """

    ENVIRONMENT = "testing"
    TESTING = True

    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}

    STRIPE_SECRET_KEY = "sk_test_mock"
    STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
    STRIPE_PRICE_PLANS = {
        "price_starter_monthly": "Starter",
        "price_professional_monthly": "Professional",
        "price_enterprise_monthly": "Enterprise",
    }
    BILLING_DEFAULT_PLAN = "Professional"
    BILLING_STRICT_PLANS = False
    BILLING_API_TOKEN = "test-service-token"

    LOG_LEVEL = "WARNING"
    LOG_FORMAT = "console"
    SENTRY_DSN = None
    METRICS_ENABLED = False

import json
import os


class ConfigurationError(Exception):
    """
    Raised when an invalid or unsupported configuration is requested.
    """
    pass


# Price ids created in the Stripe dashboard for the three paid tiers.
DEFAULT_PRICE_PLANS = {
    "price_starter_monthly": "Starter",
    "price_professional_monthly": "Professional",
    "price_enterprise_monthly": "Enterprise",
}


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _load_price_plans():
    raw = os.getenv("STRIPE_PRICE_PLANS")
    if not raw:
        return dict(DEFAULT_PRICE_PLANS)
    try:
        plans = json.loads(raw)
    except ValueError as e:
        raise ConfigurationError(f"STRIPE_PRICE_PLANS is not valid JSON: {e}")
    if not isinstance(plans, dict):
        raise ConfigurationError("STRIPE_PRICE_PLANS must be a JSON object of price id -> plan name")
    return plans


def engine_options(database_url):
    """
    Bound every round-trip to the subscription store.

    SQLite (tests, local dev) gets no pool options since Flask-SQLAlchemy
    may pick a StaticPool for it.
    """
    if database_url.startswith("sqlite"):
        return {}

    options = {
        "pool_pre_ping": True,
        "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", "10")),
    }
    if database_url.startswith("postgres"):
        statement_timeout = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000"))
        options["connect_args"] = {
            "connect_timeout": int(os.getenv("DB_CONNECT_TIMEOUT", "5")),
            "options": f"-c statement_timeout={statement_timeout}",
        }
    return options


class BaseConfig:
    """
    Base configuration shared by all environments.
    """

    ENVIRONMENT = "base"
    DEBUG = False
    TESTING = False

    # Application
    APP_NAME = "Renewal Billing"
    APP_VERSION = os.getenv("APP_VERSION", "1.0.0")

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///billing.db")
    SQLALCHEMY_ENGINE_OPTIONS = engine_options(SQLALCHEMY_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_WEBHOOK_TOLERANCE = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE", "300"))
    STRIPE_TIMEOUT_SECONDS = int(os.getenv("STRIPE_TIMEOUT_SECONDS", "10"))
    STRIPE_MAX_NETWORK_RETRIES = int(os.getenv("STRIPE_MAX_NETWORK_RETRIES", "2"))
    STRIPE_PRICE_PLANS = _load_price_plans()

    # Plan resolution
    BILLING_DEFAULT_PLAN = os.getenv("BILLING_DEFAULT_PLAN", "Professional")
    BILLING_STRICT_PLANS = _env_bool("BILLING_STRICT_PLANS")

    # Subscription management API
    BILLING_API_TOKEN = os.getenv("BILLING_API_TOKEN")

    # Observability
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "json")
    LOG_REQUESTS = _env_bool("LOG_REQUESTS")
    SENTRY_DSN = os.getenv("SENTRY_DSN")
    METRICS_ENABLED = _env_bool("METRICS_ENABLED")

    REQUIRED_SETTINGS = ("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET")


def validate_config(config):
    """
    Fail fast on missing secrets instead of failing each webhook delivery.
    """
    missing = [key for key in config.get("REQUIRED_SETTINGS", ()) if not config.get(key)]
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    if config.get("ENVIRONMENT") == "production" and config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        raise ConfigurationError("SQLite is not suitable for production")

    plan_names = {"Starter", "Professional", "Enterprise", "Unknown"}
    unknown = sorted(set(config["STRIPE_PRICE_PLANS"].values()) - plan_names)
    if unknown:
        raise ConfigurationError(f"STRIPE_PRICE_PLANS maps to unknown plan names: {unknown}")
    if config["BILLING_DEFAULT_PLAN"] not in plan_names:
        raise ConfigurationError(f"Invalid BILLING_DEFAULT_PLAN: {config['BILLING_DEFAULT_PLAN']}")

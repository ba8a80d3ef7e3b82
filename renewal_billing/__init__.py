"""
Flask application factory for the renewal billing service.

Configuration is validated before anything else is built so a missing
webhook secret stops the process at boot rather than failing each
delivery.
"""

import logging
import sys
from typing import Optional

import sentry_sdk
from flask import Flask
from sentry_sdk.integrations.flask import FlaskIntegration

from renewal_billing.billing import build_services
from renewal_billing.config import ConfigurationError, get_config, validate_config
from renewal_billing.errors import register_error_handlers
from renewal_billing.extensions import init_extensions
from renewal_billing.logging_config import setup_logging
from renewal_billing.middleware.request_id import init_request_id_middleware

logger = logging.getLogger(__name__)


def setup_sentry(app: Flask) -> None:
    """Initialize Sentry error tracking"""
    sentry_dsn = app.config.get("SENTRY_DSN")
    if not sentry_dsn:
        return

    sentry_sdk.init(
        dsn=sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=0.1,
        environment=app.config.get("ENVIRONMENT"),
        release=app.config.get("APP_VERSION", "1.0.0"),
        send_default_pii=False,
    )
    logger.info("Sentry error tracking initialized")


def register_routes(app: Flask) -> None:
    from renewal_billing.health import health_bp
    from renewal_billing.routes.subscription_routes import subscription_bp
    from renewal_billing.routes.webhook_routes import webhook_bp

    app.register_blueprint(webhook_bp)
    app.register_blueprint(subscription_bp)
    app.register_blueprint(health_bp)


def log_startup_summary(app: Flask) -> None:
    def mask(value):
        if not value:
            return "Not configured"
        if "@" in value:
            return f"***@{value.split('@')[-1][:30]}"
        return value[:50]

    secret_key = app.config.get("STRIPE_SECRET_KEY") or ""
    summary_lines = [
        "=" * 60,
        "APPLICATION STARTUP SUMMARY",
        "=" * 60,
        f"Environment:      {app.config.get('ENVIRONMENT')}",
        f"App Version:      {app.config.get('APP_VERSION')}",
        f"Database:         {mask(app.config.get('SQLALCHEMY_DATABASE_URI'))}",
        f"Stripe:           {'Live' if secret_key.startswith('sk_live') else 'Test'}",
        f"Price Plans:      {len(app.config.get('STRIPE_PRICE_PLANS', {}))} mapped",
        f"Default Plan:     {app.config.get('BILLING_DEFAULT_PLAN')}"
        f"{' (strict)' if app.config.get('BILLING_STRICT_PLANS') else ''}",
        f"Subscription API: {'Enabled' if app.config.get('BILLING_API_TOKEN') else 'Disabled'}",
        f"Sentry:           {'Enabled' if app.config.get('SENTRY_DSN') else 'Disabled'}",
        f"Metrics:          {'Enabled' if app.config.get('METRICS_ENABLED') else 'Disabled'}",
        "=" * 60,
    ]
    logger.info("\n".join(summary_lines))


def create_app(config_name: Optional[str] = None, config_overrides: Optional[dict] = None, gateway=None) -> Flask:
    """
    Build the application.

    Args:
        config_name: development, testing or production; APP_ENV otherwise
        config_overrides: values applied on top of the config class
        gateway: Stripe gateway to inject instead of building one from config

    Raises:
        ConfigurationError: if required settings are missing or invalid
    """
    app = Flask(__name__)

    try:
        app.config.from_object(get_config(config_name))
        app.config.update(config_overrides or {})
        validate_config(app.config)
    except ConfigurationError as e:
        print(f"CRITICAL: Configuration error: {e}", file=sys.stderr)
        raise

    setup_logging(app)
    logger.info(f"Starting application initialization in {app.config.get('ENVIRONMENT')} mode...")

    setup_sentry(app)
    init_request_id_middleware(app)
    init_extensions(app)

    app.extensions["billing"] = build_services(app.config, gateway=gateway)

    register_error_handlers(app)
    register_routes(app)

    from renewal_billing.cli import billing_cli
    app.cli.add_command(billing_cli)

    log_startup_summary(app)
    return app

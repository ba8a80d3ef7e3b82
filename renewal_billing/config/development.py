from .base import BaseConfig


class DevelopmentConfig(BaseConfig):
    """
    Development configuration.
    """

    ENVIRONMENT = "development"
    DEBUG = True

    LOG_FORMAT = "console"

    # Local runs can exercise the webhook endpoint with `stripe listen`
    # without a live secret key.
    REQUIRED_SETTINGS = ("STRIPE_WEBHOOK_SECRET",)

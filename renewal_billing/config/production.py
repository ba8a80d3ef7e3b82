from .base import BaseConfig


class ProductionConfig(BaseConfig):
    """
    Production configuration.
    """

    ENVIRONMENT = "production"
    DEBUG = False

    # MUST be set via environment variables in real production
    REQUIRED_SETTINGS = ("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET", "SQLALCHEMY_DATABASE_URI")

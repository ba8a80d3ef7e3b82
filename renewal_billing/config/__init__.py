import os

from .base import ConfigurationError, validate_config
from .development import DevelopmentConfig
from .production import ProductionConfig
from .testing import TestingConfig


CONFIGS = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config(config_name=None):
    """
    Resolve and return the correct configuration class
    based on the argument or the APP_ENV environment variable.

    Supported values:
    - development
    - testing
    - production
    """

    env = (config_name or os.getenv("APP_ENV", "development")).lower()

    try:
        return CONFIGS[env]
    except KeyError:
        raise ConfigurationError(f"Invalid APP_ENV value: {env}")


__all__ = ["ConfigurationError", "get_config", "validate_config"]

import logging
import logging.config
from datetime import datetime

from flask import g, has_request_context, request
from pythonjsonlogger import jsonlogger

NOISY_LOGGERS = ("werkzeug", "sqlalchemy.engine", "urllib3", "stripe")


class RequestIdFilter(logging.Filter):
    """
    Inject request_id into every log record if present.
    """

    def filter(self, record):
        if not hasattr(record, "request_id"):
            record.request_id = g.get("request_id") if has_request_context() else None
        return True


def build_logging_config(level="INFO", fmt="json"):
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {
                "()": RequestIdFilter,
            },
        },
        "formatters": {
            "json": {
                "()": jsonlogger.JsonFormatter,
                "fmt": (
                    "%(asctime)s "
                    "%(levelname)s "
                    "%(name)s "
                    "%(message)s "
                    "%(request_id)s "
                    "%(module)s "
                    "%(funcName)s "
                    "%(lineno)d"
                ),
            },
            "console": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "console" if fmt == "console" else "json",
                "filters": ["request_id"],
            },
        },
        "loggers": {name: {"level": "WARNING"} for name in NOISY_LOGGERS},
        "root": {
            "level": level,
            "handlers": ["default"],
        },
    }


def setup_logging(app):
    """Configure logging for the application"""
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    logging.config.dictConfig(build_logging_config(level, app.config.get("LOG_FORMAT", "json")))

    logger = logging.getLogger("renewal_billing.requests")

    @app.before_request
    def log_request():
        if app.config.get("LOG_REQUESTS") or app.debug:
            g.start_time = datetime.now()
            logger.info(
                f"Request: {request.method} {request.path}",
                extra={"ip": request.remote_addr},
            )

    @app.after_request
    def log_response(response):
        if (app.config.get("LOG_REQUESTS") or app.debug) and "start_time" in g:
            duration = (datetime.now() - g.start_time).total_seconds() * 1000
            logger.info(
                f"Response: {request.method} {request.path} - {response.status_code}",
                extra={
                    "status_code": response.status_code,
                    "duration_ms": round(duration, 2),
                    "method": request.method,
                    "path": request.path,
                },
            )
        return response

    return app

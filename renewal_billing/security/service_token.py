import hmac
import logging
from functools import wraps

from flask import abort, current_app, request

logger = logging.getLogger(__name__)


def require_service_token(view):
    """
    Guard an internal endpoint with the shared BILLING_API_TOKEN.

    Callers send `Authorization: Bearer <token>`. With no token configured
    the endpoints are closed entirely.
    """

    @wraps(view)
    def wrapped(*args, **kwargs):
        expected = current_app.config.get("BILLING_API_TOKEN")
        if not expected:
            logger.warning("Subscription API called but BILLING_API_TOKEN is not configured")
            abort(404)

        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not hmac.compare_digest(token.strip(), expected):
            logger.warning("Rejected subscription API call", extra={"path": request.path})
            abort(401)

        return view(*args, **kwargs)

    return wrapped

import logging

from flask import jsonify, request

from renewal_billing.billing.errors import BillingError

logger = logging.getLogger(__name__)


def _error(error, message, status):
    return jsonify({"error": error, "message": message, "path": request.path}), status


def register_error_handlers(app):
    """Register JSON error handlers for the application"""

    @app.errorhandler(400)
    def bad_request(e):
        logger.warning(f"Bad request: {e} - Path: {request.path}")
        return _error("Bad request", "The request could not be understood or was missing required parameters.", 400)

    @app.errorhandler(401)
    def unauthorized(e):
        return _error("Unauthorized", "A valid service token is required.", 401)

    @app.errorhandler(404)
    def not_found(e):
        logger.info(f"Not found: {request.path}")
        return _error("Not found", "The requested resource was not found on the server.", 404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        logger.warning(f"Method not allowed: {request.method} {request.path}")
        return _error("Method not allowed", f"The {request.method} method is not supported for this endpoint.", 405)

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f"Server error: {e} - Path: {request.path}")
        return _error("Server error", "An internal server error occurred. Please try again later.", 500)

    @app.errorhandler(BillingError)
    def handle_billing_error(error):
        log = logger.error if error.http_status >= 500 else logger.warning
        log(
            f"{error.code}: {error.message}",
            extra={"path": request.path, "error_code": error.code, **error.context},
        )
        return _error(error.code, error.message, error.http_status)

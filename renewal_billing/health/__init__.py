from flask import Blueprint, Response, abort, current_app, jsonify

from renewal_billing.billing import get_services
from renewal_billing.health.checks import run_health_checks

health_bp = Blueprint("health", __name__)


@health_bp.route("/health", methods=["GET"])
def health():
    report = run_health_checks(get_services())
    report["service"] = current_app.config.get("APP_NAME")
    report["version"] = current_app.config.get("APP_VERSION")
    return jsonify(report), 200 if report["status"] == "ok" else 503


@health_bp.route("/metrics", methods=["GET"])
def metrics():
    manager = get_services().metrics
    if not manager.enabled:
        abort(404)
    payload, content_type = manager.render()
    return Response(payload, content_type=content_type)

import logging

from flask import Blueprint, jsonify, request

from renewal_billing.billing import get_services
from renewal_billing.billing.errors import BillingError, RemoteSubscriptionMissing, SubscriptionNotFound
from renewal_billing.security.service_token import require_service_token

logger = logging.getLogger(__name__)

subscription_bp = Blueprint("subscriptions", __name__, url_prefix="/api")


def _not_found(subscription_id):
    return jsonify({
        "error": "Not found",
        "message": f"No subscription record for {subscription_id}",
        "path": request.path,
    }), 404


def _subscription_id_from_body():
    data = request.get_json(silent=True) or {}
    return data, data.get("subscriptionId")


@subscription_bp.route("/cancel-subscription", methods=["POST"])
@require_service_token
def cancel_subscription():
    """
    Cancel a subscription in Stripe and mirror the result locally.

    Body: {"subscriptionId": "...", "cancelAtPeriodEnd": true}
    """
    data, subscription_id = _subscription_id_from_body()
    if not subscription_id:
        return jsonify({"error": "Bad request", "message": "subscriptionId is required", "path": request.path}), 400

    at_period_end = data.get("cancelAtPeriodEnd", True)
    if not isinstance(at_period_end, bool):
        return jsonify({"error": "Bad request", "message": "cancelAtPeriodEnd must be a boolean", "path": request.path}), 400

    services = get_services()
    try:
        with services.store.transaction():
            record, message = services.reconciler.cancel(subscription_id, at_period_end=at_period_end)
    except SubscriptionNotFound:
        return _not_found(subscription_id)

    logger.info(
        "Subscription cancel requested",
        extra={"subscription_id": subscription_id, "cancel_at_period_end": at_period_end},
    )
    return jsonify({"success": True, "message": message, "subscription": record.to_dict()})


@subscription_bp.route("/reactivate-subscription", methods=["POST"])
@require_service_token
def reactivate_subscription():
    """Undo a pending cancel-at-period-end."""
    _, subscription_id = _subscription_id_from_body()
    if not subscription_id:
        return jsonify({"error": "Bad request", "message": "subscriptionId is required", "path": request.path}), 400

    services = get_services()
    try:
        with services.store.transaction():
            record = services.reconciler.reactivate(subscription_id)
    except (SubscriptionNotFound, RemoteSubscriptionMissing):
        return _not_found(subscription_id)

    logger.info("Subscription reactivated", extra={"subscription_id": subscription_id})
    return jsonify({"success": True, "message": "Subscription reactivated", "subscription": record.to_dict()})


@subscription_bp.route("/subscription/<subscription_id>", methods=["GET"])
@require_service_token
def get_subscription(subscription_id):
    services = get_services()
    record = services.store.get(subscription_id)
    if record is None:
        return _not_found(subscription_id)

    stripe_status = None
    try:
        stripe_status = services.gateway.retrieve_subscription(subscription_id).status.value
    except RemoteSubscriptionMissing:
        logger.info("Subscription exists locally but not in Stripe", extra={"subscription_id": subscription_id})
    except BillingError as e:
        logger.warning("Could not fetch live Stripe status: %s", e.message, extra={"subscription_id": subscription_id})

    return jsonify({"subscription": record.to_dict(), "stripe_status": stripe_status})

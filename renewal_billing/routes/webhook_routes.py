import logging

from flask import Blueprint, jsonify, request

from renewal_billing.billing import get_services
from renewal_billing.billing.errors import SignatureInvalid
from renewal_billing.billing.signature import SIGNATURE_HEADER, verify_signature

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhooks", __name__)


@webhook_bp.route("/webhook", methods=["POST"])
@webhook_bp.route("/webhook/stripe", methods=["POST"])
def stripe_webhook():
    """
    Stripe webhook endpoint.

    Responses:
        200: processed, duplicate, ignored type or subscription-less invoice
        400: bad signature or malformed event; Stripe should not retry
        500: reconciliation failed; Stripe redelivers with backoff
    """
    services = get_services()

    # Raw bytes: the signature covers the body exactly as sent.
    payload = request.get_data(cache=False)
    signature = request.headers.get(SIGNATURE_HEADER)

    try:
        event = verify_signature(payload, signature, services.webhook_secret, services.webhook_tolerance)
    except SignatureInvalid as e:
        logger.warning(
            "Rejected webhook: %s",
            e.message,
            extra={"remote_addr": request.remote_addr, "has_signature": bool(signature)},
        )
        services.metrics.record_webhook_event(None, "rejected")
        return jsonify(e.to_dict()), e.http_status

    result = services.dispatcher.dispatch(event)
    return jsonify(result.body), result.status_code

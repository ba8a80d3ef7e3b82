import json

import stripe

from renewal_billing.billing.errors import SignatureInvalid


SIGNATURE_HEADER = "Stripe-Signature"
ALLOWED_DRIFT_SECONDS = 300  # 5 minutes


def verify_signature(payload: bytes, signature: str, secret: str, tolerance: int = ALLOWED_DRIFT_SECONDS) -> dict:
    """
    Verify a Stripe webhook delivery and return the parsed event.

    `payload` must be the raw request body: re-serialised JSON does not
    match the signature. Nothing is written anywhere before this returns.
    """
    if not signature:
        raise SignatureInvalid(f"Missing {SIGNATURE_HEADER} header")
    if not payload:
        raise SignatureInvalid("Empty request body")

    try:
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
    except UnicodeDecodeError:
        raise SignatureInvalid("Malformed body: not UTF-8")

    try:
        stripe.WebhookSignature.verify_header(body, signature, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        raise SignatureInvalid(f"Signature verification failed: {e.user_message or e}")

    try:
        event = json.loads(body)
    except ValueError as e:
        raise SignatureInvalid(f"Malformed JSON body: {e}")

    if not isinstance(event, dict):
        raise SignatureInvalid("Malformed body: expected a JSON object")
    return event

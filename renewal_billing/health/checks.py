import time

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from renewal_billing.extensions import db


def _check_database():
    start = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        latency = round((time.time() - start) * 1000, 2)
        return {"status": "ok", "latency_ms": latency}
    except SQLAlchemyError as e:
        db.session.rollback()
        return {"status": "error", "error": str(e)}


def _check_stripe(services):
    """Configuration only: a live API call per health check would burn rate limit."""
    if not services.webhook_secret:
        return {"status": "error", "error": "STRIPE_WEBHOOK_SECRET not set"}
    if not services.gateway.configured:
        return {"status": "skipped", "reason": "STRIPE_SECRET_KEY not set"}
    return {"status": "ok"}


def run_health_checks(services):
    """
    Master health runner used by route.
    """
    checks = {
        "database": _check_database(),
        "stripe": _check_stripe(services),
    }

    overall = "ok"
    for c in checks.values():
        if c["status"] == "error":
            overall = "degraded"

    return {
        "status": overall,
        "timestamp": int(time.time()),
        "checks": checks,
    }

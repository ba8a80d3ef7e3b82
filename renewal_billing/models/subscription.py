# subscription.py
import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import CheckConstraint, Index

from renewal_billing.extensions import db


class SubscriptionStatus(str, Enum):
    """Stripe's subscription status vocabulary, mirrored verbatim."""

    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    UNPAID = "unpaid"
    PAUSED = "paused"


class PlanName(str, Enum):
    STARTER = "Starter"
    PROFESSIONAL = "Professional"
    ENTERPRISE = "Enterprise"
    UNKNOWN = "Unknown"


def _utcnow():
    return datetime.now(timezone.utc)


def _isoformat(value):
    if value is None:
        return None
    # SQLite hands back naive datetimes; everything stored here is UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in SubscriptionStatus)
_PLAN_VALUES = ", ".join(f"'{p.value}'" for p in PlanName)


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Stripe IDs; the subscription id is the reconciliation key
    stripe_customer_id = db.Column(db.String(255), nullable=True, index=True)
    stripe_subscription_id = db.Column(db.String(255), unique=True, nullable=False)

    plan_name = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(32), nullable=False, index=True)

    current_period_start = db.Column(db.DateTime(timezone=True), nullable=True)
    current_period_end = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_at_period_end = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    user = db.relationship("User", back_populates="subscriptions")

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="valid_subscription_status"),
        CheckConstraint(f"plan_name IN ({_PLAN_VALUES})", name="valid_plan_name"),
        Index("idx_user_status", "user_id", "status"),
    )

    def is_active(self):
        return self.status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "stripe_customer_id": self.stripe_customer_id,
            "stripe_subscription_id": self.stripe_subscription_id,
            "plan_name": self.plan_name,
            "status": self.status,
            "current_period_start": _isoformat(self.current_period_start),
            "current_period_end": _isoformat(self.current_period_end),
            "cancel_at_period_end": self.cancel_at_period_end,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
            "is_active": self.is_active(),
        }

    def __repr__(self):
        return f"<Subscription {self.stripe_subscription_id} {self.plan_name} {self.status}>"

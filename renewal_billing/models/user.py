import uuid
from datetime import datetime, timezone

from renewal_billing.extensions import db


class User(db.Model):
    """
    Application user. Rows are provisioned by the sign-up flow;
    billing only reads them to attach subscriptions.
    """

    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    subscriptions = db.relationship("Subscription", back_populates="user", lazy="select")

    def __repr__(self):
        return f"<User {self.email}>"

from datetime import datetime, timezone

from renewal_billing.extensions import db


class WebhookEvent(db.Model):
    """Ledger of delivered provider events, keyed by the provider's event id."""

    __tablename__ = "webhook_events"

    id = db.Column(db.String(255), primary_key=True)  # provider event ID
    provider = db.Column(db.String(32), nullable=False, default="stripe")
    event_type = db.Column(db.String(128), nullable=False)
    received_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_processed = db.Column(db.Boolean, default=False, nullable=False)
    attempts = db.Column(db.Integer, default=0, nullable=False)
    last_error = db.Column(db.Text, nullable=True)

    __table_args__ = (
        db.Index("idx_webhook_provider_event", "provider", "id", unique=True),
    )

    def __repr__(self):
        return f"<WebhookEvent {self.id} ({self.event_type})>"

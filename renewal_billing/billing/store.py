import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import InterfaceError, OperationalError, TimeoutError as PoolTimeoutError

from renewal_billing.billing.errors import StoreUnavailable, SubscriptionNotFound
from renewal_billing.extensions import db
from renewal_billing.models.subscription import Subscription
from renewal_billing.models.user import User
from renewal_billing.models.webhook_event import WebhookEvent

logger = logging.getLogger(__name__)

_UNAVAILABLE = (OperationalError, InterfaceError, PoolTimeoutError)

# Columns an upsert must never overwrite on an existing row.
_IMMUTABLE_ON_CONFLICT = ("id", "created_at")


@contextmanager
def store_errors(operation):
    """Translate connection failures and timeouts into a retryable StoreUnavailable."""
    try:
        yield
    except _UNAVAILABLE as e:
        logger.error("Subscription store unavailable during %s: %s", operation, e)
        raise StoreUnavailable(f"Subscription store unavailable during {operation}") from e


def _insert_for(dialect_name):
    if dialect_name == "postgresql":
        return postgresql.insert
    if dialect_name == "sqlite":
        return sqlite.insert
    return None


class SubscriptionStore:
    """
    Subscription records keyed by the Stripe subscription id.

    Every method works inside the caller's session transaction; callers
    finish with commit() or rollback().
    """

    def __init__(self, database=db):
        self.db = database

    @property
    def session(self):
        return self.db.session

    def get(self, stripe_subscription_id: str) -> Optional[Subscription]:
        with store_errors("lookup"):
            return self.session.scalars(
                select(Subscription)
                .filter_by(stripe_subscription_id=stripe_subscription_id)
                .execution_options(populate_existing=True)
            ).one_or_none()

    def list(self, email: Optional[str] = None):
        query = select(Subscription).join(User).order_by(Subscription.created_at.desc())
        if email:
            query = query.where(User.email == email)
        with store_errors("list"):
            return list(self.session.scalars(query))

    def upsert(self, values: dict) -> Subscription:
        """
        Insert or fully replace the row for values["stripe_subscription_id"].

        Uses the database's ON CONFLICT so concurrent deliveries for one
        subscription cannot produce two rows.
        """
        stripe_subscription_id = values["stripe_subscription_id"]
        row = dict(values)
        row.setdefault("updated_at", datetime.now(timezone.utc))

        with store_errors("upsert"):
            insert = _insert_for(self.session.get_bind().dialect.name)
            if insert is None:
                self._upsert_portable(row)
            else:
                stmt = insert(Subscription).values(**row)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Subscription.stripe_subscription_id],
                    set_={
                        key: stmt.excluded[key]
                        for key in row
                        if key not in _IMMUTABLE_ON_CONFLICT and key != "stripe_subscription_id"
                    },
                )
                self.session.execute(stmt)

        record = self.get(stripe_subscription_id)
        logger.debug("Upserted subscription %s", stripe_subscription_id)
        return record

    def _upsert_portable(self, row):
        existing = self.session.scalars(
            select(Subscription)
            .filter_by(stripe_subscription_id=row["stripe_subscription_id"])
            .with_for_update()
        ).one_or_none()
        if existing is None:
            self.session.add(Subscription(**row))
        else:
            for key, value in row.items():
                if key not in _IMMUTABLE_ON_CONFLICT:
                    setattr(existing, key, value)
        self.session.flush()

    def update(self, stripe_subscription_id: str, values: dict) -> Subscription:
        """
        Apply a partial update to an existing record.

        Raises SubscriptionNotFound rather than creating a partial row.
        """
        with store_errors("update"):
            record = self.session.scalars(
                select(Subscription)
                .filter_by(stripe_subscription_id=stripe_subscription_id)
                .with_for_update()
            ).one_or_none()

            if record is None:
                raise SubscriptionNotFound(stripe_subscription_id)

            for key, value in values.items():
                setattr(record, key, value)
            record.updated_at = values.get("updated_at") or datetime.now(timezone.utc)
            self.session.flush()
        return record

    def commit(self):
        with store_errors("commit"):
            self.session.commit()

    def rollback(self):
        self.session.rollback()

    @contextmanager
    def transaction(self):
        try:
            yield self
            self.commit()
        except Exception:
            self.rollback()
            raise


class UserDirectory:
    """Read-only lookup into the users table."""

    def __init__(self, database=db):
        self.db = database

    def find_id_by_email(self, email: str) -> Optional[str]:
        with store_errors("user lookup"):
            return self.db.session.scalars(
                select(User.id).where(User.email == email)
            ).one_or_none()


class EventLedger:
    """
    Bookkeeping of delivered webhook events.

    An event marked processed is acknowledged without re-running its
    handler. Failed attempts stay unprocessed so a redelivery runs again.
    """

    def __init__(self, database=db, provider="stripe"):
        self.db = database
        self.provider = provider

    def is_processed(self, event_id: str) -> bool:
        with store_errors("ledger lookup"):
            event = self.db.session.get(WebhookEvent, event_id)
        return bool(event and event.is_processed)

    def _entry(self, event_id, event_type):
        event = self.db.session.get(WebhookEvent, event_id)
        if event is None:
            event = WebhookEvent(id=event_id, provider=self.provider, event_type=event_type, attempts=0)
            self.db.session.add(event)
        return event

    def mark_processed(self, event_id: str, event_type: str):
        with store_errors("ledger write"):
            event = self._entry(event_id, event_type)
            event.attempts = (event.attempts or 0) + 1
            event.is_processed = True
            event.processed_at = datetime.now(timezone.utc)
            event.last_error = None
            self.db.session.flush()

    def record_failure(self, event_id: str, event_type: str, error: str):
        with store_errors("ledger write"):
            event = self._entry(event_id, event_type)
            event.attempts = (event.attempts or 0) + 1
            event.last_error = error[:2000]
            self.db.session.flush()

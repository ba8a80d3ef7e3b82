from .subscription import PlanName, Subscription, SubscriptionStatus
from .user import User
from .webhook_event import WebhookEvent

__all__ = ["PlanName", "Subscription", "SubscriptionStatus", "User", "WebhookEvent"]

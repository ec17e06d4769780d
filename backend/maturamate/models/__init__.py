from maturamate.models.pending_subscription_change import (
    ChangeTiming,
    ChangeType,
    PendingChangeStatus,
    PendingSubscriptionChange,
)
from maturamate.models.subject import Subject
from maturamate.models.subscription import Subscription, SubscriptionStatus
from maturamate.models.user import User
from maturamate.models.user_subject import UserSubject

__all__ = [
    "ChangeTiming",
    "ChangeType",
    "PendingChangeStatus",
    "PendingSubscriptionChange",
    "Subject",
    "Subscription",
    "SubscriptionStatus",
    "User",
    "UserSubject",
]

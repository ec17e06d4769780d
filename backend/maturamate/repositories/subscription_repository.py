from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from maturamate.models.subscription import Subscription


class SubscriptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_user_id(self, user_id: UUID) -> Subscription | None:
        return self.db.query(Subscription).filter(Subscription.user_id == user_id).first()

    def get_by_stripe_subscription_id(self, stripe_subscription_id: str) -> Subscription | None:
        return (
            self.db.query(Subscription)
            .filter(Subscription.stripe_subscription_id == stripe_subscription_id)
            .first()
        )

    def upsert_for_user(self, user_id: UUID, **fields: Any) -> Subscription:
        """Create the user's subscription row or overwrite the given fields."""
        subscription = self.get_by_user_id(user_id)
        if subscription is None:
            subscription = Subscription(user_id=user_id, **fields)
            self.db.add(subscription)
        else:
            for key, value in fields.items():
                setattr(subscription, key, value)
        self.db.commit()
        self.db.refresh(subscription)
        return subscription

    def set_plan(
        self,
        subscription: Subscription,
        subject_count: int,
        custom_price: Decimal,
        commit: bool = True,
    ) -> Subscription:
        subscription.subject_count = subject_count  # type: ignore[assignment]
        subscription.custom_price = custom_price  # type: ignore[assignment]
        if commit:
            self.db.commit()
            self.db.refresh(subscription)
        return subscription

    def set_cancel_at_period_end(self, subscription: Subscription, value: bool) -> Subscription:
        subscription.cancel_at_period_end = value  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(subscription)
        return subscription

    def sync_from_provider(
        self,
        subscription: Subscription,
        status: str,
        current_period_start: datetime | None,
        current_period_end: datetime | None,
        cancel_at_period_end: bool,
    ) -> Subscription:
        subscription.status = status  # type: ignore[assignment]
        if current_period_start is not None:
            subscription.current_period_start = current_period_start  # type: ignore[assignment]
        if current_period_end is not None:
            subscription.current_period_end = current_period_end  # type: ignore[assignment]
        subscription.cancel_at_period_end = cancel_at_period_end  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(subscription)
        return subscription

    def set_status(self, subscription: Subscription, status: str) -> Subscription:
        subscription.status = status  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(subscription)
        return subscription

"""Service for subscription lifecycle management: cancellation and reactivation."""

import logging

from sqlalchemy.orm import Session

from maturamate.models.shared import as_utc
from maturamate.models.subscription import Subscription
from maturamate.repositories.subscription_repository import SubscriptionRepository
from maturamate.schemas.subscription import (
    CancelSubscriptionResponse,
    ReactivateSubscriptionResponse,
)
from maturamate.services.payment_provider import BillingProviderBase

logger = logging.getLogger(__name__)


class SubscriptionLifecycleService:
    """Service for managing subscription lifecycle events."""

    def __init__(self, db: Session, provider: BillingProviderBase):
        self.db = db
        self.provider = provider
        self.subscription_repo = SubscriptionRepository(db)

    def cancel(self, subscription: Subscription) -> CancelSubscriptionResponse:
        """Cancel at the end of the current period; access is kept until then."""
        remote = self.provider.set_cancel_at_period_end(
            str(subscription.stripe_subscription_id), True
        )
        self.subscription_repo.set_cancel_at_period_end(subscription, True)

        cancel_at = remote.current_period_end or as_utc(subscription.current_period_end)  # type: ignore[arg-type]
        logger.info(
            "Subscription %s set to cancel at period end (%s)",
            subscription.stripe_subscription_id,
            cancel_at,
        )
        return CancelSubscriptionResponse(
            success=True,
            message="Subscription will be canceled at the end of the billing period",
            cancel_at=cancel_at,
        )

    def reactivate(self, subscription: Subscription) -> ReactivateSubscriptionResponse:
        self.provider.set_cancel_at_period_end(str(subscription.stripe_subscription_id), False)
        self.subscription_repo.set_cancel_at_period_end(subscription, False)
        logger.info("Subscription %s reactivated", subscription.stripe_subscription_id)
        return ReactivateSubscriptionResponse(
            success=True, message="Subscription reactivated"
        )

"""Service for starting and confirming a subscription checkout."""

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from maturamate.core.config import settings
from maturamate.models.subscription import Subscription, SubscriptionStatus
from maturamate.repositories.pending_change_repository import PendingChangeRepository
from maturamate.repositories.subject_repository import SubjectRepository
from maturamate.repositories.subscription_repository import SubscriptionRepository
from maturamate.repositories.user_repository import UserRepository
from maturamate.repositories.user_subject_repository import UserSubjectRepository
from maturamate.schemas.checkout import (
    ActivatedPlan,
    CheckoutResponse,
    ProcessCheckoutResponse,
)
from maturamate.services.payment_provider import BillingProviderBase, ProviderSubscription
from maturamate.services.pricing import PLAN_NAME, calculate_custom_price, to_money
from maturamate.services.subscription_status import is_active

logger = logging.getLogger(__name__)


def parse_selected_subjects(metadata: dict[str, Any]) -> list[str]:
    """Read the subject ids stored on the checkout session metadata."""
    raw = metadata.get("selectedSubjects")
    if not raw:
        return []
    try:
        values = json.loads(raw) if isinstance(raw, str) else raw
    except json.JSONDecodeError:
        logger.warning("Malformed selectedSubjects metadata: %r", raw)
        return []
    if not isinstance(values, list):
        return []
    subject_ids = []
    for value in values:
        try:
            subject_ids.append(str(UUID(str(value))))
        except ValueError:
            logger.warning("Skipping malformed subject id %r", value)
    return subject_ids


class CheckoutService:
    def __init__(self, db: Session, provider: BillingProviderBase):
        self.db = db
        self.provider = provider
        self.subscription_repo = SubscriptionRepository(db)
        self.pending_repo = PendingChangeRepository(db)
        self.subject_repo = SubjectRepository(db)
        self.user_repo = UserRepository(db)
        self.user_subject_repo = UserSubjectRepository(db)

    def create_checkout(self, user_id: UUID, subject_ids: list[UUID]) -> CheckoutResponse:
        """Create a subscription checkout session for the selected subjects."""
        existing = self.subscription_repo.get_by_user_id(user_id)
        if is_active(existing):
            raise ValueError("User already has an active subscription")

        unique_ids = list(dict.fromkeys(subject_ids))
        subjects = self.subject_repo.get_by_ids(unique_ids)
        if len(subjects) != len(unique_ids):
            raise ValueError("One or more subjects do not exist")

        subject_count = len(unique_ids)
        price = calculate_custom_price(subject_count)

        customer_id = existing.stripe_customer_id if existing is not None else None
        if not customer_id:
            user = self.user_repo.get_by_id(user_id)
            customer_id = self.provider.create_customer(
                email=user.email if user else None,  # type: ignore[arg-type]
                name=user.name if user else None,  # type: ignore[arg-type]
                user_id=str(user_id),
            )
            self.subscription_repo.upsert_for_user(
                user_id,
                stripe_customer_id=customer_id,
                status=SubscriptionStatus.INCOMPLETE.value,
            )

        base_url = settings.APP_BASE_URL.rstrip("/")
        session = self.provider.create_checkout_session(
            customer_id=str(customer_id),
            subject_count=subject_count,
            success_url=f"{base_url}/dashboard?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base_url}/pricing",
            metadata={
                "userId": str(user_id),
                "planType": "CUSTOM",
                "selectedSubjects": json.dumps([str(s) for s in unique_ids]),
                "customPrice": str(price),
                "subjectCount": str(subject_count),
            },
        )
        logger.info(
            "Created checkout session %s for user %s (%d subjects)",
            session.provider_checkout_id,
            user_id,
            subject_count,
        )
        return CheckoutResponse(session_id=session.provider_checkout_id, url=session.checkout_url)

    def process_checkout(self, user_id: UUID, session_id: str) -> ProcessCheckoutResponse:
        """Confirm a completed checkout and activate the subscription locally."""
        result = self.provider.retrieve_checkout_session(session_id)
        if result.payment_status != "paid":
            raise ValueError("Payment not completed")
        if result.subscription is None:
            raise ValueError("No subscription found")
        owner = result.metadata.get("userId")
        if owner and owner != str(user_id):
            raise ValueError("Checkout session belongs to another user")

        subscription = self.activate_subscription(
            user_id, result.customer_id, result.subscription, result.metadata
        )
        return ProcessCheckoutResponse(
            success=True,
            message="Subscription activated",
            subscription=ActivatedPlan(
                plan=PLAN_NAME,
                subjects=int(subscription.subject_count or 0),
                price=to_money(subscription.custom_price),  # type: ignore[arg-type]
            ),
        )

    def activate_subscription(
        self,
        user_id: UUID,
        customer_id: str | None,
        remote: ProviderSubscription,
        metadata: dict[str, Any],
    ) -> Subscription:
        """Mirror a paid provider subscription and grant the purchased subjects."""
        selected = parse_selected_subjects(metadata)
        known = {str(s.id) for s in self.subject_repo.get_by_ids([UUID(s) for s in selected])}
        subject_ids = [s for s in selected if s in known]

        subject_count = len(subject_ids)
        price = calculate_custom_price(subject_count)
        stored_price = metadata.get("customPrice")
        if stored_price:
            try:
                price = to_money(Decimal(str(stored_price)))
            except InvalidOperation:
                logger.warning("Ignoring malformed customPrice metadata: %r", stored_price)

        fields: dict[str, Any] = {
            "stripe_subscription_id": remote.id,
            "stripe_price_id": remote.price_id,
            "status": remote.status or SubscriptionStatus.ACTIVE.value,
            "subject_count": subject_count,
            "custom_price": price,
            "current_period_start": remote.current_period_start,
            "current_period_end": remote.current_period_end,
            "cancel_at_period_end": remote.cancel_at_period_end,
        }
        if customer_id or remote.customer_id:
            fields["stripe_customer_id"] = customer_id or remote.customer_id

        existing = self.subscription_repo.get_by_user_id(user_id)
        if existing is not None and existing.stripe_subscription_id != remote.id:
            # Changes scheduled on a previous provider subscription do not carry over
            dropped = self.pending_repo.cancel_all_pending(existing.id, commit=False)  # type: ignore[arg-type]
            if dropped:
                logger.info(
                    "Dropped %d pending change(s) of replaced subscription %s",
                    dropped,
                    existing.stripe_subscription_id,
                )

        self.user_subject_repo.replace(user_id, subject_ids, commit=False)
        subscription = self.subscription_repo.upsert_for_user(user_id, **fields)
        logger.info(
            "Activated subscription %s for user %s with %d subjects",
            remote.id,
            user_id,
            subject_count,
        )
        return subscription

    def create_billing_portal(self, subscription: Subscription) -> str:
        return self.provider.create_billing_portal_session(
            customer_id=str(subscription.stripe_customer_id),
            return_url=f"{settings.APP_BASE_URL.rstrip('/')}/dashboard",
        )

"""Read-side views of a user's subscription and subject entitlements."""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from maturamate.models.shared import as_utc
from maturamate.models.subscription import Subscription, SubscriptionStatus
from maturamate.repositories.subscription_repository import SubscriptionRepository
from maturamate.repositories.user_subject_repository import UserSubjectRepository
from maturamate.schemas.subscription import (
    SubjectSelectionValidation,
    SubscriptionMetricsResponse,
    SubscriptionStatusResponse,
    UserSubjectAccessResponse,
)
from maturamate.services.pricing import calculate_custom_price, to_money


def current_price(subscription: Subscription) -> Decimal:
    """The monthly price currently billed for ``subscription``."""
    if subscription.custom_price is not None:
        return to_money(subscription.custom_price)  # type: ignore[arg-type]
    return calculate_custom_price(int(subscription.subject_count or 0))


def is_active(subscription: Subscription | None) -> bool:
    return subscription is not None and subscription.status == SubscriptionStatus.ACTIVE.value


class SubscriptionStatusService:
    def __init__(self, db: Session):
        self.db = db
        self.subscription_repo = SubscriptionRepository(db)
        self.user_subject_repo = UserSubjectRepository(db)

    def get_subscription_status(self, user_id: UUID) -> SubscriptionStatusResponse | None:
        subscription = self.subscription_repo.get_by_user_id(user_id)
        if subscription is None:
            return None

        status = str(subscription.status)
        return SubscriptionStatusResponse(
            is_active=status == SubscriptionStatus.ACTIVE.value,
            is_past_due=status == SubscriptionStatus.PAST_DUE.value,
            is_canceled=status == SubscriptionStatus.CANCELED.value,
            will_cancel_at_period_end=bool(subscription.cancel_at_period_end),
            current_period_end=as_utc(subscription.current_period_end),  # type: ignore[arg-type]
            subject_count=int(subscription.subject_count or 0),
            price=current_price(subscription),
        )

    def get_user_subject_access(self, user_id: UUID) -> UserSubjectAccessResponse:
        subscription = self.subscription_repo.get_by_user_id(user_id)
        if not is_active(subscription):
            return UserSubjectAccessResponse(
                has_access=False,
                subjects_count=0,
                max_subjects=0,
                available_slots=0,
                selected_subjects=[],
            )

        selected = self.user_subject_repo.get_subject_ids(user_id)
        # What the user paid for; falls back to the entitled count
        max_subjects = int(subscription.subject_count or 0) or len(selected)  # type: ignore[union-attr]
        return UserSubjectAccessResponse(
            has_access=True,
            subjects_count=len(selected),
            max_subjects=max_subjects,
            available_slots=max(0, max_subjects - len(selected)),
            selected_subjects=selected,
        )

    def has_subject_access(self, user_id: UUID, subject_id: UUID) -> bool:
        subscription = self.subscription_repo.get_by_user_id(user_id)
        if not is_active(subscription):
            return False
        return self.user_subject_repo.has_subject(user_id, subject_id)

    def validate_subject_selection(
        self, user_id: UUID, subject_ids: list[str]
    ) -> SubjectSelectionValidation:
        """Check a selection against the number of subjects paid for."""
        subscription = self.subscription_repo.get_by_user_id(user_id)
        if not is_active(subscription):
            return SubjectSelectionValidation(is_valid=False, error="No active subscription found")

        max_subjects = int(subscription.subject_count or 0)  # type: ignore[union-attr]
        if len(subject_ids) > max_subjects:
            return SubjectSelectionValidation(
                is_valid=False, error=f"Cannot select more than {max_subjects} subjects"
            )
        return SubjectSelectionValidation(is_valid=True)

    def get_subscription_metrics(self, user_id: UUID) -> SubscriptionMetricsResponse | None:
        subscription = self.subscription_repo.get_by_user_id(user_id)
        if subscription is None:
            return None

        access = self.get_user_subject_access(user_id)
        limit = int(subscription.subject_count or 0)
        utilization = (access.subjects_count / limit) * 100 if limit else 0.0
        return SubscriptionMetricsResponse(
            is_active=is_active(subscription),
            subjects_used=access.subjects_count,
            subjects_limit=limit,
            utilization_percentage=utilization,
            monthly_price=to_money(subscription.custom_price or 0),  # type: ignore[arg-type]
            next_billing_date=as_utc(subscription.current_period_end),  # type: ignore[arg-type]
        )

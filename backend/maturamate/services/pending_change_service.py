"""Service for revising or reverting a scheduled downgrade before it takes effect."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from maturamate.models.pending_subscription_change import (
    ChangeType,
    PendingChangeStatus,
    PendingSubscriptionChange,
)
from maturamate.models.subscription import Subscription
from maturamate.repositories.pending_change_repository import PendingChangeRepository
from maturamate.repositories.subscription_repository import SubscriptionRepository
from maturamate.repositories.user_subject_repository import UserSubjectRepository
from maturamate.schemas.pending_change import (
    ModifyPendingChangeResponse,
    UndoPendingChangeResponse,
)
from maturamate.services.payment_provider import BillingProviderBase
from maturamate.services.pricing import calculate_custom_price

logger = logging.getLogger(__name__)


class PendingChangeAccessError(Exception):
    """Raised when a pending change belongs to another user."""


class PendingChangeService:
    def __init__(self, db: Session, provider: BillingProviderBase):
        self.db = db
        self.provider = provider
        self.subscription_repo = SubscriptionRepository(db)
        self.user_subject_repo = UserSubjectRepository(db)
        self.pending_repo = PendingChangeRepository(db)

    def list_pending(self, user_id: UUID) -> list[PendingSubscriptionChange]:
        subscription = self.subscription_repo.get_by_user_id(user_id)
        if subscription is None:
            return []
        return self.pending_repo.get_pending(subscription.id)  # type: ignore[arg-type]

    def get_pending_downgrade(self, subscription: Subscription) -> PendingSubscriptionChange | None:
        return self.pending_repo.get_pending_downgrade(subscription.id)  # type: ignore[arg-type]

    def modify(
        self,
        subscription: Subscription,
        pending: PendingSubscriptionChange,
        restore_subject_ids: list[str],
    ) -> ModifyPendingChangeResponse:
        """Keep some of the subjects a pending downgrade would remove.

        Restored subjects are billed again right away. Once nothing is left to
        remove the pending change is resolved.
        """
        current_ids = self.user_subject_repo.get_subject_ids(subscription.user_id)  # type: ignore[arg-type]
        current_set = set(current_ids)
        unknown = [s for s in restore_subject_ids if s not in current_set]
        if unknown:
            raise ValueError("Can only restore subjects that are currently active")

        wanted = set(pending.new_subject_ids or []) | set(restore_subject_ids)
        # Keep the entitlement order and drop anything no longer entitled
        target_ids = [s for s in current_ids if s in wanted]
        new_count = len(target_ids)
        new_price = calculate_custom_price(new_count)

        self.provider.replace_subscription_items(
            str(subscription.stripe_subscription_id),
            new_count,
            proration_behavior="always_invoice",
        )

        resolved = new_count == len(current_ids)
        self.subscription_repo.set_plan(subscription, new_count, new_price, commit=False)
        if resolved:
            self.pending_repo.set_status(pending, PendingChangeStatus.CANCELLED, commit=False)
        else:
            self.pending_repo.set_target(pending, target_ids, new_price, commit=False)
        self.db.commit()

        logger.info(
            "Restored %d subject(s) on subscription %s, now %d subjects (resolved=%s)",
            len(restore_subject_ids),
            subscription.stripe_subscription_id,
            new_count,
            resolved,
        )
        if resolved:
            message = "All subjects restored, pending downgrade cancelled"
        else:
            message = "Subjects restored to pending downgrade"
        return ModifyPendingChangeResponse(
            message=message,
            pending_change_resolved=resolved,
            new_subject_count=new_count,
            new_price=new_price,
        )

    def get_change_for_undo(self, user_id: UUID, change_id: UUID) -> PendingSubscriptionChange | None:
        """Return the pending change, or None when it is missing or no longer pending.

        Raises ``PendingChangeAccessError`` when the change belongs to another user.
        """
        change = self.pending_repo.get_by_id(change_id)
        if change is None or change.status != PendingChangeStatus.PENDING.value:
            return None
        if str(change.user_id) != str(user_id):
            raise PendingChangeAccessError("Not allowed to undo this change")
        return change

    def undo(self, change: PendingSubscriptionChange) -> UndoPendingChangeResponse:
        """Cancel a pending change, restoring the subjects and price billed before it."""
        subscription = self.subscription_repo.get_by_user_id(change.user_id)  # type: ignore[arg-type]
        if change.change_type != ChangeType.DOWNGRADE.value or subscription is None:
            self.pending_repo.set_status(change, PendingChangeStatus.CANCELLED)
            return UndoPendingChangeResponse(message="Pending change cancelled")

        current_ids = self.user_subject_repo.get_subject_ids(subscription.user_id)  # type: ignore[arg-type]
        restored_count = len(current_ids)
        restored_price = calculate_custom_price(restored_count)

        if subscription.stripe_subscription_id:
            self.provider.replace_subscription_items(
                str(subscription.stripe_subscription_id),
                restored_count,
                proration_behavior="none",
            )

        self.subscription_repo.set_plan(subscription, restored_count, restored_price, commit=False)
        self.pending_repo.set_status(change, PendingChangeStatus.CANCELLED, commit=False)
        self.db.commit()

        logger.info(
            "Undid pending downgrade %s, subscription %s back to %d subjects",
            change.id,
            subscription.stripe_subscription_id,
            restored_count,
        )
        return UndoPendingChangeResponse(
            message="Pending change undone",
            restored_subject_count=restored_count,
            restored_price=restored_price,
        )

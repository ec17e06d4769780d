from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from maturamate.models.pending_subscription_change import (
    ChangeTiming,
    ChangeType,
    PendingChangeStatus,
    PendingSubscriptionChange,
)


class PendingChangeRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, change_id: UUID) -> PendingSubscriptionChange | None:
        return (
            self.db.query(PendingSubscriptionChange)
            .filter(PendingSubscriptionChange.id == change_id)
            .first()
        )

    def get_pending(self, subscription_id: UUID) -> list[PendingSubscriptionChange]:
        return (
            self.db.query(PendingSubscriptionChange)
            .filter(
                PendingSubscriptionChange.subscription_id == subscription_id,
                PendingSubscriptionChange.status == PendingChangeStatus.PENDING.value,
            )
            .order_by(PendingSubscriptionChange.created_at)
            .all()
        )

    def get_pending_downgrade(self, subscription_id: UUID) -> PendingSubscriptionChange | None:
        return (
            self.db.query(PendingSubscriptionChange)
            .filter(
                PendingSubscriptionChange.subscription_id == subscription_id,
                PendingSubscriptionChange.status == PendingChangeStatus.PENDING.value,
                PendingSubscriptionChange.change_type == ChangeType.DOWNGRADE.value,
            )
            .order_by(PendingSubscriptionChange.created_at)
            .first()
        )

    def get_due_at_next_period(self, subscription_id: UUID) -> list[PendingSubscriptionChange]:
        return (
            self.db.query(PendingSubscriptionChange)
            .filter(
                PendingSubscriptionChange.subscription_id == subscription_id,
                PendingSubscriptionChange.status == PendingChangeStatus.PENDING.value,
                PendingSubscriptionChange.timing == ChangeTiming.NEXT_PERIOD.value,
            )
            .order_by(PendingSubscriptionChange.created_at)
            .all()
        )

    def create_downgrade(
        self,
        user_id: UUID,
        subscription_id: UUID,
        subject_ids: list[str],
        new_price: Decimal,
        scheduled_date: datetime | None,
        commit: bool = True,
    ) -> PendingSubscriptionChange:
        change = PendingSubscriptionChange(
            user_id=user_id,
            subscription_id=subscription_id,
            change_type=ChangeType.DOWNGRADE.value,
            timing=ChangeTiming.NEXT_PERIOD.value,
            new_subject_ids=list(subject_ids),
            new_subject_count=len(subject_ids),
            new_price=new_price,
            scheduled_date=scheduled_date,
            status=PendingChangeStatus.PENDING.value,
        )
        self.db.add(change)
        if commit:
            self.db.commit()
            self.db.refresh(change)
        return change

    def set_target(
        self,
        change: PendingSubscriptionChange,
        subject_ids: list[str],
        new_price: Decimal,
        scheduled_date: datetime | None = None,
        commit: bool = True,
    ) -> PendingSubscriptionChange:
        # Assign a fresh list so the JSON column is flagged dirty
        change.new_subject_ids = list(subject_ids)  # type: ignore[assignment]
        change.new_subject_count = len(subject_ids)  # type: ignore[assignment]
        change.new_price = new_price  # type: ignore[assignment]
        if scheduled_date is not None:
            change.scheduled_date = scheduled_date  # type: ignore[assignment]
        if commit:
            self.db.commit()
            self.db.refresh(change)
        return change

    def set_status(
        self,
        change: PendingSubscriptionChange,
        status: PendingChangeStatus,
        commit: bool = True,
    ) -> PendingSubscriptionChange:
        change.status = status.value  # type: ignore[assignment]
        if commit:
            self.db.commit()
            self.db.refresh(change)
        return change

    def cancel_all_pending(self, subscription_id: UUID, commit: bool = True) -> int:
        changes = self.get_pending(subscription_id)
        for change in changes:
            change.status = PendingChangeStatus.CANCELLED.value  # type: ignore[assignment]
        if commit:
            self.db.commit()
        return len(changes)

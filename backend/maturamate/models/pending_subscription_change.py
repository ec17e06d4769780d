from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, func

from maturamate.core.database import Base
from maturamate.models.shared import UUIDType, generate_uuid


class ChangeType(str, Enum):
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"


class ChangeTiming(str, Enum):
    IMMEDIATE = "immediate"
    NEXT_PERIOD = "next_period"


class PendingChangeStatus(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    CANCELLED = "cancelled"
    FAILED = "failed"


class PendingSubscriptionChange(Base):
    __tablename__ = "pending_subscription_changes"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    user_id = Column(
        UUIDType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subscription_id = Column(
        UUIDType,
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    change_type = Column(String(20), nullable=False)
    timing = Column(String(20), nullable=False, default=ChangeTiming.NEXT_PERIOD.value)
    new_subject_ids = Column(JSON, nullable=False, default=list)
    new_subject_count = Column(Integer, nullable=False, default=0)
    new_price = Column(Numeric(10, 2), nullable=False, default=0)
    scheduled_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default=PendingChangeStatus.PENDING.value, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

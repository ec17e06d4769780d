from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, func

from maturamate.core.database import Base
from maturamate.models.shared import UUIDType, generate_uuid


class SubscriptionStatus(str, Enum):
    """Mirror of the Stripe subscription status values we act on."""

    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    TRIALING = "trialing"
    UNPAID = "unpaid"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    user_id = Column(
        UUIDType,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    stripe_customer_id = Column(String(255), unique=True, nullable=True)
    stripe_subscription_id = Column(String(255), unique=True, index=True, nullable=True)
    stripe_price_id = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=SubscriptionStatus.INCOMPLETE.value, index=True)
    subject_count = Column(Integer, nullable=False, default=0)
    custom_price = Column(Numeric(10, 2), nullable=False, default=0)
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

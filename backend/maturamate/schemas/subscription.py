from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class SubscriptionStatusResponse(BaseModel):
    """Normalized view of the user's subscription."""

    is_active: bool
    is_past_due: bool
    is_canceled: bool
    will_cancel_at_period_end: bool
    current_period_end: datetime | None
    subject_count: int
    price: Decimal


class UserSubjectAccessResponse(BaseModel):
    has_access: bool
    subjects_count: int
    max_subjects: int
    available_slots: int
    selected_subjects: list[str]


class SubscriptionMetricsResponse(BaseModel):
    is_active: bool
    subjects_used: int
    subjects_limit: int
    utilization_percentage: float
    monthly_price: Decimal
    next_billing_date: datetime | None


class SubjectSelectionValidation(BaseModel):
    is_valid: bool
    error: str | None = None


class CancelSubscriptionResponse(BaseModel):
    success: bool
    message: str
    cancel_at: datetime | None = None


class ReactivateSubscriptionResponse(BaseModel):
    success: bool
    message: str

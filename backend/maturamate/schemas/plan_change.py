from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class PlanChangeType(str, Enum):
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    NO_CHANGE = "no_change"


class PlanChangePreviewRequest(BaseModel):
    """Request body for a plan change preview."""

    new_subject_ids: list[UUID] = Field(..., min_length=1)


class PlanChangePreviewResponse(BaseModel):
    current_price: Decimal
    new_price: Decimal
    proration_amount: Decimal
    is_upgrade: bool
    is_downgrade: bool
    change_type: PlanChangeType
    effective_date: datetime
    estimated: bool = False


class PlanChangeRequest(BaseModel):
    new_subject_ids: list[UUID] = Field(..., min_length=1)
    timing: str = Field(
        default="immediate",
        description="Only immediate changes are supported; other values are treated as immediate.",
    )


class PlanChangeResponse(BaseModel):
    success: bool
    message: str
    change_type: PlanChangeType
    timing: str = "immediate"
    new_subject_count: int | None = None
    new_price: Decimal | None = None
    immediate_charge_amount: Decimal = Decimal("0.00")
    charged_immediately: bool = False
    invoice_id: str | None = None
    subscription_id: str | None = None

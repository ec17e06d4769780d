from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    plan_type: Literal["CUSTOM"] = "CUSTOM"
    selected_subjects: list[UUID] = Field(..., min_length=1)


class CheckoutResponse(BaseModel):
    session_id: str
    url: str


class ProcessCheckoutRequest(BaseModel):
    session_id: str = Field(..., min_length=1)


class ActivatedPlan(BaseModel):
    plan: str
    subjects: int
    price: Decimal


class ProcessCheckoutResponse(BaseModel):
    success: bool
    message: str
    subscription: ActivatedPlan


class BillingPortalResponse(BaseModel):
    url: str


class WebhookAck(BaseModel):
    received: bool
    event_type: str | None = None

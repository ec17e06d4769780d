"""Endpoints describing the current user's subscription."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from maturamate.core.auth import get_current_user_id
from maturamate.core.database import get_db
from maturamate.schemas.pending_change import PendingChangeResponse, PendingChangesResponse
from maturamate.schemas.subscription import (
    SubscriptionMetricsResponse,
    SubscriptionStatusResponse,
    UserSubjectAccessResponse,
)
from maturamate.services.payment_provider import BillingProviderBase, get_billing_provider
from maturamate.services.pending_change_service import PendingChangeService
from maturamate.services.subscription_status import SubscriptionStatusService

router = APIRouter()


@router.get(
    "/subscription-status",
    response_model=SubscriptionStatusResponse | None,
    summary="Get subscription status",
)
async def get_subscription_status(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> SubscriptionStatusResponse | None:
    """Normalized subscription status, or null when the user never subscribed."""
    return SubscriptionStatusService(db).get_subscription_status(user_id)


@router.get(
    "/subject-access",
    response_model=UserSubjectAccessResponse,
    summary="Get subject access",
)
async def get_subject_access(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> UserSubjectAccessResponse:
    return SubscriptionStatusService(db).get_user_subject_access(user_id)


@router.get(
    "/subscription-metrics",
    response_model=SubscriptionMetricsResponse | None,
    summary="Get subscription usage metrics",
)
async def get_subscription_metrics(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> SubscriptionMetricsResponse | None:
    return SubscriptionStatusService(db).get_subscription_metrics(user_id)


@router.get(
    "/pending-subscription-changes",
    response_model=PendingChangesResponse,
    summary="List pending subscription changes",
)
async def list_pending_changes(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    provider: BillingProviderBase = Depends(get_billing_provider),
) -> PendingChangesResponse:
    """List the changes still waiting to take effect."""
    changes = PendingChangeService(db, provider).list_pending(user_id)
    return PendingChangesResponse(
        pending_changes=[PendingChangeResponse.model_validate(c) for c in changes]
    )

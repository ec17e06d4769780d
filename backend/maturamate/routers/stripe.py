"""Subscription billing endpoints backed by Stripe."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from maturamate.core.auth import get_current_user_id
from maturamate.core.database import get_db
from maturamate.models.subscription import Subscription
from maturamate.schemas.checkout import (
    BillingPortalResponse,
    CheckoutRequest,
    CheckoutResponse,
    ProcessCheckoutRequest,
    ProcessCheckoutResponse,
    WebhookAck,
)
from maturamate.schemas.pending_change import (
    ModifyPendingChangeRequest,
    ModifyPendingChangeResponse,
    UndoPendingChangeRequest,
    UndoPendingChangeResponse,
)
from maturamate.schemas.plan_change import (
    PlanChangePreviewRequest,
    PlanChangePreviewResponse,
    PlanChangeRequest,
    PlanChangeResponse,
)
from maturamate.schemas.subscription import (
    CancelSubscriptionResponse,
    ReactivateSubscriptionResponse,
)
from maturamate.services.checkout_service import CheckoutService
from maturamate.services.payment_provider import BillingProviderBase, get_billing_provider
from maturamate.services.pending_change_service import (
    PendingChangeAccessError,
    PendingChangeService,
)
from maturamate.services.plan_change_service import PlanChangeService
from maturamate.services.stripe_webhook_service import StripeWebhookService
from maturamate.services.subscription_lifecycle import SubscriptionLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter()

AUTH_RESPONSES = {401: {"description": "Unauthorized – invalid or missing token"}}


def _get_billable_subscription(
    db: Session, provider: BillingProviderBase, user_id: UUID
) -> Subscription:
    subscription = PlanChangeService(db, provider).get_billable_subscription(user_id)
    if not subscription:
        raise HTTPException(status_code=404, detail="No active subscription found")
    return subscription


@router.post(
    "/plan-change-preview",
    response_model=PlanChangePreviewResponse,
    summary="Preview a change of subjects",
    responses={
        **AUTH_RESPONSES,
        400: {"description": "Subjects added and removed in the same change"},
        404: {"description": "No subscription found"},
    },
)
async def plan_change_preview(
    data: PlanChangePreviewRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    provider: BillingProviderBase = Depends(get_billing_provider),
) -> PlanChangePreviewResponse:
    """Preview price and proration for a new subject selection."""
    subscription = _get_billable_subscription(db, provider, user_id)
    try:
        return PlanChangeService(db, provider).preview(subscription, data.new_subject_ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None


@router.post(
    "/plan-change",
    response_model=PlanChangeResponse,
    summary="Change subjects",
    responses={
        **AUTH_RESPONSES,
        400: {"description": "Subjects added and removed in the same change"},
        404: {"description": "No subscription found"},
        500: {"description": "Billing provider failure"},
    },
)
async def plan_change(
    data: PlanChangeRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    provider: BillingProviderBase = Depends(get_billing_provider),
) -> PlanChangeResponse:
    """Upgrade immediately with proration, or schedule a downgrade for the next period."""
    subscription = _get_billable_subscription(db, provider, user_id)
    try:
        return PlanChangeService(db, provider).execute(
            subscription, data.new_subject_ids, timing=data.timing
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except Exception:
        logger.exception("Plan change failed for user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to change subscription") from None


@router.post(
    "/cancel-subscription",
    response_model=CancelSubscriptionResponse,
    summary="Cancel at period end",
    responses={**AUTH_RESPONSES, 404: {"description": "No subscription found"}},
)
async def cancel_subscription(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    provider: BillingProviderBase = Depends(get_billing_provider),
) -> CancelSubscriptionResponse:
    subscription = _get_billable_subscription(db, provider, user_id)
    try:
        return SubscriptionLifecycleService(db, provider).cancel(subscription)
    except Exception:
        logger.exception("Cancellation failed for user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to cancel subscription") from None


@router.post(
    "/reactivate-subscription",
    response_model=ReactivateSubscriptionResponse,
    summary="Undo a scheduled cancellation",
    responses={**AUTH_RESPONSES, 404: {"description": "No subscription found"}},
)
async def reactivate_subscription(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    provider: BillingProviderBase = Depends(get_billing_provider),
) -> ReactivateSubscriptionResponse:
    subscription = _get_billable_subscription(db, provider, user_id)
    try:
        return SubscriptionLifecycleService(db, provider).reactivate(subscription)
    except Exception:
        logger.exception("Reactivation failed for user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to reactivate subscription") from None


@router.post(
    "/modify-pending-change",
    response_model=ModifyPendingChangeResponse,
    summary="Restore subjects from a pending downgrade",
    responses={
        **AUTH_RESPONSES,
        400: {"description": "Subject is not currently active"},
        404: {"description": "No subscription or pending downgrade found"},
    },
)
async def modify_pending_change(
    data: ModifyPendingChangeRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    provider: BillingProviderBase = Depends(get_billing_provider),
) -> ModifyPendingChangeResponse:
    """Keep some of the subjects a pending downgrade would remove."""
    subscription = _get_billable_subscription(db, provider, user_id)
    service = PendingChangeService(db, provider)
    pending = service.get_pending_downgrade(subscription)
    if not pending:
        raise HTTPException(status_code=404, detail="No pending downgrade found")
    try:
        return service.modify(subscription, pending, data.subject_ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except Exception:
        logger.exception("Modifying pending change failed for user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to modify pending change") from None


@router.post(
    "/undo-pending-change",
    response_model=UndoPendingChangeResponse,
    summary="Undo a pending change",
    responses={
        **AUTH_RESPONSES,
        403: {"description": "Change belongs to another user"},
        404: {"description": "Pending change not found"},
    },
)
async def undo_pending_change(
    data: UndoPendingChangeRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    provider: BillingProviderBase = Depends(get_billing_provider),
) -> UndoPendingChangeResponse:
    """Cancel a pending change and restore the previous subjects and price."""
    service = PendingChangeService(db, provider)
    try:
        change = service.get_change_for_undo(user_id, data.change_id)
    except PendingChangeAccessError as e:
        raise HTTPException(status_code=403, detail=str(e)) from None
    if not change:
        raise HTTPException(status_code=404, detail="Pending change not found")
    try:
        return service.undo(change)
    except Exception:
        logger.exception("Undoing pending change %s failed", data.change_id)
        raise HTTPException(status_code=500, detail="Failed to undo pending change") from None


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    summary="Start a subscription checkout",
    responses={
        **AUTH_RESPONSES,
        400: {"description": "Active subscription exists or unknown subjects"},
        500: {"description": "Billing provider failure"},
    },
)
async def create_checkout(
    data: CheckoutRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    provider: BillingProviderBase = Depends(get_billing_provider),
) -> CheckoutResponse:
    try:
        return CheckoutService(db, provider).create_checkout(user_id, data.selected_subjects)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except Exception:
        logger.exception("Checkout creation failed for user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to create checkout session") from None


@router.post(
    "/process-checkout",
    response_model=ProcessCheckoutResponse,
    summary="Confirm a completed checkout",
    responses={
        **AUTH_RESPONSES,
        400: {"description": "Payment not completed"},
        500: {"description": "Billing provider failure"},
    },
)
async def process_checkout(
    data: ProcessCheckoutRequest,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    provider: BillingProviderBase = Depends(get_billing_provider),
) -> ProcessCheckoutResponse:
    try:
        return CheckoutService(db, provider).process_checkout(user_id, data.session_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except Exception:
        logger.exception("Processing checkout %s failed", data.session_id)
        raise HTTPException(status_code=500, detail="Failed to process checkout") from None


@router.post(
    "/billing-portal",
    response_model=BillingPortalResponse,
    summary="Open the billing portal",
    responses={**AUTH_RESPONSES, 404: {"description": "No billing customer found"}},
)
async def billing_portal(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
    provider: BillingProviderBase = Depends(get_billing_provider),
) -> BillingPortalResponse:
    service = CheckoutService(db, provider)
    subscription = service.subscription_repo.get_by_user_id(user_id)
    if not subscription or not subscription.stripe_customer_id:
        raise HTTPException(status_code=404, detail="No billing customer found")
    try:
        return BillingPortalResponse(url=service.create_billing_portal(subscription))
    except Exception:
        logger.exception("Billing portal session failed for user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to open billing portal") from None


@router.post(
    "/webhook",
    response_model=WebhookAck,
    summary="Receive Stripe events",
    responses={400: {"description": "Invalid signature or payload"}},
)
async def handle_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    provider: BillingProviderBase = Depends(get_billing_provider),
) -> WebhookAck:
    """Verify and process a Stripe webhook event."""
    payload = await request.body()
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing signature")
    try:
        event = provider.construct_webhook_event(payload, stripe_signature)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None

    try:
        StripeWebhookService(db, provider).handle_event(event)
    except Exception:
        logger.exception("Webhook handler failed for event %s (%s)", event.id, event.event_type)
        raise HTTPException(status_code=500, detail="Webhook handler failed") from None

    return WebhookAck(received=True, event_type=event.event_type)

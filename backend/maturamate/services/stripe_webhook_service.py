"""Mirror Stripe webhook events onto the local subscription state."""

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from maturamate.models.pending_subscription_change import ChangeType, PendingChangeStatus
from maturamate.models.shared import as_utc
from maturamate.models.subscription import Subscription, SubscriptionStatus
from maturamate.repositories.pending_change_repository import PendingChangeRepository
from maturamate.repositories.subscription_repository import SubscriptionRepository
from maturamate.repositories.user_subject_repository import UserSubjectRepository
from maturamate.services.checkout_service import CheckoutService
from maturamate.services.payment_provider import (
    BillingProviderBase,
    WebhookEvent,
    parse_subscription,
)
from maturamate.services.pricing import calculate_custom_price

logger = logging.getLogger(__name__)

RENEWAL_BILLING_REASON = "subscription_cycle"


def invoice_subscription_id(invoice: dict[str, Any]) -> str | None:
    """Return the subscription id an invoice belongs to."""
    subscription = invoice.get("subscription")
    if subscription is None:
        # Newer API versions nest it under the invoice parent
        details = (invoice.get("parent") or {}).get("subscription_details") or {}
        subscription = details.get("subscription")
    if isinstance(subscription, dict):
        subscription = subscription.get("id")
    return str(subscription) if subscription else None


class StripeWebhookService:
    """Dispatch verified webhook events to their handlers."""

    def __init__(self, db: Session, provider: BillingProviderBase):
        self.db = db
        self.provider = provider
        self.subscription_repo = SubscriptionRepository(db)
        self.user_subject_repo = UserSubjectRepository(db)
        self.pending_repo = PendingChangeRepository(db)

    def handle_event(self, event: WebhookEvent) -> bool:
        """Process ``event``; returns False when the event type is ignored."""
        handlers = {
            "checkout.session.completed": self.handle_checkout_completed,
            "customer.subscription.updated": self.handle_subscription_updated,
            "customer.subscription.deleted": self.handle_subscription_deleted,
            "invoice.payment_succeeded": self.handle_payment_succeeded,
            "invoice.payment_failed": self.handle_payment_failed,
        }
        handler = handlers.get(event.event_type)
        if handler is None:
            logger.debug("Ignoring webhook event %s (%s)", event.id, event.event_type)
            return False
        logger.info("Processing webhook event %s (%s)", event.id, event.event_type)
        handler(event.data_object)
        return True

    def handle_checkout_completed(self, session: dict[str, Any]) -> None:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("userId")
        subscription_id = session.get("subscription")
        if isinstance(subscription_id, dict):
            subscription_id = subscription_id.get("id")
        if not user_id or not subscription_id:
            logger.warning("Checkout session %s has no user or subscription", session.get("id"))
            return

        remote = self.provider.retrieve_subscription(str(subscription_id))
        customer = session.get("customer")
        if isinstance(customer, dict):
            customer = customer.get("id")
        CheckoutService(self.db, self.provider).activate_subscription(
            UUID(str(user_id)), customer, remote, metadata
        )

    def handle_subscription_updated(self, obj: dict[str, Any]) -> None:
        remote = parse_subscription(obj)
        subscription = self.subscription_repo.get_by_stripe_subscription_id(remote.id)
        if subscription is None:
            logger.warning("Subscription update for unknown subscription %s", remote.id)
            return
        self.subscription_repo.sync_from_provider(
            subscription,
            status=remote.status,
            current_period_start=remote.current_period_start,
            current_period_end=remote.current_period_end,
            cancel_at_period_end=remote.cancel_at_period_end,
        )

    def handle_subscription_deleted(self, obj: dict[str, Any]) -> None:
        subscription = self.subscription_repo.get_by_stripe_subscription_id(str(obj.get("id")))
        if subscription is None:
            logger.warning("Deletion for unknown subscription %s", obj.get("id"))
            return
        self.user_subject_repo.delete_all(subscription.user_id, commit=False)  # type: ignore[arg-type]
        dropped = self.pending_repo.cancel_all_pending(subscription.id, commit=False)  # type: ignore[arg-type]
        self.subscription_repo.set_status(subscription, SubscriptionStatus.CANCELED.value)
        logger.info(
            "Subscription %s canceled, entitlements removed, %d pending change(s) dropped",
            subscription.stripe_subscription_id,
            dropped,
        )

    def handle_payment_succeeded(self, invoice: dict[str, Any]) -> None:
        subscription = self._subscription_for_invoice(invoice)
        if subscription is None:
            return
        self.subscription_repo.set_status(subscription, SubscriptionStatus.ACTIVE.value)
        # Proration invoices paid mid-period must not trigger scheduled downgrades
        renewal = invoice.get("billing_reason") == RENEWAL_BILLING_REASON
        self.apply_pending_changes(subscription, renewal=renewal)

    def handle_payment_failed(self, invoice: dict[str, Any]) -> None:
        subscription = self._subscription_for_invoice(invoice)
        if subscription is None:
            return
        self.subscription_repo.set_status(subscription, SubscriptionStatus.PAST_DUE.value)
        logger.warning("Payment failed for subscription %s", subscription.stripe_subscription_id)

    def apply_pending_changes(self, subscription: Subscription, renewal: bool = True) -> int:
        """Apply the downgrades scheduled for the new period.

        Outside a renewal only changes whose scheduled date has passed are applied.
        A change that cannot be applied is marked failed and the rest still run.
        """
        applied = 0
        now = datetime.now(UTC)
        for change in self.pending_repo.get_due_at_next_period(subscription.id):  # type: ignore[arg-type]
            scheduled = as_utc(change.scheduled_date)  # type: ignore[arg-type]
            if not renewal and (scheduled is None or scheduled > now):
                continue
            try:
                if change.change_type != ChangeType.DOWNGRADE.value:
                    raise ValueError(f"Unsupported deferred change type {change.change_type}")
                subject_ids = list(change.new_subject_ids or [])
                self.user_subject_repo.replace(
                    subscription.user_id, subject_ids, commit=False  # type: ignore[arg-type]
                )
                self.subscription_repo.set_plan(
                    subscription,
                    len(subject_ids),
                    calculate_custom_price(len(subject_ids)),
                    commit=False,
                )
                self.pending_repo.set_status(change, PendingChangeStatus.APPLIED, commit=False)
                self.db.commit()
                applied += 1
                logger.info(
                    "Applied pending change %s to subscription %s (%d subjects)",
                    change.id,
                    subscription.stripe_subscription_id,
                    len(subject_ids),
                )
            except Exception:
                self.db.rollback()
                logger.exception("Failed to apply pending change %s", change.id)
                self.pending_repo.set_status(change, PendingChangeStatus.FAILED)
        return applied

    def _subscription_for_invoice(self, invoice: dict[str, Any]) -> Subscription | None:
        subscription_id = invoice_subscription_id(invoice)
        if not subscription_id:
            return None
        subscription = self.subscription_repo.get_by_stripe_subscription_id(subscription_id)
        if subscription is None:
            logger.warning("Invoice %s for unknown subscription %s", invoice.get("id"), subscription_id)
        return subscription

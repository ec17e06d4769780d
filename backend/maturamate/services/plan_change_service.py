"""Service for changing the number of subjects on a subscription: preview and execute."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from maturamate.models.shared import as_utc
from maturamate.models.subscription import Subscription
from maturamate.repositories.pending_change_repository import PendingChangeRepository
from maturamate.repositories.subject_repository import SubjectRepository
from maturamate.repositories.subscription_repository import SubscriptionRepository
from maturamate.repositories.user_subject_repository import UserSubjectRepository
from maturamate.schemas.plan_change import (
    PlanChangePreviewResponse,
    PlanChangeResponse,
    PlanChangeType,
)
from maturamate.services.payment_provider import BillingProviderBase, ProrationCharge
from maturamate.services.pricing import calculate_custom_price, to_money
from maturamate.services.subscription_status import current_price

logger = logging.getLogger(__name__)

IMMEDIATE = "immediate"


@dataclass
class ClassifiedChange:
    """A requested subject set compared with the current entitlements."""

    change_type: PlanChangeType
    current_ids: list[str]
    target_ids: list[str]
    added_ids: list[str]
    removed_ids: list[str]


def _dedupe(subject_ids: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for subject_id in subject_ids:
        if subject_id not in seen:
            seen.add(subject_id)
            result.append(subject_id)
    return result


def classify_change(current_ids: list[str], requested_ids: list[str]) -> ClassifiedChange:
    """Classify ``requested_ids`` against ``current_ids``.

    A request may add subjects or remove subjects, never both at once.
    """
    requested = _dedupe([str(s) for s in requested_ids])
    if not requested:
        raise ValueError("At least one subject must be selected")

    current_set = set(current_ids)
    requested_set = set(requested)
    added = [s for s in requested if s not in current_set]
    removed = [s for s in current_ids if s not in requested_set]

    if added and removed:
        raise ValueError("Cannot add and remove subjects in the same change")

    if added:
        return ClassifiedChange(
            change_type=PlanChangeType.UPGRADE,
            current_ids=list(current_ids),
            target_ids=list(current_ids) + added,
            added_ids=added,
            removed_ids=[],
        )
    if removed:
        return ClassifiedChange(
            change_type=PlanChangeType.DOWNGRADE,
            current_ids=list(current_ids),
            target_ids=requested,
            added_ids=[],
            removed_ids=removed,
        )
    return ClassifiedChange(
        change_type=PlanChangeType.NO_CHANGE,
        current_ids=list(current_ids),
        target_ids=list(current_ids),
        added_ids=[],
        removed_ids=[],
    )


def period_progress(
    period_start: datetime | None,
    period_end: datetime | None,
    now: datetime | None = None,
) -> Decimal:
    """Elapsed fraction of the billing period, clamped to [0, 1]."""
    if period_start is None or period_end is None:
        return Decimal("0")
    start = as_utc(period_start)
    end = as_utc(period_end)
    total = (end - start).total_seconds()  # type: ignore[operator]
    if total <= 0:
        return Decimal("0")
    elapsed = ((now or datetime.now(UTC)) - start).total_seconds()  # type: ignore[operator]
    progress = Decimal(str(elapsed)) / Decimal(str(total))
    return min(Decimal("1"), max(Decimal("0"), progress))


def estimate_proration(
    current: Decimal,
    new: Decimal,
    period_start: datetime | None,
    period_end: datetime | None,
    now: datetime | None = None,
) -> Decimal:
    """Local estimate of the prorated charge for the rest of the period."""
    remaining = Decimal("1") - period_progress(period_start, period_end, now)
    return to_money((new - current) * remaining)


class PlanChangeService:
    """Preview and apply subject-count changes on a user's subscription."""

    def __init__(self, db: Session, provider: BillingProviderBase):
        self.db = db
        self.provider = provider
        self.subscription_repo = SubscriptionRepository(db)
        self.subject_repo = SubjectRepository(db)
        self.user_subject_repo = UserSubjectRepository(db)
        self.pending_repo = PendingChangeRepository(db)

    def get_billable_subscription(self, user_id: UUID) -> Subscription | None:
        """Return the user's subscription if it is linked to the provider."""
        subscription = self.subscription_repo.get_by_user_id(user_id)
        if subscription is None or not subscription.stripe_subscription_id:
            return None
        return subscription

    def _classify(self, user_id: UUID, new_subject_ids: list[UUID] | list[str]) -> ClassifiedChange:
        requested = [str(s) for s in new_subject_ids]
        self._check_subjects_exist(requested)
        current_ids = self.user_subject_repo.get_subject_ids(user_id)
        return classify_change(current_ids, requested)

    def _check_subjects_exist(self, subject_ids: list[str]) -> None:
        try:
            wanted = {UUID(s) for s in subject_ids}
        except ValueError:
            raise ValueError("One or more subjects do not exist") from None
        known = {s.id for s in self.subject_repo.get_by_ids(list(wanted))}
        if wanted - known:
            raise ValueError("One or more subjects do not exist")

    def _billed_ids(self, subscription: Subscription, change: ClassifiedChange) -> list[str]:
        """Subjects billed after an upgrade, starting from a pending downgrade target if any."""
        pending = self.pending_repo.get_pending_downgrade(subscription.id)  # type: ignore[arg-type]
        if pending is None:
            return change.target_ids
        return _dedupe(list(pending.new_subject_ids or []) + change.added_ids)

    def preview(
        self,
        subscription: Subscription,
        new_subject_ids: list[UUID] | list[str],
    ) -> PlanChangePreviewResponse:
        """Compute the price and proration of a change without applying it."""
        change = self._classify(subscription.user_id, new_subject_ids)  # type: ignore[arg-type]
        billed = current_price(subscription)
        new_price = calculate_custom_price(len(change.target_ids))
        now = datetime.now(UTC)

        proration = Decimal("0.00")
        estimated = False
        effective_date = now
        if change.change_type == PlanChangeType.UPGRADE:
            billed_count = len(self._billed_ids(subscription, change))
            new_price = calculate_custom_price(billed_count)
            try:
                proration = self.provider.preview_proration(
                    str(subscription.stripe_subscription_id), billed_count
                )
            except Exception:
                logger.warning(
                    "Proration preview failed for subscription %s, using local estimate",
                    subscription.stripe_subscription_id,
                    exc_info=True,
                )
                proration = estimate_proration(
                    billed,
                    new_price,
                    subscription.current_period_start,  # type: ignore[arg-type]
                    subscription.current_period_end,  # type: ignore[arg-type]
                    now,
                )
                estimated = True
        elif change.change_type == PlanChangeType.DOWNGRADE:
            effective_date = as_utc(subscription.current_period_end) or now  # type: ignore[arg-type]

        return PlanChangePreviewResponse(
            current_price=billed,
            new_price=new_price,
            proration_amount=to_money(proration),
            is_upgrade=change.change_type == PlanChangeType.UPGRADE,
            is_downgrade=change.change_type == PlanChangeType.DOWNGRADE,
            change_type=change.change_type,
            effective_date=effective_date,
            estimated=estimated,
        )

    def execute(
        self,
        subscription: Subscription,
        new_subject_ids: list[UUID] | list[str],
        timing: str = IMMEDIATE,
    ) -> PlanChangeResponse:
        """Apply a change: immediate prorated upgrade or downgrade deferred to next period."""
        if timing != IMMEDIATE:
            logger.info("Plan change timing %r requested, applying immediately", timing)

        change = self._classify(subscription.user_id, new_subject_ids)  # type: ignore[arg-type]
        if change.change_type == PlanChangeType.NO_CHANGE:
            return PlanChangeResponse(
                success=False,
                message="No changes detected in subject selection",
                change_type=PlanChangeType.NO_CHANGE,
                timing=IMMEDIATE,
            )

        if change.change_type == PlanChangeType.UPGRADE:
            return self._upgrade(subscription, change)
        return self._downgrade(subscription, change)

    def _upgrade(self, subscription: Subscription, change: ClassifiedChange) -> PlanChangeResponse:
        stripe_subscription_id = str(subscription.stripe_subscription_id)
        pending = self.pending_repo.get_pending_downgrade(subscription.id)  # type: ignore[arg-type]

        billed_ids = self._billed_ids(subscription, change)
        new_count = len(billed_ids)
        new_price = calculate_custom_price(new_count)

        self.provider.replace_subscription_items(
            stripe_subscription_id, new_count, proration_behavior="always_invoice"
        )

        charge = ProrationCharge()
        if subscription.stripe_customer_id:
            try:
                charge = self.provider.collect_proration_invoice(
                    str(subscription.stripe_customer_id)
                )
            except Exception:
                # The amount lands on the next regular invoice instead
                logger.warning(
                    "Could not collect proration invoice for subscription %s",
                    stripe_subscription_id,
                    exc_info=True,
                )

        self.subscription_repo.set_plan(subscription, new_count, new_price, commit=False)
        self.user_subject_repo.replace(
            subscription.user_id, change.target_ids, commit=False  # type: ignore[arg-type]
        )

        if pending is not None:
            self.pending_repo.set_target(pending, billed_ids, new_price, commit=False)

        self.db.commit()
        self.db.refresh(subscription)

        logger.info(
            "Upgraded subscription %s to %d subjects (%s), charged %s",
            stripe_subscription_id,
            new_count,
            new_price,
            charge.amount,
        )
        return PlanChangeResponse(
            success=True,
            message="Subscription upgraded",
            change_type=PlanChangeType.UPGRADE,
            timing=IMMEDIATE,
            new_subject_count=new_count,
            new_price=new_price,
            immediate_charge_amount=charge.amount,
            charged_immediately=charge.invoice_id is not None and charge.amount > 0,
            invoice_id=charge.invoice_id,
            subscription_id=stripe_subscription_id,
        )

    def _downgrade(
        self, subscription: Subscription, change: ClassifiedChange
    ) -> PlanChangeResponse:
        stripe_subscription_id = str(subscription.stripe_subscription_id)
        new_count = len(change.target_ids)
        new_price = calculate_custom_price(new_count)

        self.provider.replace_subscription_items(
            stripe_subscription_id, new_count, proration_behavior="none"
        )

        scheduled_date = subscription.current_period_end
        pending = self.pending_repo.get_pending_downgrade(subscription.id)  # type: ignore[arg-type]
        if pending is None:
            self.pending_repo.create_downgrade(
                user_id=subscription.user_id,  # type: ignore[arg-type]
                subscription_id=subscription.id,  # type: ignore[arg-type]
                subject_ids=change.target_ids,
                new_price=new_price,
                scheduled_date=scheduled_date,  # type: ignore[arg-type]
                commit=False,
            )
        else:
            self.pending_repo.set_target(
                pending,
                change.target_ids,
                new_price,
                scheduled_date=scheduled_date,  # type: ignore[arg-type]
                commit=False,
            )

        # Entitlements are kept until the period rolls over
        self.subscription_repo.set_plan(subscription, new_count, new_price, commit=False)
        self.db.commit()
        self.db.refresh(subscription)

        logger.info(
            "Scheduled downgrade of subscription %s to %d subjects (%s) at %s",
            stripe_subscription_id,
            new_count,
            new_price,
            scheduled_date,
        )
        return PlanChangeResponse(
            success=True,
            message="Downgrade scheduled for the next billing period",
            change_type=PlanChangeType.DOWNGRADE,
            timing=IMMEDIATE,
            new_subject_count=new_count,
            new_price=new_price,
            subscription_id=stripe_subscription_id,
        )

"""Payment provider gateway.

Every call to the billing provider goes through ``BillingProviderBase`` so the
subscription services never touch the Stripe SDK directly.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from maturamate.core.config import settings
from maturamate.services.pricing import get_stripe_line_items, to_money

logger = logging.getLogger(__name__)

# Seconds a just-paid proration invoice is still attributed to the current change
RECENT_INVOICE_WINDOW = 60


class ProviderError(Exception):
    """Raised when the billing provider rejects or fails a request."""


@dataclass
class ProviderSubscription:
    """The subset of a provider subscription this service relies on."""

    id: str
    customer_id: str | None
    status: str
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    item_ids: list[str] = field(default_factory=list)
    price_id: str | None = None


@dataclass
class ProrationCharge:
    """Outcome of collecting the proration invoice after an upgrade."""

    invoice_id: str | None = None
    amount: Decimal = Decimal("0.00")


@dataclass
class CheckoutSession:
    """Checkout session result from provider."""

    provider_checkout_id: str
    checkout_url: str
    expires_at: datetime | None = None


@dataclass
class CheckoutResult:
    """A checkout session read back from the provider after redirect."""

    session_id: str
    payment_status: str
    customer_id: str | None
    subscription: ProviderSubscription | None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookEvent:
    """A verified provider event."""

    id: str
    event_type: str
    data_object: dict[str, Any]


def _get(obj: Any, key: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _from_timestamp(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except (TypeError, ValueError):
        return None


def _cents_to_money(cents: Any) -> Decimal:
    return to_money(Decimal(int(cents or 0)) / 100)


def _is_proration_line(line: Any) -> bool:
    if _get(line, "proration"):
        return True
    # Newer API versions nest the flag under the line's parent details
    parent = _get(line, "parent")
    details = _get(parent, "subscription_item_details")
    return bool(_get(details, "proration"))


def parse_subscription(obj: Any) -> ProviderSubscription:
    """Normalize a Stripe subscription object or webhook payload."""
    items = _get(_get(obj, "items"), "data", []) or []
    first_item = items[0] if items else None

    # current_period_* moved from the subscription onto its items in recent API versions
    period_start = _get(obj, "current_period_start") or _get(first_item, "current_period_start")
    period_end = _get(obj, "current_period_end") or _get(first_item, "current_period_end")

    customer = _get(obj, "customer")
    if customer is not None and not isinstance(customer, str):
        customer = _get(customer, "id")

    return ProviderSubscription(
        id=str(_get(obj, "id")),
        customer_id=customer,
        status=str(_get(obj, "status", "")),
        current_period_start=_from_timestamp(period_start),
        current_period_end=_from_timestamp(period_end),
        cancel_at_period_end=bool(_get(obj, "cancel_at_period_end", False)),
        item_ids=[str(_get(item, "id")) for item in items],
        price_id=_get(_get(first_item, "price"), "id"),
    )


class BillingProviderBase(ABC):
    """Abstract base class for the subscription billing provider."""

    @abstractmethod
    def retrieve_subscription(self, subscription_id: str) -> ProviderSubscription:
        """Fetch the provider subscription."""
        pass  # pragma: no cover

    @abstractmethod
    def replace_subscription_items(
        self,
        subscription_id: str,
        subject_count: int,
        proration_behavior: str,
    ) -> ProviderSubscription:
        """Swap every subscription item for the line items of ``subject_count`` subjects."""
        pass  # pragma: no cover

    @abstractmethod
    def preview_proration(self, subscription_id: str, subject_count: int) -> Decimal:
        """Return the prorated amount an immediate change to ``subject_count`` would charge."""
        pass  # pragma: no cover

    @abstractmethod
    def collect_proration_invoice(self, customer_id: str) -> ProrationCharge:
        """Pay (or read back) the invoice generated by an ``always_invoice`` update."""
        pass  # pragma: no cover

    @abstractmethod
    def set_cancel_at_period_end(self, subscription_id: str, value: bool) -> ProviderSubscription:
        """Schedule or unschedule cancellation at period end."""
        pass  # pragma: no cover

    @abstractmethod
    def create_customer(self, email: str | None, name: str | None, user_id: str) -> str:
        """Create a customer and return its provider id."""
        pass  # pragma: no cover

    @abstractmethod
    def create_checkout_session(
        self,
        customer_id: str,
        subject_count: int,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> CheckoutSession:
        """Create a subscription-mode checkout session."""
        pass  # pragma: no cover

    @abstractmethod
    def retrieve_checkout_session(self, session_id: str) -> CheckoutResult:
        """Fetch a checkout session together with its subscription."""
        pass  # pragma: no cover

    @abstractmethod
    def create_billing_portal_session(self, customer_id: str, return_url: str) -> str:
        """Return the URL of a self-service billing portal session."""
        pass  # pragma: no cover

    @abstractmethod
    def construct_webhook_event(self, payload: bytes, signature: str) -> WebhookEvent:
        """Verify the webhook signature and parse the event.

        Raises ``ValueError`` when the signature or payload is invalid.
        """
        pass  # pragma: no cover


class StripeProvider(BillingProviderBase):
    """Stripe implementation of the billing gateway."""

    def __init__(self, api_key: str | None = None, webhook_secret: str | None = None):
        self.api_key = api_key or settings.stripe_api_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self._stripe: Any = None

    @property
    def stripe(self) -> Any:
        """Lazy-load stripe module."""
        if self._stripe is None:
            try:
                import stripe

                stripe.api_key = self.api_key
                self._stripe = stripe
            except ImportError as e:
                raise ImportError("stripe package not installed. Run: pip install stripe") from e
        return self._stripe

    def _call(self, description: str, func: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except self.stripe.StripeError as e:
            logger.warning("Stripe %s failed: %s", description, e)
            raise ProviderError(f"Stripe {description} failed") from e

    def _items_update(self, subscription_id: str, subject_count: int) -> list[dict[str, Any]]:
        current = self.retrieve_subscription(subscription_id)
        deleted: list[dict[str, Any]] = [
            {"id": item_id, "deleted": True} for item_id in current.item_ids
        ]
        return deleted + get_stripe_line_items(subject_count)

    def retrieve_subscription(self, subscription_id: str) -> ProviderSubscription:
        obj = self._call("subscription retrieve", self.stripe.Subscription.retrieve, subscription_id)
        return parse_subscription(obj)

    def replace_subscription_items(
        self,
        subscription_id: str,
        subject_count: int,
        proration_behavior: str,
    ) -> ProviderSubscription:
        items = self._items_update(subscription_id, subject_count)
        obj = self._call(
            "subscription update",
            self.stripe.Subscription.modify,
            subscription_id,
            items=items,
            proration_behavior=proration_behavior,
        )
        logger.info(
            "Replaced items on %s for %d subjects (proration=%s)",
            subscription_id,
            subject_count,
            proration_behavior,
        )
        return parse_subscription(obj)

    def preview_proration(self, subscription_id: str, subject_count: int) -> Decimal:
        current = self.retrieve_subscription(subscription_id)
        invoice = self._call(
            "invoice preview",
            self.stripe.Invoice.create_preview,
            customer=current.customer_id,
            subscription=subscription_id,
            subscription_details={
                "items": self._items_update(subscription_id, subject_count),
                "proration_behavior": "always_invoice",
            },
        )
        lines = _get(_get(invoice, "lines"), "data", []) or []
        cents = sum(int(_get(line, "amount", 0) or 0) for line in lines if _is_proration_line(line))
        return _cents_to_money(cents)

    def collect_proration_invoice(self, customer_id: str) -> ProrationCharge:
        open_invoices = self._call(
            "invoice list", self.stripe.Invoice.list, customer=customer_id, limit=5, status="open"
        )
        for invoice in _get(open_invoices, "data", []) or []:
            lines = _get(_get(invoice, "lines"), "data", []) or []
            if int(_get(invoice, "amount_due", 0) or 0) > 0 and any(
                _is_proration_line(line) for line in lines
            ):
                paid = self._call("invoice pay", self.stripe.Invoice.pay, _get(invoice, "id"))
                return ProrationCharge(
                    invoice_id=_get(paid, "id"),
                    amount=_cents_to_money(_get(paid, "amount_paid", 0)),
                )

        paid_invoices = self._call(
            "invoice list", self.stripe.Invoice.list, customer=customer_id, limit=5, status="paid"
        )
        cutoff = datetime.now(UTC).timestamp() - RECENT_INVOICE_WINDOW
        for invoice in _get(paid_invoices, "data", []) or []:
            lines = _get(_get(invoice, "lines"), "data", []) or []
            if int(_get(invoice, "created", 0) or 0) > cutoff and any(
                _is_proration_line(line) for line in lines
            ):
                return ProrationCharge(
                    invoice_id=_get(invoice, "id"),
                    amount=_cents_to_money(_get(invoice, "amount_paid", 0)),
                )

        return ProrationCharge()

    def set_cancel_at_period_end(self, subscription_id: str, value: bool) -> ProviderSubscription:
        obj = self._call(
            "subscription update",
            self.stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=value,
        )
        return parse_subscription(obj)

    def create_customer(self, email: str | None, name: str | None, user_id: str) -> str:
        params: dict[str, Any] = {"metadata": {"userId": user_id}}
        if email:
            params["email"] = email
        if name:
            params["name"] = name
        customer = self._call("customer create", self.stripe.Customer.create, **params)
        return str(_get(customer, "id"))

    def create_checkout_session(
        self,
        customer_id: str,
        subject_count: int,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> CheckoutSession:
        session = self._call(
            "checkout session create",
            self.stripe.checkout.Session.create,
            customer=customer_id,
            mode="subscription",
            payment_method_types=["card"],
            line_items=get_stripe_line_items(subject_count),
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
        )
        return CheckoutSession(
            provider_checkout_id=str(_get(session, "id")),
            checkout_url=str(_get(session, "url") or ""),
            expires_at=_from_timestamp(_get(session, "expires_at")),
        )

    def retrieve_checkout_session(self, session_id: str) -> CheckoutResult:
        session = self._call(
            "checkout session retrieve",
            self.stripe.checkout.Session.retrieve,
            session_id,
            expand=["subscription"],
        )
        subscription = _get(session, "subscription")
        if isinstance(subscription, str):
            subscription = self._call(
                "subscription retrieve", self.stripe.Subscription.retrieve, subscription
            )
        customer = _get(session, "customer")
        if customer is not None and not isinstance(customer, str):
            customer = _get(customer, "id")
        metadata = _get(session, "metadata") or {}
        return CheckoutResult(
            session_id=str(_get(session, "id")),
            payment_status=str(_get(session, "payment_status", "")),
            customer_id=customer,
            subscription=parse_subscription(subscription) if subscription else None,
            metadata={key: metadata[key] for key in metadata},
        )

    def create_billing_portal_session(self, customer_id: str, return_url: str) -> str:
        session = self._call(
            "billing portal session create",
            self.stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        return str(_get(session, "url"))

    def construct_webhook_event(self, payload: bytes, signature: str) -> WebhookEvent:
        if not self.webhook_secret:
            raise ValueError("Webhook secret not configured")
        try:
            self.stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except self.stripe.SignatureVerificationError as e:
            raise ValueError("Invalid signature") from e
        event = json.loads(payload)
        return WebhookEvent(
            id=str(event.get("id", "")),
            event_type=str(event.get("type", "")),
            data_object=event.get("data", {}).get("object", {}),
        )


def get_billing_provider() -> BillingProviderBase:
    """FastAPI dependency returning the configured billing provider."""
    return StripeProvider()

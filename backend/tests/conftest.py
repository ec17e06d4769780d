"""Shared test fixtures for all test modules."""

import contextlib
import json
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from maturamate.core import database as db_module
from maturamate.core.auth import create_access_token
from maturamate.core.database import Base
from maturamate.models.subject import Subject
from maturamate.models.subscription import Subscription, SubscriptionStatus
from maturamate.models.user import User
from maturamate.models.user_subject import UserSubject
from maturamate.services.payment_provider import (
    BillingProviderBase,
    CheckoutResult,
    CheckoutSession,
    ProrationCharge,
    ProviderError,
    ProviderSubscription,
    WebhookEvent,
)
from maturamate.services.pricing import calculate_custom_price

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

SUBJECT_NAMES = ["Matematica", "Fisica", "Italiano", "Storia", "Inglese", "Latino"]

VALID_SIGNATURE = "t=1,v1=valid"


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


class FakeBillingProvider(BillingProviderBase):
    """In-memory billing provider that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_on: set[str] = set()
        self.proration_amount = Decimal("2.49")
        self.proration_charge = ProrationCharge(invoice_id="in_proration", amount=Decimal("2.49"))
        self.period_end = datetime.now(UTC) + timedelta(days=20)
        self.checkout_result: CheckoutResult | None = None

    def _record(self, name: str, /, **kwargs: Any) -> None:
        self.calls.append((name, kwargs))
        if name in self.fail_on:
            raise ProviderError(f"{name} failed")

    def calls_named(self, name: str) -> list[dict[str, Any]]:
        return [kwargs for call, kwargs in self.calls if call == name]

    def _subscription(self, subscription_id: str, **overrides: Any) -> ProviderSubscription:
        values: dict[str, Any] = {
            "id": subscription_id,
            "customer_id": "cus_test",
            "status": "active",
            "current_period_start": self.period_end - timedelta(days=30),
            "current_period_end": self.period_end,
            "cancel_at_period_end": False,
            "item_ids": ["si_1"],
            "price_id": "price_one",
        }
        values.update(overrides)
        return ProviderSubscription(**values)

    def retrieve_subscription(self, subscription_id: str) -> ProviderSubscription:
        self._record("retrieve_subscription", subscription_id=subscription_id)
        return self._subscription(subscription_id)

    def replace_subscription_items(
        self, subscription_id: str, subject_count: int, proration_behavior: str
    ) -> ProviderSubscription:
        self._record(
            "replace_subscription_items",
            subscription_id=subscription_id,
            subject_count=subject_count,
            proration_behavior=proration_behavior,
        )
        return self._subscription(subscription_id)

    def preview_proration(self, subscription_id: str, subject_count: int) -> Decimal:
        self._record("preview_proration", subscription_id=subscription_id, subject_count=subject_count)
        return self.proration_amount

    def collect_proration_invoice(self, customer_id: str) -> ProrationCharge:
        self._record("collect_proration_invoice", customer_id=customer_id)
        return self.proration_charge

    def set_cancel_at_period_end(self, subscription_id: str, value: bool) -> ProviderSubscription:
        self._record("set_cancel_at_period_end", subscription_id=subscription_id, value=value)
        return self._subscription(subscription_id, cancel_at_period_end=value)

    def create_customer(self, email: str | None, name: str | None, user_id: str) -> str:
        self._record("create_customer", email=email, name=name, user_id=user_id)
        return "cus_new"

    def create_checkout_session(
        self,
        customer_id: str,
        subject_count: int,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> CheckoutSession:
        self._record(
            "create_checkout_session",
            customer_id=customer_id,
            subject_count=subject_count,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
        )
        return CheckoutSession(
            provider_checkout_id="cs_test_123",
            checkout_url="https://checkout.stripe.com/c/pay/cs_test_123",
        )

    def retrieve_checkout_session(self, session_id: str) -> CheckoutResult:
        self._record("retrieve_checkout_session", session_id=session_id)
        if self.checkout_result is None:
            raise ProviderError("No such checkout session")
        return self.checkout_result

    def create_billing_portal_session(self, customer_id: str, return_url: str) -> str:
        self._record("create_billing_portal_session", customer_id=customer_id, return_url=return_url)
        return "https://billing.stripe.com/p/session/test"

    def construct_webhook_event(self, payload: bytes, signature: str) -> WebhookEvent:
        self._record("construct_webhook_event", signature=signature)
        if signature != VALID_SIGNATURE:
            raise ValueError("Invalid signature")
        event = json.loads(payload)
        return WebhookEvent(
            id=event.get("id", "evt_test"),
            event_type=event["type"],
            data_object=event["data"]["object"],
        )


@pytest.fixture
def fake_provider():
    """Install a FakeBillingProvider as the billing provider dependency."""
    from maturamate.main import app
    from maturamate.services.payment_provider import get_billing_provider

    provider = FakeBillingProvider()
    app.dependency_overrides[get_billing_provider] = lambda: provider
    yield provider
    app.dependency_overrides.pop(get_billing_provider, None)


def create_user(db: Session, email: str = "studente@example.com", name: str = "Studente") -> User:
    user = User(email=email, name=name, username=email.split("@")[0])
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_subjects(db: Session, count: int = 4) -> list[Subject]:
    subjects = []
    for index, name in enumerate(SUBJECT_NAMES[:count], start=1):
        subject = Subject(
            name=name,
            description=f"Preparazione di {name}",
            slug=name.lower(),
            order_index=index,
            maturita=index <= 2,
        )
        db.add(subject)
        subjects.append(subject)
    db.commit()
    for subject in subjects:
        db.refresh(subject)
    return subjects


def create_subscription(
    db: Session,
    user: User,
    subjects: list[Subject],
    status: str = SubscriptionStatus.ACTIVE.value,
    stripe_subscription_id: str | None = "sub_test_123",
    stripe_customer_id: str | None = "cus_test",
    period_start: datetime | None = None,
    period_end: datetime | None = None,
) -> Subscription:
    """Create a subscription billed for ``subjects`` and grant them to ``user``."""
    now = datetime.now(UTC)
    subscription = Subscription(
        user_id=user.id,
        stripe_customer_id=stripe_customer_id,
        stripe_subscription_id=stripe_subscription_id,
        stripe_price_id="price_one",
        status=status,
        subject_count=len(subjects),
        custom_price=calculate_custom_price(len(subjects)),
        current_period_start=period_start or now - timedelta(days=10),
        current_period_end=period_end or now + timedelta(days=20),
        cancel_at_period_end=False,
    )
    db.add(subscription)
    for subject in subjects:
        db.add(UserSubject(user_id=user.id, subject_id=subject.id))
    db.commit()
    db.refresh(subscription)
    return subscription


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def ids(subjects: list[Subject]) -> list[str]:
    return [str(s.id) for s in subjects]

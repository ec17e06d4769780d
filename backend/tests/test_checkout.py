"""Tests for checkout, checkout confirmation and the billing portal."""

import json
import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from maturamate.core.database import get_db
from maturamate.main import app
from maturamate.models.subscription import Subscription, SubscriptionStatus
from maturamate.repositories.user_subject_repository import UserSubjectRepository
from maturamate.services.checkout_service import CheckoutService, parse_selected_subjects
from maturamate.services.payment_provider import CheckoutResult
from tests.conftest import (
    FakeBillingProvider,
    auth_headers,
    create_subjects,
    create_subscription,
    create_user,
    ids,
)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db_session():
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


def _paid_result(provider, user, subject_ids, payment_status="paid"):
    return CheckoutResult(
        session_id="cs_test_123",
        payment_status=payment_status,
        customer_id="cus_new",
        subscription=provider.retrieve_subscription("sub_new"),
        metadata={
            "userId": str(user.id),
            "selectedSubjects": json.dumps(subject_ids),
            "customPrice": "7.48",
            "subjectCount": str(len(subject_ids)),
        },
    )


class TestParseSelectedSubjects:
    def test_json_list(self):
        subject_id = str(uuid.uuid4())
        assert parse_selected_subjects({"selectedSubjects": json.dumps([subject_id])}) == [
            subject_id
        ]

    def test_missing(self):
        assert parse_selected_subjects({}) == []

    def test_malformed(self):
        assert parse_selected_subjects({"selectedSubjects": "not json"}) == []
        assert parse_selected_subjects({"selectedSubjects": '["nope"]'}) == []


class TestCheckoutService:
    def test_create_checkout_creates_customer(self, db_session):
        provider = FakeBillingProvider()
        user = create_user(db_session)
        subjects = create_subjects(db_session, 2)

        result = CheckoutService(db_session, provider).create_checkout(
            user.id, [s.id for s in subjects]
        )
        assert result.session_id == "cs_test_123"
        assert provider.calls_named("create_customer")[0]["email"] == "studente@example.com"

        call = provider.calls_named("create_checkout_session")[0]
        assert call["customer_id"] == "cus_new"
        assert call["subject_count"] == 2
        assert call["metadata"]["customPrice"] == "7.48"
        assert json.loads(call["metadata"]["selectedSubjects"]) == ids(subjects)

        subscription = db_session.query(Subscription).one()
        assert subscription.stripe_customer_id == "cus_new"
        assert subscription.status == SubscriptionStatus.INCOMPLETE.value

    def test_create_checkout_reuses_customer(self, db_session):
        provider = FakeBillingProvider()
        user = create_user(db_session)
        subjects = create_subjects(db_session, 1)
        create_subscription(
            db_session, user, [], status=SubscriptionStatus.CANCELED.value, stripe_customer_id="cus_old"
        )

        CheckoutService(db_session, provider).create_checkout(user.id, [subjects[0].id])
        assert provider.calls_named("create_customer") == []
        assert provider.calls_named("create_checkout_session")[0]["customer_id"] == "cus_old"

    def test_create_checkout_rejects_active_subscription(self, db_session):
        provider = FakeBillingProvider()
        user = create_user(db_session)
        subjects = create_subjects(db_session, 1)
        create_subscription(db_session, user, subjects)

        with pytest.raises(ValueError, match="already has an active subscription"):
            CheckoutService(db_session, provider).create_checkout(user.id, [subjects[0].id])

    def test_create_checkout_unknown_subject(self, db_session):
        provider = FakeBillingProvider()
        user = create_user(db_session)
        with pytest.raises(ValueError, match="do not exist"):
            CheckoutService(db_session, provider).create_checkout(user.id, [uuid.uuid4()])

    def test_process_checkout_activates(self, db_session):
        provider = FakeBillingProvider()
        user = create_user(db_session)
        subjects = create_subjects(db_session, 2)
        provider.checkout_result = _paid_result(provider, user, ids(subjects))

        result = CheckoutService(db_session, provider).process_checkout(user.id, "cs_test_123")
        assert result.success is True
        assert result.subscription.subjects == 2
        assert result.subscription.price == Decimal("7.48")

        subscription = db_session.query(Subscription).one()
        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert subscription.stripe_subscription_id == "sub_new"
        assert subscription.stripe_customer_id == "cus_new"
        assert subscription.current_period_end is not None
        assert set(UserSubjectRepository(db_session).get_subject_ids(user.id)) == set(ids(subjects))

    def test_process_checkout_unpaid(self, db_session):
        provider = FakeBillingProvider()
        user = create_user(db_session)
        provider.checkout_result = _paid_result(provider, user, [], payment_status="unpaid")
        with pytest.raises(ValueError, match="Payment not completed"):
            CheckoutService(db_session, provider).process_checkout(user.id, "cs_test_123")

    def test_process_checkout_other_user(self, db_session):
        provider = FakeBillingProvider()
        user = create_user(db_session)
        provider.checkout_result = _paid_result(provider, user, [])
        with pytest.raises(ValueError, match="another user"):
            CheckoutService(db_session, provider).process_checkout(uuid.uuid4(), "cs_test_123")


class TestCheckoutAPI:
    def test_checkout(self, client, db_session, fake_provider):
        user = create_user(db_session)
        subjects = create_subjects(db_session, 3)
        response = client.post(
            "/api/stripe/checkout",
            json={"plan_type": "CUSTOM", "selected_subjects": ids(subjects)},
            headers=auth_headers(user),
        )
        assert response.status_code == 200
        assert response.json() == {
            "session_id": "cs_test_123",
            "url": "https://checkout.stripe.com/c/pay/cs_test_123",
        }

    def test_checkout_requires_subjects(self, client, db_session, fake_provider):
        user = create_user(db_session)
        response = client.post(
            "/api/stripe/checkout",
            json={"plan_type": "CUSTOM", "selected_subjects": []},
            headers=auth_headers(user),
        )
        assert response.status_code == 422

    def test_checkout_rejects_other_plan_types(self, client, db_session, fake_provider):
        user = create_user(db_session)
        subjects = create_subjects(db_session, 1)
        response = client.post(
            "/api/stripe/checkout",
            json={"plan_type": "FULL", "selected_subjects": ids(subjects)},
            headers=auth_headers(user),
        )
        assert response.status_code == 422

    def test_checkout_with_active_subscription(self, client, db_session, fake_provider):
        user = create_user(db_session)
        subjects = create_subjects(db_session, 1)
        create_subscription(db_session, user, subjects)
        response = client.post(
            "/api/stripe/checkout",
            json={"selected_subjects": ids(subjects)},
            headers=auth_headers(user),
        )
        assert response.status_code == 400

    def test_process_checkout(self, client, db_session, fake_provider):
        user = create_user(db_session)
        subjects = create_subjects(db_session, 2)
        fake_provider.checkout_result = _paid_result(fake_provider, user, ids(subjects))

        response = client.post(
            "/api/stripe/process-checkout",
            json={"session_id": "cs_test_123"},
            headers=auth_headers(user),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["subscription"]["plan"] == "MaturaMate Pro"
        assert data["subscription"]["subjects"] == 2

        access = client.get("/api/user/subject-access", headers=auth_headers(user)).json()
        assert access["has_access"] is True

    def test_process_checkout_unknown_session(self, client, db_session, fake_provider):
        user = create_user(db_session)
        response = client.post(
            "/api/stripe/process-checkout",
            json={"session_id": "cs_missing"},
            headers=auth_headers(user),
        )
        assert response.status_code == 500

    def test_billing_portal(self, client, db_session, fake_provider):
        user = create_user(db_session)
        create_subscription(db_session, user, create_subjects(db_session, 1))
        response = client.post("/api/stripe/billing-portal", headers=auth_headers(user))
        assert response.status_code == 200
        assert response.json()["url"].startswith("https://billing.stripe.com/")
        assert fake_provider.calls_named("create_billing_portal_session")[0]["return_url"].endswith(
            "/dashboard"
        )

    def test_billing_portal_without_customer(self, client, db_session, fake_provider):
        user = create_user(db_session)
        response = client.post("/api/stripe/billing-portal", headers=auth_headers(user))
        assert response.status_code == 404

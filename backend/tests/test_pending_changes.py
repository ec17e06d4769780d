"""Tests for modifying and undoing pending downgrades."""

import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from maturamate.core.database import get_db
from maturamate.main import app
from maturamate.models.pending_subscription_change import (
    PendingChangeStatus,
    PendingSubscriptionChange,
)
from maturamate.models.subscription import Subscription
from maturamate.repositories.user_subject_repository import UserSubjectRepository
from maturamate.services.pending_change_service import (
    PendingChangeAccessError,
    PendingChangeService,
)
from maturamate.services.plan_change_service import PlanChangeService
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


@pytest.fixture
def provider():
    return FakeBillingProvider()


def _schedule_downgrade(db, provider, subscription, keep):
    PlanChangeService(db, provider).execute(subscription, ids(keep))
    return db.query(PendingSubscriptionChange).one()


class TestModifyPendingChange:
    def test_restore_one_subject(self, db_session, provider):
        user = create_user(db_session)
        subjects = create_subjects(db_session, 4)
        subscription = create_subscription(db_session, user, subjects)
        pending = _schedule_downgrade(db_session, provider, subscription, subjects[:1])

        result = PendingChangeService(db_session, provider).modify(
            subscription, pending, [str(subjects[1].id)]
        )
        assert result.pending_change_resolved is False
        assert result.new_subject_count == 2
        assert result.new_price == Decimal("7.48")

        db_session.refresh(pending)
        assert set(pending.new_subject_ids) == set(ids(subjects[:2]))
        assert pending.status == PendingChangeStatus.PENDING.value
        assert subscription.subject_count == 2
        last_call = provider.calls_named("replace_subscription_items")[-1]
        assert last_call["subject_count"] == 2
        assert last_call["proration_behavior"] == "always_invoice"

    def test_restoring_everything_resolves(self, db_session, provider):
        user = create_user(db_session)
        subjects = create_subjects(db_session, 3)
        subscription = create_subscription(db_session, user, subjects)
        pending = _schedule_downgrade(db_session, provider, subscription, subjects[:1])
        service = PendingChangeService(db_session, provider)

        service.modify(subscription, pending, [str(subjects[1].id)])
        result = service.modify(subscription, pending, [str(subjects[2].id)])

        assert result.pending_change_resolved is True
        assert result.new_subject_count == 3
        assert result.new_price == Decimal("9.97")
        db_session.refresh(pending)
        assert pending.status == PendingChangeStatus.CANCELLED.value
        assert service.get_pending_downgrade(subscription) is None

    def test_restore_unknown_subject_rejected(self, db_session, provider):
        user = create_user(db_session)
        subjects = create_subjects(db_session, 3)
        subscription = create_subscription(db_session, user, subjects[:2])
        pending = _schedule_downgrade(db_session, provider, subscription, subjects[:1])

        with pytest.raises(ValueError, match="currently active"):
            PendingChangeService(db_session, provider).modify(
                subscription, pending, [str(subjects[2].id)]
            )


class TestUndoPendingChange:
    def test_undo_restores_subjects_and_price(self, db_session, provider):
        user = create_user(db_session)
        subjects = create_subjects(db_session, 3)
        subscription = create_subscription(db_session, user, subjects)
        original_price = Decimal(subscription.custom_price)
        pending = _schedule_downgrade(db_session, provider, subscription, subjects[:1])
        assert subscription.subject_count == 1

        service = PendingChangeService(db_session, provider)
        change = service.get_change_for_undo(user.id, pending.id)
        result = service.undo(change)

        assert result.restored_subject_count == 3
        assert result.restored_price == original_price
        db_session.refresh(subscription)
        assert subscription.subject_count == 3
        assert Decimal(subscription.custom_price) == original_price
        assert set(UserSubjectRepository(db_session).get_subject_ids(user.id)) == set(ids(subjects))
        db_session.refresh(pending)
        assert pending.status == PendingChangeStatus.CANCELLED.value
        last_call = provider.calls_named("replace_subscription_items")[-1]
        assert last_call == {
            "subscription_id": "sub_test_123",
            "subject_count": 3,
            "proration_behavior": "none",
        }

    def test_undo_other_users_change(self, db_session, provider):
        owner = create_user(db_session)
        other = create_user(db_session, email="altro@example.com")
        subjects = create_subjects(db_session, 2)
        subscription = create_subscription(db_session, owner, subjects)
        pending = _schedule_downgrade(db_session, provider, subscription, subjects[:1])

        with pytest.raises(PendingChangeAccessError):
            PendingChangeService(db_session, provider).get_change_for_undo(other.id, pending.id)

    def test_undo_missing_or_resolved_change(self, db_session, provider):
        user = create_user(db_session)
        subjects = create_subjects(db_session, 2)
        subscription = create_subscription(db_session, user, subjects)
        pending = _schedule_downgrade(db_session, provider, subscription, subjects[:1])
        service = PendingChangeService(db_session, provider)

        assert service.get_change_for_undo(user.id, uuid.uuid4()) is None
        service.undo(pending)
        assert service.get_change_for_undo(user.id, pending.id) is None


class TestPendingChangeAPI:
    def _setup(self, db_session, fake_provider, count=3, keep=1):
        user = create_user(db_session)
        subjects = create_subjects(db_session, count)
        subscription = create_subscription(db_session, user, subjects)
        pending = _schedule_downgrade(db_session, fake_provider, subscription, subjects[:keep])
        return user, subjects, pending

    def test_modify_with_subject_id(self, client, db_session, fake_provider):
        user, subjects, _ = self._setup(db_session, fake_provider)
        response = client.post(
            "/api/stripe/modify-pending-change",
            json={"subject_id": str(subjects[1].id)},
            headers=auth_headers(user),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["pending_change_resolved"] is False
        assert data["new_subject_count"] == 2

    def test_modify_with_list_resolves(self, client, db_session, fake_provider):
        user, subjects, _ = self._setup(db_session, fake_provider)
        response = client.post(
            "/api/stripe/modify-pending-change",
            json={"restore_subject_ids": ids(subjects[1:])},
            headers=auth_headers(user),
        )
        assert response.status_code == 200
        assert response.json()["pending_change_resolved"] is True

        pending = client.get(
            "/api/user/pending-subscription-changes", headers=auth_headers(user)
        ).json()["pending_changes"]
        assert pending == []

    def test_modify_requires_subjects(self, client, db_session, fake_provider):
        user, _, _ = self._setup(db_session, fake_provider)
        response = client.post(
            "/api/stripe/modify-pending-change", json={}, headers=auth_headers(user)
        )
        assert response.status_code == 422

    def test_modify_inactive_subject(self, client, db_session, fake_provider):
        user, _, _ = self._setup(db_session, fake_provider)
        response = client.post(
            "/api/stripe/modify-pending-change",
            json={"subject_id": str(uuid.uuid4())},
            headers=auth_headers(user),
        )
        assert response.status_code == 400

    def test_modify_without_pending_downgrade(self, client, db_session, fake_provider):
        user = create_user(db_session)
        subjects = create_subjects(db_session, 2)
        create_subscription(db_session, user, subjects)
        response = client.post(
            "/api/stripe/modify-pending-change",
            json={"subject_id": str(subjects[0].id)},
            headers=auth_headers(user),
        )
        assert response.status_code == 404

    def test_undo(self, client, db_session, fake_provider):
        user, subjects, pending = self._setup(db_session, fake_provider)
        response = client.post(
            "/api/stripe/undo-pending-change",
            json={"change_id": str(pending.id)},
            headers=auth_headers(user),
        )
        assert response.status_code == 200
        assert response.json()["restored_subject_count"] == 3

        status = client.get("/api/user/subscription-status", headers=auth_headers(user)).json()
        assert status["subject_count"] == 3
        assert Decimal(status["price"]) == Decimal("9.97")

    def test_undo_forbidden(self, client, db_session, fake_provider):
        _, _, pending = self._setup(db_session, fake_provider)
        other = create_user(db_session, email="altro@example.com")
        response = client.post(
            "/api/stripe/undo-pending-change",
            json={"change_id": str(pending.id)},
            headers=auth_headers(other),
        )
        assert response.status_code == 403

    def test_undo_not_found(self, client, db_session, fake_provider):
        user, _, _ = self._setup(db_session, fake_provider)
        response = client.post(
            "/api/stripe/undo-pending-change",
            json={"change_id": str(uuid.uuid4())},
            headers=auth_headers(user),
        )
        assert response.status_code == 404

    def test_undo_twice(self, client, db_session, fake_provider):
        user, _, pending = self._setup(db_session, fake_provider)
        payload = {"change_id": str(pending.id)}
        assert client.post(
            "/api/stripe/undo-pending-change", json=payload, headers=auth_headers(user)
        ).status_code == 200
        assert client.post(
            "/api/stripe/undo-pending-change", json=payload, headers=auth_headers(user)
        ).status_code == 404
        assert db_session.query(Subscription).count() == 1

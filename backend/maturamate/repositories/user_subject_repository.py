from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from maturamate.models.user_subject import UserSubject


class UserSubjectRepository:
    """Queries over the user to subject entitlement table."""

    def __init__(self, db: Session):
        self.db = db

    def get_subject_ids(self, user_id: UUID) -> list[str]:
        rows = (
            self.db.query(UserSubject.subject_id)
            .filter(UserSubject.user_id == user_id)
            .order_by(UserSubject.created_at, UserSubject.id)
            .all()
        )
        return [str(row.subject_id) for row in rows]

    def has_subject(self, user_id: UUID, subject_id: UUID) -> bool:
        query = self.db.query(UserSubject).filter(
            UserSubject.user_id == user_id,
            UserSubject.subject_id == subject_id,
        )
        return query.first() is not None

    def replace(self, user_id: UUID, subject_ids: Iterable[str | UUID], commit: bool = True) -> None:
        """Replace the user's whole entitlement set."""
        self.db.query(UserSubject).filter(UserSubject.user_id == user_id).delete(
            synchronize_session=False
        )
        seen: set[str] = set()
        for subject_id in subject_ids:
            key = str(subject_id)
            if key in seen:
                continue
            seen.add(key)
            self.db.add(UserSubject(user_id=user_id, subject_id=UUID(key)))
        if commit:
            self.db.commit()

    def delete_all(self, user_id: UUID, commit: bool = True) -> int:
        count = (
            self.db.query(UserSubject)
            .filter(UserSubject.user_id == user_id)
            .delete(synchronize_session=False)
        )
        if commit:
            self.db.commit()
        return count

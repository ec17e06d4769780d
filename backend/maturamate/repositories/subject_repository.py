from uuid import UUID

from sqlalchemy.orm import Session

from maturamate.models.subject import Subject
from maturamate.models.user_subject import UserSubject


class SubjectRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_all(self) -> list[Subject]:
        return self.db.query(Subject).order_by(Subject.order_index, Subject.name).all()

    def get_by_id(self, subject_id: UUID) -> Subject | None:
        return self.db.query(Subject).filter(Subject.id == subject_id).first()

    def get_by_slug(self, slug: str) -> Subject | None:
        return self.db.query(Subject).filter(Subject.slug == slug).first()

    def get_by_ids(self, subject_ids: list[UUID]) -> list[Subject]:
        if not subject_ids:
            return []
        return self.db.query(Subject).filter(Subject.id.in_(subject_ids)).all()

    def get_for_user_by_slug(self, user_id: UUID, slug: str) -> Subject | None:
        """Return the subject only if the user is entitled to it."""
        return (
            self.db.query(Subject)
            .join(UserSubject, UserSubject.subject_id == Subject.id)
            .filter(UserSubject.user_id == user_id, Subject.slug == slug)
            .first()
        )

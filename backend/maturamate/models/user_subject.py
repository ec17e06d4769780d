from sqlalchemy import Column, DateTime, ForeignKey, UniqueConstraint, func

from maturamate.core.database import Base
from maturamate.models.shared import UUIDType, generate_uuid


class UserSubject(Base):
    """A subject the user is currently entitled to."""

    __tablename__ = "user_subjects"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    user_id = Column(
        UUIDType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subject_id = Column(
        UUIDType,
        ForeignKey("subjects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("user_id", "subject_id", name="uq_user_subjects_user_subject"),)

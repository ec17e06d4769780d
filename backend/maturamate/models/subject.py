from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func

from maturamate.core.database import Base
from maturamate.models.shared import UUIDType, generate_uuid


class Subject(Base):
    __tablename__ = "subjects"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=False)
    order_index = Column(Integer, nullable=False, default=1)
    color = Column(String(20), nullable=False, default="#000000")
    maturita = Column(Boolean, nullable=False, default=False)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

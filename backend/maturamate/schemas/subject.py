from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class SubjectResponse(BaseModel):
    id: UUID
    name: str
    description: str
    slug: str
    color: str
    maturita: bool
    order_index: int

    model_config = {"from_attributes": True}


class SubjectDetailResponse(SubjectResponse):
    created_at: datetime | None = None

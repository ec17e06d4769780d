from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, model_validator


class PendingChangeResponse(BaseModel):
    id: UUID
    subscription_id: UUID
    change_type: str
    timing: str
    new_subject_ids: list[str]
    new_subject_count: int
    new_price: Decimal
    scheduled_date: datetime | None
    status: str
    created_at: datetime | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class PendingChangesResponse(BaseModel):
    pending_changes: list[PendingChangeResponse]


class ModifyPendingChangeRequest(BaseModel):
    """Restore one subject or a list of subjects scheduled for removal."""

    subject_id: UUID | None = None
    restore_subject_ids: list[UUID] | None = None

    @model_validator(mode="after")
    def check_subjects(self) -> "ModifyPendingChangeRequest":
        if not self.subject_ids:
            raise ValueError("Provide subject_id or restore_subject_ids")
        return self

    @property
    def subject_ids(self) -> list[str]:
        if self.restore_subject_ids:
            return [str(s) for s in self.restore_subject_ids]
        if self.subject_id:
            return [str(self.subject_id)]
        return []


class ModifyPendingChangeResponse(BaseModel):
    message: str
    pending_change_resolved: bool
    new_subject_count: int
    new_price: Decimal


class UndoPendingChangeRequest(BaseModel):
    change_id: UUID


class UndoPendingChangeResponse(BaseModel):
    message: str
    restored_subject_count: int | None = None
    restored_price: Decimal | None = None

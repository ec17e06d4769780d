"""Subject catalog API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from maturamate.core.auth import get_current_user_id
from maturamate.core.database import get_db
from maturamate.models.subject import Subject
from maturamate.repositories.subject_repository import SubjectRepository
from maturamate.schemas.subject import SubjectDetailResponse, SubjectResponse
from maturamate.services.subscription_status import SubscriptionStatusService

router = APIRouter()


@router.get(
    "/",
    response_model=list[SubjectResponse],
    summary="List subjects",
)
async def list_subjects(db: Session = Depends(get_db)) -> list[Subject]:
    """List the whole subject catalog."""
    return SubjectRepository(db).get_all()


@router.get(
    "/{slug}",
    response_model=SubjectDetailResponse,
    summary="Get an entitled subject",
    responses={
        401: {"description": "Unauthorized – invalid or missing token"},
        404: {"description": "Subject not found or not included in the subscription"},
    },
)
async def get_subject(
    slug: str,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> Subject:
    """Get a subject the current user is entitled to."""
    subject = SubjectRepository(db).get_for_user_by_slug(user_id, slug)
    if not subject:
        raise HTTPException(status_code=404, detail="Subject not found")
    if not SubscriptionStatusService(db).has_subject_access(user_id, subject.id):  # type: ignore[arg-type]
        raise HTTPException(status_code=404, detail="Subject not found")
    return subject

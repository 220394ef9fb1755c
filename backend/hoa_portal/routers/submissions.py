from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from ..dependencies import get_current_principal, get_db, get_services
from ..schemas.submission import SubmissionCreate, SubmissionResponse
from ..services.authorization import Principal

router = APIRouter(prefix="/submissions", tags=["Submissions"])


@router.post("", response_model=SubmissionResponse, status_code=201)
def create_submission(
    payload: SubmissionCreate,
    current_user: Optional[Principal] = Depends(get_current_principal),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """Submit a photo for review"""
    return services.intake.submit(
        db,
        current_user,
        category=payload.category,
        title=payload.title,
        description=payload.description,
        media_ref=payload.media_ref,
    )


@router.get("/mine", response_model=List[SubmissionResponse])
def get_my_submissions(
    current_user: Optional[Principal] = Depends(get_current_principal),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """Get the caller's own submissions, newest first"""
    return services.intake.list_for_owner(db, current_user)

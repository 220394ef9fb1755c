from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from ..dependencies import get_current_principal, get_db, get_services
from ..schemas.audit import AuditRecordResponse
from ..schemas.gallery import ReindexResponse
from ..schemas.submission import (
    AdminSubmissionResponse,
    BulkDecisionRequest,
    BulkDecisionResult,
    DecisionRequest,
    SubmissionStats,
)
from ..services import gallery
from ..services.audit_log import AuditLog
from ..services.authorization import Capability, Principal, authorize

router = APIRouter(prefix="/admin", tags=["Moderation"])


@router.get("/submissions", response_model=List[AdminSubmissionResponse])
def get_review_queue(
    status: Optional[str] = "pending",
    current_user: Optional[Principal] = Depends(get_current_principal),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """Get submissions by status (pending by default)"""
    return services.moderation.list_by_status(db, current_user, status or None)


@router.get("/submissions/stats", response_model=SubmissionStats)
def get_submission_stats(
    current_user: Optional[Principal] = Depends(get_current_principal),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """Count submissions per moderation status"""
    return services.moderation.stats(db, current_user)


@router.post(
    "/submissions/{submission_id}/decision",
    response_model=AdminSubmissionResponse,
)
def decide_submission(
    submission_id: str,
    payload: DecisionRequest,
    current_user: Optional[Principal] = Depends(get_current_principal),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """Approve or reject a pending submission"""
    return services.moderation.decide(
        db,
        submission_id,
        payload.decision,
        payload.reason,
        current_user,
        admin_notes=payload.admin_notes,
    )


@router.post(
    "/submissions/bulk-decision", response_model=List[BulkDecisionResult]
)
def bulk_decide_submissions(
    payload: BulkDecisionRequest,
    current_user: Optional[Principal] = Depends(get_current_principal),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """Apply one decision to several pending submissions"""
    return services.moderation.decide_many(
        db,
        payload.submission_ids,
        payload.decision,
        payload.reason,
        current_user,
        admin_notes=payload.admin_notes,
    )


@router.get("/audit", response_model=List[AuditRecordResponse])
def get_audit_records(
    kind: Optional[List[str]] = Query(None),
    since: Optional[datetime] = None,
    limit: int = Query(50, ge=1, le=500),
    current_user: Optional[Principal] = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Get audit records (decisions and email logs), newest first"""
    authorize(current_user, Capability.MODERATE)
    return AuditLog(db).query(kind=kind or None, since=since, limit=limit)


@router.post("/gallery/reindex", response_model=ReindexResponse)
def reindex_gallery(
    current_user: Optional[Principal] = Depends(get_current_principal),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """Republish every approved photo to the search service"""
    authorize(current_user, Capability.MODERATE)
    return gallery.reindex(db, services.indexer)

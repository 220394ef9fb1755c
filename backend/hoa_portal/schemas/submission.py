from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional


class SubmissionCreate(BaseModel):
    category: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    media_ref: Optional[str] = None


class SubmissionResponse(BaseModel):
    id: str
    owner_id: str
    category: str
    title: str
    description: Optional[str] = None
    media_ref: str
    status: str
    rejection_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AdminSubmissionResponse(SubmissionResponse):
    admin_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None


class DecisionRequest(BaseModel):
    decision: str
    reason: Optional[str] = None
    admin_notes: Optional[str] = None


class BulkDecisionRequest(DecisionRequest):
    submission_ids: List[str]


class BulkDecisionResult(BaseModel):
    submission_id: str
    ok: bool
    status: Optional[str] = None
    error: Optional[str] = None
    detail: Optional[str] = None


class SubmissionStats(BaseModel):
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    total: int = 0

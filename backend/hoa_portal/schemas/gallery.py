from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class GalleryEntry(BaseModel):
    submission_id: str
    title: str
    description: Optional[str] = None
    category: str
    media_ref: str
    owner_id: str
    approved_at: Optional[datetime] = None

    @classmethod
    def from_submission(cls, submission) -> "GalleryEntry":
        return cls(
            submission_id=submission.id,
            title=submission.title,
            description=submission.description,
            category=submission.category,
            media_ref=submission.media_ref,
            owner_id=submission.owner_id,
            approved_at=submission.reviewed_at,
        )


class ReindexResponse(BaseModel):
    published: int
    total: int

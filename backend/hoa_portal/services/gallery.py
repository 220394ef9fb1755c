import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.models import Submission, SubmissionStatus
from ..schemas.gallery import GalleryEntry
from .search_indexer import SearchIndexerBridge

logger = logging.getLogger(__name__)


def _approved(db: Session, category: Optional[str] = None):
    query = db.query(Submission).filter(
        Submission.status == SubmissionStatus.APPROVED
    )
    if category:
        query = query.filter(Submission.category == category)
    return query.order_by(
        Submission.reviewed_at.desc(), Submission.created_at.desc()
    )


def list_approved(db: Session, category: Optional[str] = None) -> List[GalleryEntry]:
    """Approved submissions, most recently approved first"""
    return [GalleryEntry.from_submission(s) for s in _approved(db, category).all()]


def search(
    db: Session,
    bridge: SearchIndexerBridge,
    query: str,
    category: Optional[str] = None,
) -> List[GalleryEntry]:
    """Search results limited to submissions that are approved right now.

    The service's ranking order is kept; stale hits are dropped.
    """
    hits = bridge.search(query, category=category)
    if not hits:
        return []

    ids = {hit.submission_id for hit in hits}
    approved = {
        s.id: s
        for s in db.query(Submission)
        .filter(
            Submission.id.in_(ids),
            Submission.status == SubmissionStatus.APPROVED,
        )
        .all()
    }

    results = []
    seen = set()
    for hit in hits:
        submission = approved.get(hit.submission_id)
        if submission is None or hit.submission_id in seen:
            continue
        seen.add(hit.submission_id)
        results.append(GalleryEntry.from_submission(submission))
    return results


def reindex(db: Session, bridge: SearchIndexerBridge) -> dict:
    """Republish every approved submission to the search service"""
    submissions = _approved(db).all()
    published = 0
    for submission in submissions:
        if bridge.publish(GalleryEntry.from_submission(submission)):
            submission.indexed_at = datetime.utcnow()
            published += 1
    db.commit()
    logger.info("Reindexed %d of %d approved submissions", published, len(submissions))
    return {"published": published, "total": len(submissions)}

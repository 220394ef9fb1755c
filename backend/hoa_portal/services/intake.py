import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..errors import UnauthorizedError, ValidationError
from ..models.models import Submission, SubmissionStatus, User
from .authorization import Principal

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000


class SubmissionIntake:
    def __init__(self, categories: Iterable[str]):
        # Case-insensitive lookup that keeps the configured spelling
        self.categories = {c.strip().lower(): c.strip() for c in categories if c.strip()}

    def submit(
        self,
        db: Session,
        owner: Optional[Principal],
        category: Optional[str],
        title: Optional[str],
        description: Optional[str],
        media_ref: Optional[str],
    ) -> Submission:
        """Create a pending submission for ``owner``"""
        if owner is None:
            raise UnauthorizedError("Authentication required")
        user = db.query(User).filter(User.user_id == owner.user_id).first()
        if not user:
            raise UnauthorizedError("Unknown user")

        title = (title or "").strip()
        media_ref = (media_ref or "").strip()
        description = (description or "").strip() or None

        if not title:
            raise ValidationError("Title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters")
        if not media_ref:
            raise ValidationError("Media reference is required")
        if description and len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters"
            )

        canonical = self.categories.get((category or "").strip().lower())
        if canonical is None:
            raise ValidationError(f"Unknown category: {category!r}")

        submission = Submission(
            owner_id=user.user_id,
            category=canonical,
            title=title,
            description=description,
            media_ref=media_ref,
            status=SubmissionStatus.PENDING,
        )
        db.add(submission)
        db.commit()
        db.refresh(submission)

        logger.info(
            "Submission %s created by %s in %s", submission.id, user.user_id, canonical
        )
        return submission

    def list_for_owner(self, db: Session, owner: Optional[Principal]) -> List[Submission]:
        if owner is None:
            raise UnauthorizedError("Authentication required")
        return (
            db.query(Submission)
            .filter(Submission.owner_id == owner.user_id)
            .order_by(Submission.created_at.desc())
            .all()
        )

"""
Moderation state machine for photo submissions.

    pending ──approve──> approved   (terminal)
       └─────reject────> rejected   (terminal)

A decision claims the submission with a single conditional UPDATE that only
matches while the row is still ``pending``; of two concurrent decisions on the
same submission exactly one matches and the other fails with
``InvalidTransitionError``. The winning transaction also writes the
``moderation_decision`` audit record and the outbox row for the owner's
notification, so a decision that does not commit leaves no job behind.

After the commit the notification job and, for approvals, a search publish
job are handed to the background worker. Neither step can undo or delay the
decision: failures there are logged and recovered by the worker.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..errors import (
    InvalidTransitionError,
    NotFoundError,
    PortalError,
    ValidationError,
)
from ..models.models import (
    AuditKind,
    NotificationOutbox,
    OutboxStatus,
    Submission,
    SubmissionStatus,
    User,
)
from ..notifications.jobs import PublishJob
from ..notifications.templates import build_job
from .audit_log import AuditLog
from .authorization import Capability, Principal, authorize

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


TARGET_STATUS = {
    Decision.APPROVE: SubmissionStatus.APPROVED,
    Decision.REJECT: SubmissionStatus.REJECTED,
}


class ModerationService:
    def __init__(
        self,
        notifier,
        portal_name: str = "Sandpiper Run HOA",
    ):
        self.notifier = notifier
        self.portal_name = portal_name

    def decide(
        self,
        db: Session,
        submission_id: str,
        decision,
        reason: Optional[str],
        actor: Optional[Principal],
        admin_notes: Optional[str] = None,
    ) -> Submission:
        """Approve or reject a pending submission"""
        authorize(actor, Capability.MODERATE)

        try:
            decision = Decision(decision)
        except ValueError:
            raise ValidationError(f"Unknown decision: {decision!r}")

        if decision == Decision.REJECT:
            reason = (reason or "").strip()
            if not reason:
                raise ValidationError("A reason is required to reject a submission")
        else:
            reason = None
        admin_notes = (admin_notes or "").strip() or None

        target = TARGET_STATUS[decision]
        now = datetime.utcnow()

        try:
            claimed = (
                db.query(Submission)
                .filter(
                    Submission.id == submission_id,
                    Submission.status == SubmissionStatus.PENDING,
                )
                .update(
                    {
                        Submission.status: target,
                        Submission.rejection_reason: reason,
                        Submission.admin_notes: admin_notes,
                        Submission.reviewed_by: actor.user_id,
                        Submission.reviewed_at: now,
                        Submission.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            if claimed:
                submission, job = self._record_decision(
                    db, submission_id, decision, actor, admin_notes
                )
                db.commit()
        except Exception:
            db.rollback()
            logger.exception("Moderation decision on %s failed", submission_id)
            raise

        if not claimed:
            db.rollback()
            exists = db.query(Submission.id).filter(Submission.id == submission_id).first()
            if not exists:
                raise NotFoundError("Submission not found")
            raise InvalidTransitionError(
                f"Submission {submission_id} has already been moderated"
            )

        logger.info(
            "Submission %s %s by %s", submission_id, target, actor.user_id
        )

        self._hand_off(job)
        if target == SubmissionStatus.APPROVED:
            self._hand_off(PublishJob(submission.id))
        return submission

    def decide_many(
        self,
        db: Session,
        submission_ids: Sequence[str],
        decision,
        reason: Optional[str],
        actor: Optional[Principal],
        admin_notes: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Bulk decision; each submission succeeds or fails on its own"""
        authorize(actor, Capability.MODERATE)

        results = []
        for submission_id in dict.fromkeys(submission_ids):
            try:
                submission = self.decide(
                    db, submission_id, decision, reason, actor, admin_notes
                )
            except PortalError as e:
                results.append(
                    {
                        "submission_id": submission_id,
                        "ok": False,
                        "error": type(e).__name__,
                        "detail": e.message,
                    }
                )
            else:
                results.append(
                    {
                        "submission_id": submission_id,
                        "ok": True,
                        "status": submission.status,
                    }
                )
        return results

    def list_by_status(
        self, db: Session, actor: Optional[Principal], status: Optional[str] = None
    ) -> List[Submission]:
        authorize(actor, Capability.MODERATE)
        query = db.query(Submission)
        if status:
            if status not in SubmissionStatus.ALL:
                raise ValidationError(f"Unknown status: {status!r}")
            query = query.filter(Submission.status == status)
        return query.order_by(Submission.created_at.desc()).all()

    def stats(self, db: Session, actor: Optional[Principal]) -> Dict[str, int]:
        authorize(actor, Capability.MODERATE)
        counts = dict.fromkeys(SubmissionStatus.ALL, 0)
        rows = (
            db.query(Submission.status, func.count(Submission.id))
            .group_by(Submission.status)
            .all()
        )
        for status, count in rows:
            counts[status] = count
        counts["total"] = sum(counts[s] for s in SubmissionStatus.ALL)
        return counts

    def _record_decision(self, db, submission_id, decision, actor, admin_notes):
        submission = (
            db.query(Submission)
            .populate_existing()
            .filter(Submission.id == submission_id)
            .one()
        )
        owner = db.query(User).filter(User.user_id == submission.owner_id).one()
        job = build_job(
            submission,
            recipient=owner.email,
            owner_name=owner.display_name,
            portal_name=self.portal_name,
        )

        AuditLog(db).append(
            AuditKind.MODERATION_DECISION,
            {
                "decision": decision.value,
                "previous_status": SubmissionStatus.PENDING,
                "new_status": submission.status,
                "rejection_reason": submission.rejection_reason,
                "admin_notes": admin_notes,
                "notification_key": job.idempotency_key,
            },
            idempotency_key=job.idempotency_key,
            submission_id=submission.id,
            actor_id=actor.user_id,
            commit=False,
        )
        db.add(
            NotificationOutbox(
                idempotency_key=job.idempotency_key,
                submission_id=submission.id,
                recipient=job.recipient,
                kind=job.kind.value,
                subject=job.subject,
                body_html=job.body_html,
                status=OutboxStatus.QUEUED,
            )
        )
        return submission, job

    def _hand_off(self, job) -> None:
        try:
            self.notifier.submit(job)
        except Exception:
            # Outbox rows and unindexed approvals are recovered by the worker
            logger.exception(
                "Could not hand off %s for submission %s",
                type(job).__name__,
                job.submission_id,
            )

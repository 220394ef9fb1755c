"""
Background notification worker.

Moderation decisions hand their follow-up work to this worker and return
immediately: the owner's NotificationJob and, for approvals, a PublishJob for
the search index. Jobs run one at a time on a daemon thread.

A notification is only dispatched after the worker claims its outbox row with
a conditional UPDATE (``queued`` -> ``sending``), so two workers sharing the
database never dispatch the same row at once. A claim that is not settled
within ``claim_timeout`` seconds (the claiming process died) may be taken
over. When the queue is idle the worker re-enqueues queued rows and expired
claims, so a job whose hand-off was lost is delivered later instead of being
dropped. Approvals that never reached the search index are re-enqueued when
the worker starts.
"""

import logging
import threading
from datetime import datetime, timedelta
from queue import Empty, Queue
from typing import List, Optional, Union

from sqlalchemy import and_, or_

from ..models.models import NotificationOutbox, OutboxStatus, Submission, SubmissionStatus
from ..schemas.gallery import GalleryEntry
from ..services.search_indexer import SearchIndexerBridge
from .dispatcher import DispatchOutcome, NotificationDispatcher
from .jobs import NotificationJob, PublishJob

logger = logging.getLogger(__name__)

Job = Union[NotificationJob, PublishJob]


def _job_key(job: Job) -> str:
    if isinstance(job, PublishJob):
        return job.key
    return job.idempotency_key


class NotificationWorker:
    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        session_factory,
        indexer: Optional[SearchIndexerBridge] = None,
        poll_interval: float = 1.0,
        recovery_batch: int = 50,
        claim_timeout: float = 300.0,
    ):
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.indexer = indexer
        self.poll_interval = poll_interval
        self.recovery_batch = recovery_batch
        self.claim_timeout = claim_timeout
        self._queue: Queue = Queue()
        self._pending = set()
        self._lock = threading.Lock()
        self._worker_thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def submit(self, job: Job) -> bool:
        """Accept a job. Returns False if it is already pending."""
        key = _job_key(job)
        with self._lock:
            if key in self._pending:
                return False
            self._pending.add(key)
        self._queue.put(job)
        logger.debug("Queued job %s", key[:20])
        return True

    # =========================================================================
    # PROCESSING
    # =========================================================================

    def process(self, job: Job) -> Optional[DispatchOutcome]:
        """Run one job; returns the dispatch outcome for notifications."""
        try:
            if isinstance(job, PublishJob):
                self._publish(job)
                return None
            return self._deliver(job)
        finally:
            with self._lock:
                self._pending.discard(_job_key(job))

    def drain(self) -> List[DispatchOutcome]:
        """Process everything currently queued on the calling thread"""
        outcomes = []
        while True:
            try:
                job = self._queue.get_nowait()
            except Empty:
                break
            outcome = self.process(job)
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    def _deliver(self, job: NotificationJob) -> Optional[DispatchOutcome]:
        if not self._claim(job):
            logger.debug("Notification %s claimed elsewhere, skipping", job.idempotency_key[:12])
            return None

        try:
            outcome = self.dispatcher.dispatch(job)
        except Exception:
            # Outcome could not be recorded; the claim expires and the row is retried
            logger.exception(
                "Dispatch of notification %s failed, will retry on recovery",
                job.idempotency_key[:12],
            )
            return None

        self._settle(job, outcome)
        return outcome

    def _claimable(self, now: datetime):
        stale = now - timedelta(seconds=self.claim_timeout)
        return or_(
            NotificationOutbox.status == OutboxStatus.QUEUED,
            and_(
                NotificationOutbox.status == OutboxStatus.SENDING,
                NotificationOutbox.updated_at < stale,
            ),
        )

    def _claim(self, job: NotificationJob) -> bool:
        now = datetime.utcnow()
        db = self.session_factory()
        try:
            claimed = (
                db.query(NotificationOutbox)
                .filter(
                    NotificationOutbox.idempotency_key == job.idempotency_key,
                    self._claimable(now),
                )
                .update(
                    {
                        NotificationOutbox.status: OutboxStatus.SENDING,
                        NotificationOutbox.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        return claimed == 1

    def recover_pending(self) -> int:
        """Re-enqueue outbox rows that never reached a terminal outcome"""
        db = self.session_factory()
        try:
            rows = (
                db.query(NotificationOutbox)
                .filter(self._claimable(datetime.utcnow()))
                .order_by(NotificationOutbox.created_at.asc())
                .limit(self.recovery_batch)
                .all()
            )
            jobs = [NotificationJob.from_outbox(row) for row in rows]
        finally:
            db.close()

        recovered = sum(1 for job in jobs if self.submit(job))
        if recovered:
            logger.info("Recovered %d queued notification(s) from the outbox", recovered)
        return recovered

    def recover_unindexed(self) -> int:
        """Re-enqueue approved submissions that never reached the search index"""
        if self.indexer is None:
            return 0
        db = self.session_factory()
        try:
            ids = [
                row.id
                for row in db.query(Submission.id)
                .filter(
                    Submission.status == SubmissionStatus.APPROVED,
                    Submission.indexed_at.is_(None),
                )
                .order_by(Submission.reviewed_at.asc())
                .limit(self.recovery_batch)
                .all()
            ]
        finally:
            db.close()

        recovered = sum(1 for submission_id in ids if self.submit(PublishJob(submission_id)))
        if recovered:
            logger.info("Re-queued %d approved submission(s) for indexing", recovered)
        return recovered

    def _settle(self, job: NotificationJob, outcome: DispatchOutcome) -> None:
        db = self.session_factory()
        try:
            row = (
                db.query(NotificationOutbox)
                .filter(NotificationOutbox.idempotency_key == job.idempotency_key)
                .first()
            )
            if row is None:
                return
            row.status = OutboxStatus.SENT if outcome.sent else OutboxStatus.FAILED
            if not outcome.duplicate:
                row.attempts = (row.attempts or 0) + outcome.attempts
            row.updated_at = datetime.utcnow()
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to settle outbox row %s", job.idempotency_key[:12])
        finally:
            db.close()

    def _publish(self, job: PublishJob) -> bool:
        if self.indexer is None:
            return False
        db = self.session_factory()
        try:
            submission = (
                db.query(Submission)
                .filter(
                    Submission.id == job.submission_id,
                    Submission.status == SubmissionStatus.APPROVED,
                )
                .first()
            )
            if submission is None:
                return False
            published = self.indexer.publish(GalleryEntry.from_submission(submission))
            if published:
                submission.indexed_at = datetime.utcnow()
                db.commit()
            return published
        except Exception:
            db.rollback()
            logger.exception("Indexing submission %s failed", job.submission_id)
            return False
        finally:
            db.close()

    # =========================================================================
    # BACKGROUND WORKER
    # =========================================================================

    def start(self) -> None:
        """Start the background delivery thread."""
        if self._running:
            return

        try:
            self.recover_unindexed()
        except Exception:
            logger.exception("Index recovery failed")

        self._running = True
        self._worker_thread = threading.Thread(
            target=self._worker_loop,
            daemon=True,
            name="notification-worker",
        )
        self._worker_thread.start()
        logger.info("Notification worker started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the background delivery thread."""
        self._running = False
        if self._worker_thread:
            self._worker_thread.join(timeout=timeout)
            self._worker_thread = None
        logger.info("Notification worker stopped")

    def _worker_loop(self) -> None:
        while self._running:
            try:
                job = self._queue.get(timeout=self.poll_interval)
            except Empty:
                try:
                    self.recover_pending()
                except Exception:
                    logger.exception("Outbox recovery failed")
                continue
            try:
                self.process(job)
            except Exception:
                logger.exception("Job %s failed", _job_key(job)[:20])

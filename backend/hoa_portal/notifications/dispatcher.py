"""
Notification dispatcher.

Sends one NotificationJob through the email transport, retrying transient
failures with bounded exponential backoff, and records exactly one terminal
outcome (``email_sent`` or ``email_error``) per idempotency key in the audit
log.
"""

import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError

from ..errors import DeliveryError
from ..models.models import AuditKind
from ..services.audit_log import AuditLog
from .jobs import NotificationJob
from .transport import EmailMessage, EmailTransport

logger = logging.getLogger(__name__)


class DispatchStatus(str, Enum):
    SENT = "sent"
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"


@dataclass
class DispatchOutcome:
    status: DispatchStatus
    idempotency_key: str
    attempts: int = 0
    message_id: Optional[str] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    exhausted: bool = False
    duplicate: bool = False

    @property
    def sent(self) -> bool:
        return self.status == DispatchStatus.SENT


@dataclass
class RetryPolicy:
    """Bounded exponential backoff.

    Attributes:
        max_attempts: Total transport calls allowed, including the first.
        base_delay: Delay before the second attempt, in seconds.
        max_delay: Cap on any single delay.
        multiplier: Growth factor between consecutive delays.
        jitter: Random spread as a fraction of the delay (0-1).
    """
    max_attempts: int = 5
    base_delay: float = 2.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: float = 0.1

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-indexed)."""
        delay = min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)
        if self.jitter > 0:
            spread = delay * self.jitter
            delay = delay + random.uniform(-spread, spread)
        return min(max(0.0, delay), self.max_delay)


class NotificationDispatcher:
    def __init__(
        self,
        transport: EmailTransport,
        session_factory,
        retry_policy: Optional[RetryPolicy] = None,
        sender: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.session_factory = session_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self.sender = sender
        self._sleep = sleep

    def attempt(self, job: NotificationJob) -> DispatchOutcome:
        """Make a single transport call and classify the result"""
        message = EmailMessage(
            to=[job.recipient],
            subject=job.subject,
            html=job.body_html,
            from_email=self.sender,
            idempotency_key=job.idempotency_key,
        )
        try:
            message_id = self.transport.send(message)
        except DeliveryError as e:
            return DispatchOutcome(
                status=DispatchStatus.TRANSIENT_FAILURE
                if e.retryable
                else DispatchStatus.PERMANENT_FAILURE,
                idempotency_key=job.idempotency_key,
                error=e.detail,
                status_code=e.status_code,
            )
        except Exception as e:
            # The provider may already have accepted the message; never resend
            logger.exception(
                "Unexpected error from %s transport for %s",
                self.transport.provider_name,
                job.idempotency_key[:12],
            )
            return DispatchOutcome(
                status=DispatchStatus.PERMANENT_FAILURE,
                idempotency_key=job.idempotency_key,
                error=f"{type(e).__name__}: {e}",
            )
        return DispatchOutcome(
            status=DispatchStatus.SENT,
            idempotency_key=job.idempotency_key,
            message_id=message_id,
        )

    def dispatch(self, job: NotificationJob) -> DispatchOutcome:
        """Deliver ``job`` and record its single terminal outcome.

        A key that already has an ``email_sent`` or ``email_error`` record is
        not sent again; the recorded outcome is returned with
        ``duplicate=True``. Audit write failures propagate.
        """
        previous = self._recorded_outcome(job.idempotency_key)
        if previous is not None:
            logger.info(
                "Notification %s already recorded as %s, skipping",
                job.idempotency_key[:12],
                previous.status.value,
            )
            return previous

        policy = self.retry_policy
        outcome = None
        for attempt in range(1, policy.max_attempts + 1):
            outcome = self.attempt(job)
            outcome.attempts = attempt

            if outcome.status != DispatchStatus.TRANSIENT_FAILURE:
                break

            if attempt < policy.max_attempts:
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Transient failure sending %s to %s (attempt %d/%d), retrying in %.1fs: %s",
                    job.kind.value,
                    job.recipient,
                    attempt,
                    policy.max_attempts,
                    delay,
                    outcome.error,
                )
                self._sleep(delay)
        else:
            # Retries exhausted: the failure becomes terminal
            outcome = DispatchOutcome(
                status=DispatchStatus.PERMANENT_FAILURE,
                idempotency_key=job.idempotency_key,
                attempts=policy.max_attempts,
                error=outcome.error,
                status_code=outcome.status_code,
                exhausted=True,
            )

        return self._record(job, outcome)

    def _recorded_outcome(self, key: str) -> Optional[DispatchOutcome]:
        db = self.session_factory()
        try:
            record = AuditLog(db).find_terminal_email(key)
        finally:
            db.close()
        if record is None:
            return None
        return _outcome_from_record(record)

    def _record(self, job: NotificationJob, outcome: DispatchOutcome) -> DispatchOutcome:
        if outcome.sent:
            kind = AuditKind.EMAIL_SENT
            payload = {
                "idempotency_key": job.idempotency_key,
                "recipient": job.recipient,
                "template": job.kind.value,
                "subject": job.subject,
                "message_id": outcome.message_id,
                "attempts": outcome.attempts,
                "provider": self.transport.provider_name,
            }
            logger.info(
                "Sent %s notification for submission %s to %s (message_id=%s)",
                job.kind.value,
                job.submission_id,
                job.recipient,
                outcome.message_id,
            )
        else:
            kind = AuditKind.EMAIL_ERROR
            payload = {
                "idempotency_key": job.idempotency_key,
                "recipient": job.recipient,
                "template": job.kind.value,
                "subject": job.subject,
                "error": outcome.error,
                "status_code": outcome.status_code,
                "attempts": outcome.attempts,
                "exhausted": outcome.exhausted,
                "provider": self.transport.provider_name,
            }
            logger.error(
                "Failed to send %s notification for submission %s to %s after %d attempt(s): %s",
                job.kind.value,
                job.submission_id,
                job.recipient,
                outcome.attempts,
                outcome.error,
            )

        db = self.session_factory()
        try:
            AuditLog(db).append(
                kind,
                payload,
                idempotency_key=job.idempotency_key,
                submission_id=job.submission_id,
            )
        except IntegrityError:
            # Another dispatcher recorded this key first; its record stands
            existing = AuditLog(db).find_terminal_email(job.idempotency_key)
            if existing is None:
                raise
            return _outcome_from_record(existing)
        finally:
            db.close()

        return outcome


def _outcome_from_record(record) -> DispatchOutcome:
    payload = record.payload or {}
    if record.kind == AuditKind.EMAIL_SENT:
        status = DispatchStatus.SENT
    else:
        status = DispatchStatus.PERMANENT_FAILURE
    return DispatchOutcome(
        status=status,
        idempotency_key=record.idempotency_key,
        attempts=payload.get("attempts", 0),
        message_id=payload.get("message_id"),
        error=payload.get("error"),
        status_code=payload.get("status_code"),
        exhausted=bool(payload.get("exhausted")),
        duplicate=True,
    )

import hashlib
from dataclasses import dataclass
from enum import Enum


class TemplateKind(str, Enum):
    APPROVAL = "approval"
    REJECTION = "rejection"


def idempotency_key(submission_id: str, target_status: str, recipient: str) -> str:
    """Stable key for the one notification a transition may produce"""
    raw = f"{submission_id}:{target_status}:{recipient.strip().lower()}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class NotificationJob:
    idempotency_key: str
    submission_id: str
    recipient: str
    kind: TemplateKind
    subject: str
    body_html: str

    @classmethod
    def from_outbox(cls, row) -> "NotificationJob":
        return cls(
            idempotency_key=row.idempotency_key,
            submission_id=row.submission_id,
            recipient=row.recipient,
            kind=TemplateKind(row.kind),
            subject=row.subject,
            body_html=row.body_html,
        )


@dataclass(frozen=True)
class PublishJob:
    """Make an approved submission searchable"""

    submission_id: str

    @property
    def key(self) -> str:
        return f"publish:{self.submission_id}"

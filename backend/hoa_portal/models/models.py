import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ..database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class SubmissionStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    ALL = (PENDING, APPROVED, REJECTED)


class AuditKind:
    EMAIL_SENT = "email_sent"
    EMAIL_ERROR = "email_error"
    MODERATION_DECISION = "moderation_decision"

    ALL = (EMAIL_SENT, EMAIL_ERROR, MODERATION_DECISION)


class OutboxStatus:
    QUEUED = "queued"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


class User(Base):
    __tablename__ = "users"

    user_id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(320), unique=True, nullable=False)
    display_name = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    submissions = relationship(
        "Submission",
        back_populates="owner",
        foreign_keys="Submission.owner_id",
    )
    admin = relationship("AdminUser", back_populates="user", uselist=False)


class AdminUser(Base):
    __tablename__ = "admin_users"

    admin_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        String(36), ForeignKey("users.user_id"), unique=True, nullable=False
    )
    role = Column(String(30), nullable=False, default="admin")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="admin")


class Submission(Base):
    __tablename__ = "photo_submissions"

    id = Column(String(36), primary_key=True, default=_uuid)
    owner_id = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    category = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    media_ref = Column(String(1024), nullable=False)  # blob storage URL
    status = Column(
        String(20), nullable=False, default=SubmissionStatus.PENDING
    )
    rejection_reason = Column(Text)
    admin_notes = Column(Text)
    reviewed_by = Column(String(36), ForeignKey("users.user_id"))
    reviewed_at = Column(DateTime)
    indexed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    owner = relationship(
        "User", back_populates="submissions", foreign_keys=[owner_id]
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_submission_status",
        ),
        CheckConstraint(
            "(status = 'rejected' AND rejection_reason IS NOT NULL"
            " AND rejection_reason <> '')"
            " OR (status <> 'rejected' AND rejection_reason IS NULL)",
            name="ck_rejection_reason_iff_rejected",
        ),
        Index("ix_submissions_owner", "owner_id", "created_at"),
        Index("ix_submissions_status", "status", "created_at"),
    )


class NotificationOutbox(Base):
    __tablename__ = "notification_outbox"

    outbox_id = Column(Integer, primary_key=True, autoincrement=True)
    idempotency_key = Column(String(64), unique=True, nullable=False)
    submission_id = Column(
        String(36), ForeignKey("photo_submissions.id"), nullable=False
    )
    recipient = Column(String(320), nullable=False)
    kind = Column(String(20), nullable=False)
    subject = Column(String(255), nullable=False)
    body_html = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=OutboxStatus.QUEUED)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


class AuditRecord(Base):
    __tablename__ = "audit_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(30), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    idempotency_key = Column(String(64))
    submission_id = Column(String(36))
    actor_id = Column(String(36))
    payload = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint(
            "kind", "idempotency_key", name="unique_kind_idempotency_key"
        ),
        Index("ix_audit_kind_created", "kind", "created_at"),
    )

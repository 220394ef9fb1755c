"""Append-only audit log.

Holds moderation decisions and the outcome of every notification dispatch.
Records are only ever inserted; there is no API to change or remove one.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from ..errors import ValidationError
from ..models.models import AuditKind, AuditRecord

logger = logging.getLogger(__name__)

MAX_QUERY_LIMIT = 500


class AuditLog:
    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        kind: str,
        payload: Dict[str, Any],
        idempotency_key: Optional[str] = None,
        submission_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        commit: bool = True,
    ) -> AuditRecord:
        """Write one record.

        With ``commit=False`` the record joins the caller's transaction and is
        only flushed. Any database error propagates to the caller.
        """
        if kind not in AuditKind.ALL:
            raise ValidationError(f"Unknown audit kind: {kind}")

        record = AuditRecord(
            kind=kind,
            payload=dict(payload),
            idempotency_key=idempotency_key,
            submission_id=submission_id,
            actor_id=actor_id,
        )
        self.db.add(record)
        try:
            if commit:
                self.db.commit()
            else:
                self.db.flush()
        except Exception:
            if commit:
                self.db.rollback()
            logger.exception("Failed to append %s audit record", kind)
            raise

        logger.debug("Audit %s recorded (key=%s)", kind, idempotency_key)
        return record

    def query(
        self,
        kind: Optional[Union[str, Iterable[str]]] = None,
        since: Optional[datetime] = None,
        limit: int = 50,
    ) -> List[AuditRecord]:
        """Records newest first, optionally filtered by kind and start time"""
        limit = max(1, min(limit, MAX_QUERY_LIMIT))
        query = self.db.query(AuditRecord)

        if kind is not None:
            kinds = [kind] if isinstance(kind, str) else list(kind)
            unknown = set(kinds) - set(AuditKind.ALL)
            if unknown:
                raise ValidationError(
                    f"Unknown audit kind: {', '.join(sorted(unknown))}"
                )
            query = query.filter(AuditRecord.kind.in_(kinds))
        if since is not None:
            query = query.filter(AuditRecord.created_at >= since)

        return (
            query.order_by(AuditRecord.created_at.desc(), AuditRecord.id.desc())
            .limit(limit)
            .all()
        )

    def find_terminal_email(self, idempotency_key: str) -> Optional[AuditRecord]:
        """The email_sent or email_error record for a notification, if any"""
        return (
            self.db.query(AuditRecord)
            .filter(
                AuditRecord.idempotency_key == idempotency_key,
                AuditRecord.kind.in_(
                    [AuditKind.EMAIL_SENT, AuditKind.EMAIL_ERROR]
                ),
            )
            .order_by(AuditRecord.id.asc())
            .first()
        )

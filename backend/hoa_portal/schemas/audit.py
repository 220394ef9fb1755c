from pydantic import BaseModel
from datetime import datetime
from typing import Any, Dict, Optional


class AuditRecordResponse(BaseModel):
    id: int
    kind: str
    created_at: datetime
    idempotency_key: Optional[str] = None
    submission_id: Optional[str] = None
    actor_id: Optional[str] = None
    payload: Dict[str, Any]

    class Config:
        from_attributes = True

"""Append-only audit trail."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

SYSTEM_ACTOR = "system"


class AuditEvent(SQLModel, table=True):
    """Immutable record of one write-side action. Never updated."""

    id: Optional[int] = Field(default=None, primary_key=True)
    actor: str  # user id or "system"
    actor_email: Optional[str] = None
    action: str  # "sync", "create", "update", ...
    object_type: str  # "integration", "user", ...
    object_id: str
    object_name: Optional[str] = None
    details_json: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)

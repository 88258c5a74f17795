"""Integration connection and sync run models."""
from datetime import datetime
from typing import List, Optional

from sqlmodel import Field, Relationship, SQLModel


class IntegrationConnection(SQLModel, table=True):
    """One row per external provider integration (at most one per type)."""

    id: Optional[int] = Field(default=None, primary_key=True)
    type: str = Field(unique=True, index=True)  # "okta"
    name: str
    status: str = "pending"  # "pending", "connected", "error", "disconnected"

    # Only advanced by a completed run
    last_sync_at: Optional[datetime] = None

    # Opaque provider-specific settings blob
    config_json: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    sync_runs: List["SyncRun"] = Relationship(back_populates="connection")


class SyncRun(SQLModel, table=True):
    """Records each sync invocation for audit and debugging."""

    id: Optional[int] = Field(default=None, primary_key=True)
    connection_id: int = Field(foreign_key="integrationconnection.id", index=True)
    status: str = "running"  # "running", "completed", "failed"
    started_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    finished_at: Optional[datetime] = None  # set iff status is terminal
    duration_ms: Optional[int] = None

    # Counters, written once when the run finishes
    records_processed: int = 0
    records_read: int = 0
    users_created: int = 0
    users_updated: int = 0
    apps_created: int = 0
    apps_updated: int = 0
    access_records_created: int = 0

    error_message: Optional[str] = None
    error_summary: Optional[str] = None

    correlation_id: Optional[str] = None
    is_partial: bool = False
    resume_token: Optional[str] = None  # informational; runs never resume

    connection: Optional[IntegrationConnection] = Relationship(back_populates="sync_runs")

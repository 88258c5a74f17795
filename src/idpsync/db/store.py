"""
Storage port for the sync engine and its SQLModel implementation.

The sync service only talks to a SyncStore; which adapter backs it is
decided by the composition root (idpsync.okta.actions). SqlSyncStore
opens one short session per operation and commits every upsert on its
own, so entities written before a failure stay committed.
"""
import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from idpsync.models.audit import AuditEvent
from idpsync.models.directory import Application, User, UserAppAccess
from idpsync.models.integration import IntegrationConnection, SyncRun


class SyncStore(Protocol):
    def find_connection(self, provider_type: str) -> Optional[IntegrationConnection]: ...

    def get_or_create_connection(self, provider_type: str, name: str) -> IntegrationConnection: ...

    def update_connection(
        self, connection_id: int, *, status: str, last_sync_at: Optional[datetime] = None
    ) -> IntegrationConnection: ...

    def create_run(self, connection_id: int, correlation_id: Optional[str] = None) -> SyncRun: ...

    def finish_run(self, run_id: int, *, status: str, counters: Dict[str, int], **fields: Any) -> SyncRun: ...

    def find_active_run(self, connection_id: int, since: datetime) -> Optional[SyncRun]: ...

    def abandon_stale_runs(self, connection_id: int, before: datetime) -> int: ...

    def recent_runs(self, connection_id: int, limit: int = 10) -> List[SyncRun]: ...

    def run_totals(self, connection_id: int) -> Dict[str, int]: ...

    def find_user_by_email(self, email: str) -> Optional[User]: ...

    def upsert_user(self, fields: Dict[str, Any]) -> Tuple[User, bool]: ...

    def find_application(self, name: str, source: str) -> Optional[Application]: ...

    def upsert_application(self, fields: Dict[str, Any]) -> Tuple[Application, bool]: ...

    def upsert_assignment(
        self, user_id: int, application_id: int, fields: Dict[str, Any]
    ) -> Tuple[UserAppAccess, bool]: ...

    def append_audit_event(self, **event: Any) -> AuditEvent: ...


class SqlSyncStore:
    """SyncStore backed by a SQLAlchemy engine."""

    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
        """
        self.engine = engine

    # ─── Connections ──────────────────────────────────────────────────────────

    def find_connection(self, provider_type: str) -> Optional[IntegrationConnection]:
        with Session(self.engine) as s:
            return s.exec(
                select(IntegrationConnection).where(IntegrationConnection.type == provider_type)
            ).first()

    def get_or_create_connection(self, provider_type: str, name: str) -> IntegrationConnection:
        """Idempotent get-or-create keyed by provider type."""
        with Session(self.engine) as s:
            query = select(IntegrationConnection).where(IntegrationConnection.type == provider_type)
            existing = s.exec(query).first()
            if existing:
                return existing

            connection = IntegrationConnection(type=provider_type, name=name, status="pending")
            s.add(connection)
            try:
                s.commit()
            except IntegrityError:
                # Another caller created it between our select and insert
                s.rollback()
                return s.exec(query).one()
            s.refresh(connection)
            return connection

    def update_connection(
        self, connection_id: int, *, status: str, last_sync_at: Optional[datetime] = None
    ) -> IntegrationConnection:
        with Session(self.engine) as s:
            connection = s.get(IntegrationConnection, connection_id)
            connection.status = status
            if last_sync_at is not None:
                connection.last_sync_at = last_sync_at
            connection.updated_at = datetime.utcnow()
            s.add(connection)
            s.commit()
            s.refresh(connection)
            return connection

    # ─── Runs ─────────────────────────────────────────────────────────────────

    def create_run(self, connection_id: int, correlation_id: Optional[str] = None) -> SyncRun:
        run = SyncRun(
            connection_id=connection_id,
            status="running",
            started_at=datetime.utcnow(),
            correlation_id=correlation_id,
        )
        with Session(self.engine) as s:
            s.add(run)
            s.commit()
            s.refresh(run)
        return run

    def finish_run(self, run_id: int, *, status: str, counters: Dict[str, int], **fields: Any) -> SyncRun:
        """Write the terminal status, end timestamp and final counters in one commit."""
        with Session(self.engine) as s:
            run = s.get(SyncRun, run_id)
            run.status = status
            run.finished_at = datetime.utcnow()
            for k, v in counters.items():
                setattr(run, k, v)
            for k, v in fields.items():
                setattr(run, k, v)
            s.add(run)
            s.commit()
            s.refresh(run)
            return run

    def find_active_run(self, connection_id: int, since: datetime) -> Optional[SyncRun]:
        with Session(self.engine) as s:
            return s.exec(
                select(SyncRun)
                .where(SyncRun.connection_id == connection_id)
                .where(SyncRun.status == "running")
                .where(SyncRun.started_at >= since)
                .order_by(SyncRun.started_at.desc())
            ).first()

    def abandon_stale_runs(self, connection_id: int, before: datetime) -> int:
        """Fail 'running' rows that started before the cutoff (their process died)."""
        with Session(self.engine) as s:
            stale = s.exec(
                select(SyncRun)
                .where(SyncRun.connection_id == connection_id)
                .where(SyncRun.status == "running")
                .where(SyncRun.started_at < before)
            ).all()
            now = datetime.utcnow()
            for run in stale:
                run.status = "failed"
                run.finished_at = now
                run.error_message = "Run abandoned before completion"
                run.error_summary = run.error_message
                s.add(run)
            s.commit()
            return len(stale)

    def recent_runs(self, connection_id: int, limit: int = 10) -> List[SyncRun]:
        with Session(self.engine) as s:
            return list(
                s.exec(
                    select(SyncRun)
                    .where(SyncRun.connection_id == connection_id)
                    .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
                    .limit(limit)
                ).all()
            )

    def run_totals(self, connection_id: int) -> Dict[str, int]:
        """Aggregate counts across all runs and across completed runs only."""
        with Session(self.engine) as s:
            total = s.exec(
                select(func.count(SyncRun.id)).where(SyncRun.connection_id == connection_id)
            ).one()
            successful, users, apps = s.exec(
                select(
                    func.count(SyncRun.id),
                    func.coalesce(func.sum(SyncRun.users_created + SyncRun.users_updated), 0),
                    func.coalesce(func.sum(SyncRun.apps_created + SyncRun.apps_updated), 0),
                )
                .where(SyncRun.connection_id == connection_id)
                .where(SyncRun.status == "completed")
            ).one()
        return {
            "total_syncs": int(total),
            "successful_syncs": int(successful),
            "total_users_imported": int(users),
            "total_apps_imported": int(apps),
        }

    # ─── Directory entities ───────────────────────────────────────────────────

    def find_user_by_email(self, email: str) -> Optional[User]:
        with Session(self.engine) as s:
            return self._user_by_email(s, email)

    def upsert_user(self, fields: Dict[str, Any]) -> Tuple[User, bool]:
        """Create or fully replace a User matched by email. Returns (user, created)."""
        with Session(self.engine) as s:
            existing = self._user_by_email(s, fields["email"])
            if existing:
                # Update scalar fields in-place (keeps same id)
                for k, v in fields.items():
                    setattr(existing, k, v)
                existing.updated_at = datetime.utcnow()
                s.add(existing)
                s.commit()
                s.refresh(existing)
                return existing, False

            user = User(**fields)
            s.add(user)
            s.commit()
            s.refresh(user)
            return user, True

    def find_application(self, name: str, source: str) -> Optional[Application]:
        with Session(self.engine) as s:
            return self._application(s, name, source)

    def upsert_application(self, fields: Dict[str, Any]) -> Tuple[Application, bool]:
        """Create or fully replace an Application matched by (name, source)."""
        with Session(self.engine) as s:
            existing = self._application(s, fields["name"], fields["source"])
            if existing:
                for k, v in fields.items():
                    setattr(existing, k, v)
                existing.updated_at = datetime.utcnow()
                s.add(existing)
                s.commit()
                s.refresh(existing)
                return existing, False

            app = Application(**fields)
            s.add(app)
            s.commit()
            s.refresh(app)
            return app, True

    def upsert_assignment(
        self, user_id: int, application_id: int, fields: Dict[str, Any]
    ) -> Tuple[UserAppAccess, bool]:
        """Create or update the access row for one (user, application) pair."""
        with Session(self.engine) as s:
            existing = s.exec(
                select(UserAppAccess)
                .where(UserAppAccess.user_id == user_id)
                .where(UserAppAccess.application_id == application_id)
            ).first()
            if existing:
                for k, v in fields.items():
                    setattr(existing, k, v)
                existing.updated_at = datetime.utcnow()
                s.add(existing)
                s.commit()
                s.refresh(existing)
                return existing, False

            access = UserAppAccess(user_id=user_id, application_id=application_id, **fields)
            s.add(access)
            s.commit()
            s.refresh(access)
            return access, True

    # ─── Audit ────────────────────────────────────────────────────────────────

    def append_audit_event(
        self,
        *,
        actor: str,
        action: str,
        object_type: str,
        object_id: str,
        object_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        actor_email: Optional[str] = None,
    ) -> AuditEvent:
        event = AuditEvent(
            actor=actor,
            actor_email=actor_email,
            action=action,
            object_type=object_type,
            object_id=str(object_id),
            object_name=object_name,
            details_json=json.dumps(details, default=str) if details is not None else None,
        )
        with Session(self.engine) as s:
            s.add(event)
            s.commit()
            s.refresh(event)
        return event

    # ─── Internal helpers ─────────────────────────────────────────────────────

    @staticmethod
    def _user_by_email(s: Session, email: str) -> Optional[User]:
        return s.exec(select(User).where(func.lower(User.email) == email.lower())).first()

    @staticmethod
    def _application(s: Session, name: str, source: str) -> Optional[Application]:
        return s.exec(
            select(Application).where(Application.name == name).where(Application.source == source)
        ).first()

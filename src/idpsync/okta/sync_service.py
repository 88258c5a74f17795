"""
OktaSyncService — orchestrates one Okta → DB shadow sync run.

Flow for a run:
  1. Guard: Okta credentials and database settings present
  2. Get-or-create the Okta IntegrationConnection, open a SyncRun ("running")
  3. Users: list → upsert by email → user id map
  4. Applications: list → upsert active apps by (label, "okta") → app id map
  5. Assignments: per mapped app, list → upsert by (user, app)
  6. Finish SyncRun ("completed"), connection "connected" + last_sync_at,
     append an AuditEvent

On any exception escaping 3-5: finish SyncRun ("failed") with the partial
counters and a sanitised error, set the connection to "error", append an
AuditEvent, and return a failed SyncResult. Nothing is raised to the caller
except task cancellation, which is recorded the same way and re-raised.

Read-only towards Okta. Each upsert commits on its own, so rows written by
earlier phases survive a failed run.
"""
import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import httpx

from idpsync.config import Settings
from idpsync.errors import (
    UNHANDLED_RUN_FAILURE,
    ProviderUnavailableError,
    StorageUnavailableError,
    SyncAlreadyRunningError,
    SyncError,
    SyncInterruptedError,
)
from idpsync.log import describe_failure, generate_correlation_id, summarize
from idpsync.models.audit import SYSTEM_ACTOR
from idpsync.okta.client import OktaClient
from idpsync.okta.guard import check_availability
from idpsync.okta.reconciler import Reconciler, SyncStats

logger = logging.getLogger(__name__)

PROVIDER_TYPE = "okta"
PROVIDER_NAME = "Okta"


@dataclass
class SyncResult:
    """Outcome of one run_sync() call, safe to render to an operator."""

    success: bool
    sync_run_id: str = ""
    records_processed: int = 0
    records_read: int = 0
    users_created: int = 0
    users_updated: int = 0
    apps_created: int = 0
    apps_updated: int = 0
    access_records_created: int = 0
    error_message: Optional[str] = None
    error_summary: Optional[str] = None
    error_code: Optional[str] = None
    duration_ms: int = 0
    correlation_id: Optional[str] = None
    is_partial: bool = False
    resume_token: Optional[str] = None
    failed_applications: List[str] = field(default_factory=list)

    @classmethod
    def failure(
        cls,
        message: str,
        *,
        error_code: str,
        duration_ms: int = 0,
        correlation_id: Optional[str] = None,
    ) -> "SyncResult":
        """A failed result for errors caught before any SyncRun exists."""
        return cls(
            success=False,
            error_message=message,
            error_summary=summarize(message),
            error_code=error_code,
            duration_ms=duration_ms,
            correlation_id=correlation_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class OktaSyncService:
    """Runs Okta shadow syncs against an injected SyncStore."""

    def __init__(self, settings: Settings, store, client_factory: Optional[Callable] = None):
        """
        Args:
            settings: Settings instance; the guard re-reads it on every run.
            store: SyncStore implementation (SqlSyncStore in production).
            client_factory: Callable(settings) returning an async context
                manager that yields an OktaClient-like object. Defaults to
                OktaClient.from_settings.
        """
        self.settings = settings
        self.store = store
        self.client_factory = client_factory or OktaClient.from_settings

    async def run_sync(
        self,
        correlation_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SyncResult:
        """
        Run one full sync.

        Args:
            correlation_id: Tag for every log line; generated when omitted.
            cancel_event: Set it to stop the run at the next checkpoint.

        Returns:
            SyncResult. Never raises for guard, provider or storage errors.
        """
        cid = correlation_id or generate_correlation_id()
        started = time.monotonic()
        logger.info("correlation_id=%s Starting Okta sync", cid)

        try:
            check_availability(self.settings)
        except SyncError as exc:
            logger.warning("correlation_id=%s error=%s reason=%r", cid, exc.code, str(exc))
            return SyncResult.failure(
                str(exc), error_code=exc.code, duration_ms=_elapsed_ms(started), correlation_id=cid
            )

        try:
            connection = self.store.get_or_create_connection(PROVIDER_TYPE, PROVIDER_NAME)
            run = self._open_run(connection.id, cid)
        except SyncAlreadyRunningError as exc:
            logger.warning("correlation_id=%s error=%s run_id=%s", cid, exc.code, exc.run_id)
            return SyncResult.failure(
                str(exc), error_code=exc.code, duration_ms=_elapsed_ms(started), correlation_id=cid
            )
        except Exception as exc:
            message = describe_failure(exc)
            logger.error("correlation_id=%s error=database_unavailable reason=%r", cid, message)
            return SyncResult.failure(
                message,
                error_code=StorageUnavailableError.code,
                duration_ms=_elapsed_ms(started),
                correlation_id=cid,
            )

        stats = SyncStats()
        checkpoint = self._checkpoint(cid, started + self.settings.sync_timeout_seconds, cancel_event)
        reconciler = Reconciler(self.store, stats=stats, correlation_id=cid, checkpoint=checkpoint)

        try:
            logger.info("correlation_id=%s Starting sync run %s", cid, run.id)
            async with self.client_factory(self.settings) as client:
                # Order is load-bearing: assignments need both id maps
                reconciler.reconcile_users(await client.list_users())
                checkpoint("apps:start")
                apps = reconciler.reconcile_applications(await client.list_applications())
                checkpoint("access:start")
                await reconciler.reconcile_assignments(client, apps)
            return self._complete(connection, run.id, stats, cid, started)

        except Exception as exc:
            return self._fail(connection, run.id, stats, cid, started, exc)

        except asyncio.CancelledError:
            # The task itself was cancelled; record the run before propagating
            self._fail(connection, run.id, stats, cid, started, SyncInterruptedError("task cancelled"))
            raise

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _open_run(self, connection_id: int, cid: str):
        """Refuse to start while another run is live; fail runs whose process died."""
        window_start = datetime.utcnow() - timedelta(seconds=self.settings.sync_timeout_seconds)

        abandoned = self.store.abandon_stale_runs(connection_id, before=window_start)
        if abandoned:
            logger.warning("correlation_id=%s Marked %d stale running run(s) as failed", cid, abandoned)

        active = self.store.find_active_run(connection_id, since=window_start)
        if active is not None:
            raise SyncAlreadyRunningError(active.id)

        return self.store.create_run(connection_id, correlation_id=cid)

    def _checkpoint(self, cid: str, deadline: float, cancel_event: Optional[asyncio.Event]):
        def checkpoint(resume_token: str) -> None:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("correlation_id=%s Cancelled at %s", cid, resume_token)
                raise SyncInterruptedError("cancelled", resume_token)
            if time.monotonic() >= deadline:
                logger.warning("correlation_id=%s Timebox reached at %s", cid, resume_token)
                raise SyncInterruptedError("timebox reached", resume_token)

        return checkpoint

    def _complete(self, connection, run_id: int, stats: SyncStats, cid: str, started: float) -> SyncResult:
        duration_ms = _elapsed_ms(started)
        counters = stats.counters()

        self.store.finish_run(run_id, status="completed", counters=counters, duration_ms=duration_ms)
        self.store.update_connection(connection.id, status="connected", last_sync_at=datetime.utcnow())
        self.store.append_audit_event(
            actor=SYSTEM_ACTOR,
            action="sync",
            object_type="integration",
            object_id=str(connection.id),
            object_name=connection.name,
            details={
                "sync_run_id": run_id,
                "correlation_id": cid,
                "status": "completed",
                **counters,
                "failed_applications": stats.failed_applications,
                "duration_ms": duration_ms,
            },
        )

        logger.info("correlation_id=%s Sync completed successfully in %dms", cid, duration_ms)
        return SyncResult(
            success=True,
            sync_run_id=str(run_id),
            **counters,
            duration_ms=duration_ms,
            correlation_id=cid,
            failed_applications=list(stats.failed_applications),
        )

    def _fail(
        self, connection, run_id: int, stats: SyncStats, cid: str, started: float, exc: Exception
    ) -> SyncResult:
        duration_ms = _elapsed_ms(started)
        counters = stats.counters()
        error_code = _error_code(exc)
        message = describe_failure(exc)
        summary = summarize(message)
        is_partial = isinstance(exc, SyncInterruptedError)
        resume_token = exc.resume_token if is_partial else None

        logger.error("correlation_id=%s Sync failed (%s): %s", cid, error_code, message)

        try:
            self.store.finish_run(
                run_id,
                status="failed",
                counters=counters,
                duration_ms=duration_ms,
                error_message=message,
                error_summary=summary,
                is_partial=is_partial,
                resume_token=resume_token,
            )
            # last_sync_at only moves on success
            self.store.update_connection(connection.id, status="error")
            self.store.append_audit_event(
                actor=SYSTEM_ACTOR,
                action="sync",
                object_type="integration",
                object_id=str(connection.id),
                object_name=connection.name,
                details={
                    "sync_run_id": run_id,
                    "correlation_id": cid,
                    "status": "failed",
                    **counters,
                    "failed_applications": stats.failed_applications,
                    "error_summary": summary,
                    "duration_ms": duration_ms,
                },
            )
        except Exception:
            logger.exception("correlation_id=%s Could not record failed run %s", cid, run_id)

        return SyncResult(
            success=False,
            sync_run_id=str(run_id),
            **counters,
            error_message=message,
            error_summary=summary,
            error_code=error_code,
            duration_ms=duration_ms,
            correlation_id=cid,
            is_partial=is_partial,
            resume_token=resume_token,
            failed_applications=list(stats.failed_applications),
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _error_code(exc: Exception) -> str:
    if isinstance(exc, SyncError):
        return exc.code
    if isinstance(exc, httpx.TransportError):
        return ProviderUnavailableError.code
    return UNHANDLED_RUN_FAILURE

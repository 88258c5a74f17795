"""
Entry points the CLI and HTTP routes call into.

This is the composition root: it checks the guard before touching the
database, and only then builds the engine, the SqlSyncStore and the
OktaSyncService. Read-side helpers (status, history, stats) degrade to
empty answers when storage is unavailable instead of raising.
"""
import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from idpsync.config import Settings, get_settings
from idpsync.db.engine import get_engine
from idpsync.db.store import SqlSyncStore
from idpsync.errors import UNHANDLED_RUN_FAILURE, StorageUnavailableError, SyncError
from idpsync.log import describe_failure, generate_correlation_id
from idpsync.models.integration import IntegrationConnection
from idpsync.okta.guard import check_availability, check_storage, describe_availability
from idpsync.okta.sync_service import PROVIDER_NAME, PROVIDER_TYPE, OktaSyncService, SyncResult

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> SqlSyncStore:
    return SqlSyncStore(get_engine(settings))


async def trigger_okta_sync(
    settings: Optional[Settings] = None,
    correlation_id: Optional[str] = None,
) -> SyncResult:
    """Check the guard, wire the SQL store and run one sync."""
    settings = settings or get_settings()
    cid = correlation_id or generate_correlation_id()
    availability = describe_availability(settings)
    logger.info(
        "correlation_id=%s configured=%s database_enabled=%s database_url_set=%s",
        cid,
        availability.configured,
        availability.storage_enabled,
        availability.storage_configured,
    )

    try:
        check_availability(settings)
    except SyncError as exc:
        logger.info("correlation_id=%s error=%s reason=%r", cid, exc.code, str(exc))
        return SyncResult.failure(str(exc), error_code=exc.code, correlation_id=cid)

    try:
        service = OktaSyncService(settings, build_store(settings))
        result = await service.run_sync(correlation_id=cid)
    except Exception as exc:
        message = describe_failure(exc)
        logger.error(
            "correlation_id=%s errorName=%s errorMessage=%r", cid, exc.__class__.__name__, message
        )
        return SyncResult.failure(message, error_code=_startup_error_code(exc), correlation_id=cid)

    logger.info(
        "correlation_id=%s status=%s records=%d duration=%dms",
        cid,
        "success" if result.success else "failed",
        result.records_processed,
        result.duration_ms,
    )
    return result


def get_okta_status(settings: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Integration status for the Okta card: configured flag, availability,
    the connection row (created lazily as "pending") and recent runs.
    """
    settings = settings or get_settings()
    availability = describe_availability(settings)
    status: Dict[str, Any] = {
        "configured": availability.configured,
        "availability": asdict(availability),
        "connection": _placeholder_connection(),
        "recent_runs": [],
    }

    try:
        check_storage(settings)
        store = build_store(settings)
        connection = store.get_or_create_connection(PROVIDER_TYPE, PROVIDER_NAME)
        runs = store.recent_runs(connection.id, limit=settings.recent_runs_limit)
    except StorageUnavailableError:
        return status
    except Exception:
        logger.exception("Could not load Okta integration status")
        return status

    status["connection"] = connection.model_dump()
    status["recent_runs"] = [run.model_dump() for run in runs]
    return status


def get_okta_sync_history(settings: Optional[Settings] = None) -> List[Dict[str, Any]]:
    """The most recent runs, newest first. Empty when storage is unavailable."""
    settings = settings or get_settings()
    try:
        check_storage(settings)
        store = build_store(settings)
        connection = store.find_connection(PROVIDER_TYPE)
        if connection is None:
            return []
        runs = store.recent_runs(connection.id, limit=settings.recent_runs_limit)
    except StorageUnavailableError:
        return []
    except Exception:
        logger.exception("Could not load Okta sync history")
        return []
    return [run.model_dump() for run in runs]


def get_okta_sync_stats(settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Totals across all runs for the overview screen."""
    settings = settings or get_settings()
    stats: Dict[str, Any] = {
        "total_syncs": 0,
        "successful_syncs": 0,
        "total_users_imported": 0,
        "total_apps_imported": 0,
        "last_successful_sync": None,
    }
    try:
        check_storage(settings)
        store = build_store(settings)
        connection = store.find_connection(PROVIDER_TYPE)
        if connection is None:
            return stats
        stats.update(store.run_totals(connection.id))
    except StorageUnavailableError:
        return stats
    except Exception:
        logger.exception("Could not load Okta sync stats")
        return stats
    stats["last_successful_sync"] = connection.last_sync_at
    return stats


def _placeholder_connection() -> Dict[str, Any]:
    """Pending connection shown while the database is unavailable."""
    now = datetime.utcnow()
    return IntegrationConnection(
        type=PROVIDER_TYPE, name=PROVIDER_NAME, status="pending", created_at=now, updated_at=now
    ).model_dump()


def _startup_error_code(exc: Exception) -> str:
    if isinstance(exc, SyncError):
        return exc.code
    if isinstance(exc, SQLAlchemyError):
        return StorageUnavailableError.code
    return UNHANDLED_RUN_FAILURE


"""
Reconciles raw Okta records into the local store.

Each phase matches incoming records by natural key (email for users,
(label, "okta") for applications, (user, application) for access grants),
creates or fully replaces the row, and bumps the run's counters. Users and
applications register their ids in the run's IdentityMap; assignments are
only written when both sides resolve through it.
"""
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

from idpsync.errors import PartialEntityFailure
from idpsync.log import mask_email
from idpsync.okta.id_map import IdentityMap
from idpsync.okta.normalizer import (
    is_active_application,
    normalize_application,
    normalize_assignment,
    normalize_user,
)

logger = logging.getLogger(__name__)

COUNTER_FIELDS = (
    "records_processed",
    "records_read",
    "users_created",
    "users_updated",
    "apps_created",
    "apps_updated",
    "access_records_created",
)


@dataclass
class SyncStats:
    records_processed: int = 0  # users + applications written
    records_read: int = 0  # raw records returned by Okta, all phases
    users_created: int = 0
    users_updated: int = 0
    apps_created: int = 0
    apps_updated: int = 0
    access_records_created: int = 0  # counts updates too
    failed_applications: List[str] = field(default_factory=list)

    def counters(self) -> Dict[str, int]:
        values = asdict(self)
        return {name: values[name] for name in COUNTER_FIELDS}


def _no_checkpoint(resume_token: str) -> None:
    return None


class Reconciler:
    """Applies one run's Okta records to a SyncStore."""

    def __init__(
        self,
        store,
        stats: Optional[SyncStats] = None,
        id_map: Optional[IdentityMap] = None,
        correlation_id: str = "-",
        checkpoint: Optional[Callable[[str], None]] = None,
    ):
        """
        Args:
            store: SyncStore implementation.
            stats: Counters to accumulate into (shared with the caller).
            id_map: Run-local IdentityMap.
            correlation_id: Tag for log lines.
            checkpoint: Called with a resume token before each record and
                each application fetch; raises to stop the run.
        """
        self.store = store
        self.stats = stats or SyncStats()
        self.id_map = id_map or IdentityMap()
        self.correlation_id = correlation_id
        self._checkpoint = checkpoint or _no_checkpoint

    def reconcile_users(self, raw_users: List[Dict[str, Any]]) -> None:
        self.stats.records_read += len(raw_users)

        for raw in raw_users:
            self._checkpoint(f"users:{raw.get('id')}")

            fields = normalize_user(raw)
            if fields is None:
                logger.debug(
                    "correlation_id=%s Skipping Okta user %s: no email", self.correlation_id, raw.get("id")
                )
                continue

            user, created = self.store.upsert_user(fields)
            if raw.get("id"):
                self.id_map.map_user(raw["id"], user.id)

            if created:
                self.stats.users_created += 1
                logger.debug("correlation_id=%s Created user %s", self.correlation_id, mask_email(user.email))
            else:
                self.stats.users_updated += 1
            self.stats.records_processed += 1

        logger.info(
            "correlation_id=%s Synced %d users (%d created, %d updated)",
            self.correlation_id,
            self.stats.users_created + self.stats.users_updated,
            self.stats.users_created,
            self.stats.users_updated,
        )

    def reconcile_applications(self, raw_apps: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Upsert active applications. Returns the raw active apps that were mapped."""
        self.stats.records_read += len(raw_apps)
        synced: List[Dict[str, Any]] = []

        for raw in raw_apps:
            self._checkpoint(f"apps:{raw.get('id')}")

            # Inactive apps are neither written nor counted
            if not is_active_application(raw):
                continue

            app, created = self.store.upsert_application(normalize_application(raw))
            if raw.get("id"):
                self.id_map.map_application(raw["id"], app.id)
            synced.append(raw)

            if created:
                self.stats.apps_created += 1
            else:
                self.stats.apps_updated += 1
            self.stats.records_processed += 1

        logger.info(
            "correlation_id=%s Synced %d applications (%d created, %d updated)",
            self.correlation_id,
            self.stats.apps_created + self.stats.apps_updated,
            self.stats.apps_created,
            self.stats.apps_updated,
        )
        return synced

    async def reconcile_assignments(self, client, apps: List[Dict[str, Any]]) -> None:
        """
        Fetch and upsert assignments app by app.

        A failed fetch for one app counts as zero assignments for it; the
        failure is logged and recorded in stats.failed_applications.
        Storage errors while writing are not caught here.
        """
        for raw_app in apps:
            app_id = raw_app.get("id")
            self._checkpoint(f"access:{app_id}")

            if not is_active_application(raw_app) or self.id_map.application_id(app_id) is None:
                continue

            app_name = raw_app.get("label") or app_id
            try:
                assignments = await client.list_application_assignments(app_id)
            except Exception as exc:
                failure = PartialEntityFailure(app_id, app_name, exc)
                logger.warning("correlation_id=%s %s", self.correlation_id, failure)
                self.stats.failed_applications.append(app_name)
                continue

            self.stats.records_read += len(assignments)
            for raw in assignments:
                resolved = self.id_map.resolve(raw.get("id"), app_id)
                if resolved is None:
                    # User was never synced (e.g. no email)
                    continue
                user_id, application_id = resolved
                self.store.upsert_assignment(user_id, application_id, normalize_assignment(raw))
                self.stats.access_records_created += 1

        logger.info(
            "correlation_id=%s Upserted %d access records (%d apps skipped)",
            self.correlation_id,
            self.stats.access_records_created,
            len(self.stats.failed_applications),
        )

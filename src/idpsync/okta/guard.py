"""
Pre-flight checks run before any Okta or database I/O.

The verdict is a pure function of the Settings instance passed in, so it
is recomputed on every invocation and tests can feed arbitrary configs.
Checks run in a fixed order: provider credentials first, then the
storage toggle, then the storage connection string.
"""
from dataclasses import dataclass
from typing import Optional

from idpsync.config import Settings
from idpsync.errors import (
    NotConfiguredError,
    StorageDisabledError,
    StorageUnconfiguredError,
    SyncError,
)

NOT_CONFIGURED_MESSAGE = "Okta is not configured. Add OKTA_DOMAIN and OKTA_API_TOKEN environment variables."
STORAGE_DISABLED_MESSAGE = "Database feature is disabled. Set DATABASE_ENABLED=true to enable."
STORAGE_UNCONFIGURED_MESSAGE = "DATABASE_URL environment variable is not set."


@dataclass
class Availability:
    configured: bool
    storage_enabled: bool
    storage_configured: bool
    error_code: Optional[str] = None
    reason: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.error_code is None

    @property
    def storage_available(self) -> bool:
        return self.storage_enabled and self.storage_configured


def check_availability(settings: Settings) -> None:
    """
    Raise the first guard error that applies, or return None.

    Raises:
        NotConfiguredError: OKTA_DOMAIN or OKTA_API_TOKEN is empty.
        StorageDisabledError: DATABASE_ENABLED is false.
        StorageUnconfiguredError: DATABASE_URL is empty.
    """
    if not settings.okta_configured:
        raise NotConfiguredError(NOT_CONFIGURED_MESSAGE)
    check_storage(settings)


def check_storage(settings: Settings) -> None:
    """Storage half of the guard, for read-only screens that don't need Okta."""
    if not settings.database_enabled:
        raise StorageDisabledError(STORAGE_DISABLED_MESSAGE)
    if not settings.database_url:
        raise StorageUnconfiguredError(STORAGE_UNCONFIGURED_MESSAGE)


def describe_availability(settings: Settings) -> Availability:
    """Same verdict as check_availability(), returned as a value."""
    availability = Availability(
        configured=settings.okta_configured,
        storage_enabled=settings.database_enabled,
        storage_configured=bool(settings.database_url),
    )
    try:
        check_availability(settings)
    except SyncError as exc:
        availability.error_code = exc.code
        availability.reason = str(exc)
    return availability

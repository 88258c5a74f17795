"""
Error taxonomy for the Okta sync engine.

Guard errors (NotConfiguredError, StorageUnavailableError) are raised
before any network or storage I/O and are turned into a failed
SyncResult at the service boundary. ProviderUnavailableError fails the
whole run when it comes from the user or application listing; wrapped in
PartialEntityFailure it only skips one application's assignments.
"""
from typing import Optional

# ── Exceptions ────────────────────────────────────────────────────────────────


class SyncError(RuntimeError):
    """Base class for every error the sync engine reports by code."""

    code = "sync_error"


class NotConfiguredError(SyncError):
    """Raised when the Okta domain or API token is missing."""

    code = "okta_not_configured"


class StorageUnavailableError(SyncError):
    """Raised when the database is disabled, unconfigured or unreachable."""

    code = "database_unavailable"


class StorageDisabledError(StorageUnavailableError):
    """Raised when the database feature toggle is off."""


class StorageUnconfiguredError(StorageUnavailableError):
    """Raised when no database connection string is set."""


class ProviderUnavailableError(SyncError):
    """Raised when the Okta API answers with a non-success status."""

    code = "provider_unavailable"

    def __init__(self, status_code: int, body: str = "", url: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"Okta API error ({status_code}): {body}")


class ProviderUnreachableError(SyncError):
    """Raised when Okta cannot be reached at all once transport retries run out."""

    code = ProviderUnavailableError.code

    def __init__(self, base_url: str, cause: Exception):
        self.base_url = base_url
        self.cause = cause
        super().__init__(
            f"Could not reach Okta at {base_url}: {str(cause) or cause.__class__.__name__}. "
            "Check OKTA_DOMAIN and network access."
        )


class PartialEntityFailure(SyncError):
    """One application's assignment listing failed; the run carries on."""

    code = "partial_entity_failure"

    def __init__(self, app_id: str, app_name: str, cause: Exception):
        self.app_id = app_id
        self.app_name = app_name
        self.cause = cause
        super().__init__(f"Could not fetch users for app {app_name}: {cause}")


class SyncAlreadyRunningError(SyncError):
    """Raised when the connection already has a run in progress."""

    code = "sync_already_running"

    def __init__(self, run_id: int):
        self.run_id = run_id
        super().__init__(
            f"A sync is already running for this connection (run {run_id}). "
            "Wait for it to finish before starting another."
        )


class SyncInterruptedError(SyncError):
    """Raised when a run hits its deadline or is cancelled by the caller."""

    code = "sync_interrupted"

    def __init__(self, reason: str, resume_token: Optional[str] = None):
        self.reason = reason
        self.resume_token = resume_token
        super().__init__(f"Sync interrupted ({reason}) - a new run will start from the beginning")


UNHANDLED_RUN_FAILURE = "unhandled_run_failure"

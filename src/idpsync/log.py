"""
Log-safety helpers: correlation IDs, email masking and error sanitising.

Nothing here configures logging; the entrypoint does that. These helpers
only make sure that what we log, persist on a SyncRun, or hand back to an
operator never carries an API token or a raw driver traceback.
"""
import re
import uuid
from typing import Tuple

import httpx
from sqlalchemy.exc import OperationalError, SQLAlchemyError

SUMMARY_MAX_CHARS = 200

_SECRET_PATTERNS = [
    (re.compile(r"SSWS\s+\S+", re.IGNORECASE), "SSWS [REDACTED]"),
    (re.compile(r"Bearer\s+\S+", re.IGNORECASE), "Bearer [REDACTED]"),
    (re.compile(r"api[_-]?token[=:]\S+", re.IGNORECASE), "api_token=[REDACTED]"),
    (re.compile(r"password[=:]\S+", re.IGNORECASE), "password=[REDACTED]"),
]


def generate_correlation_id() -> str:
    """Return a fresh ID to tag every log line of one sync invocation."""
    return str(uuid.uuid4())


def mask_email(email: str) -> str:
    """Mask an email for logs: first two chars of the local part plus domain."""
    local, _, domain = (email or "").partition("@")
    if not domain:
        return "***"
    masked_local = f"{local[:2]}***" if len(local) > 2 else "***"
    return f"{masked_local}@{domain}"


def redact_secrets(message: str) -> str:
    for pattern, replacement in _SECRET_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def summarize(message: str) -> str:
    if len(message) > SUMMARY_MAX_CHARS:
        return message[: SUMMARY_MAX_CHARS - 3] + "..."
    return message


def sanitize_error(exc: BaseException) -> Tuple[str, str]:
    """Return (message, summary) for an exception with secrets removed."""
    message = redact_secrets(str(exc) or exc.__class__.__name__)
    return message, summarize(message)


def describe_failure(exc: BaseException) -> str:
    """
    Turn an unexpected exception into operator guidance.

    SQLAlchemy errors are rewritten into a sentence that names the database
    setting to check, and raw httpx transport errors into one that names
    Okta. Everything else, including provider errors that already carry
    their own guidance, is passed through sanitised.
    """
    message, _ = sanitize_error(exc)
    if isinstance(exc, httpx.TransportError):
        return f"Could not reach Okta: {message}. Check OKTA_DOMAIN and network access."
    if not isinstance(exc, SQLAlchemyError):
        return message

    lowered = message.lower()
    if "connection refused" in lowered or "could not connect" in lowered or "unable to open database" in lowered:
        return f"Database connection failed: {message}. Check DATABASE_URL is correct."
    if isinstance(exc, OperationalError):
        return f"Database error: {message}. Ensure database migrations are run."
    return f"Database client error: {message}. Ensure database migrations are run."

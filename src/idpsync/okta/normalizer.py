"""
Okta API response normalizer.

Converts raw Okta dicts into clean field dicts that map directly onto
SQLModel columns. No DB access here; the reconciler handles
persistence.

All functions return plain dicts so they're easy to test without any
SQLModel or DB dependencies.

Okta shapes we consume:

  /api/v1/users items:
    {"id", "status", "created", "lastLogin", "profile": {"email",
     "firstName", "lastName", "displayName", "department", "title", "manager"}}

  /api/v1/apps items:
    {"id", "name" (technical key), "label" (display name), "status",
     "lastUpdated", "signOnMode"}

  /api/v1/apps/{id}/users items:
    {"id" (the Okta user id), "status", "lastUpdated", "profile": {"role"}}

Timestamps are ISO 8601 with a trailing "Z" ("2024-01-15T10:30:00.000Z").
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from idpsync.models.directory import UserStatus

OKTA_SOURCE = "okta"
ACTIVE_APP_STATUS = "ACTIVE"

USER_STATUS_MAP = {
    "ACTIVE": UserStatus.ACTIVE,
    "SUSPENDED": UserStatus.SUSPENDED,
    "DEPROVISIONED": UserStatus.OFFBOARDING,
}

# Order matters: the first rule whose keywords match the label wins.
CATEGORY_RULES: Sequence[Tuple[Tuple[str, ...], str]] = (
    (("slack", "zoom", "teams", "meet"), "Communication"),
    (("jira", "asana", "monday", "trello"), "Productivity"),
    (("salesforce", "hubspot", "crm"), "CRM"),
    (("aws", "azure", "gcp", "cloud"), "Infrastructure"),
    (("github", "gitlab", "bitbucket"), "Development"),
    (("google", "office", "microsoft"), "Productivity"),
)
DEFAULT_CATEGORY = "Other"


def parse_okta_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an Okta timestamp into a naive UTC datetime. None if absent or malformed."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def map_user_status(okta_status: Optional[str]) -> UserStatus:
    """Map an Okta lifecycle state to our status. Unknown states are inactive."""
    return USER_STATUS_MAP.get((okta_status or "").upper(), UserStatus.INACTIVE)


def categorize_app(label: Optional[str]) -> str:
    """Infer an application category from its display name."""
    name = (label or "").lower()
    for keywords, category in CATEGORY_RULES:
        if any(keyword in name for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def normalize_user(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Normalize an Okta user into User model fields.

    Returns None when the profile has no email: email is the natural key,
    so such users cannot be reconciled.
    """
    profile = raw.get("profile") or {}
    email = (profile.get("email") or "").strip()
    if not email:
        return None

    name = profile.get("displayName") or " ".join(
        part for part in (profile.get("firstName"), profile.get("lastName")) if part
    )

    return {
        "okta_id": raw.get("id"),
        "email": email,
        "name": name or email,
        "department": profile.get("department") or "Unknown",
        "title": profile.get("title") or None,
        "manager": profile.get("manager") or None,
        "status": map_user_status(raw.get("status")).value,
        "last_active": parse_okta_datetime(raw.get("lastLogin")),
        "start_date": parse_okta_datetime(raw.get("created")),
    }


def is_active_application(raw: Dict[str, Any]) -> bool:
    return raw.get("status") == ACTIVE_APP_STATUS


def normalize_application(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize an Okta app into Application model fields."""
    label = raw.get("label") or raw.get("name") or ""
    return {
        "okta_app_id": raw.get("id"),
        "name": label,
        "vendor": raw.get("name"),
        "category": categorize_app(label),
        "source": OKTA_SOURCE,
        "status": "sanctioned",
        "sso_connected": True,
        "last_activity": parse_okta_datetime(raw.get("lastUpdated")),
    }


def normalize_assignment(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize an Okta app-user assignment into UserAppAccess fields."""
    profile = raw.get("profile") or {}
    return {
        "access_level": profile.get("role") or "user",
        "status": "active" if raw.get("status") == "ACTIVE" else "inactive",
        "last_login": parse_okta_datetime(raw.get("lastUpdated")),
    }

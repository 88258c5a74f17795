"""Run-scoped correlation between Okta identifiers and internal row ids."""
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


@dataclass
class IdentityMap:
    """
    Okta id → internal id tables built while users and applications are
    reconciled, then read while assignments are reconciled. Lives for one
    run only and is never persisted.
    """

    users: Dict[str, int] = field(default_factory=dict)
    applications: Dict[str, int] = field(default_factory=dict)

    def map_user(self, okta_user_id: str, user_id: int) -> None:
        self.users[okta_user_id] = user_id

    def map_application(self, okta_app_id: str, application_id: int) -> None:
        self.applications[okta_app_id] = application_id

    def user_id(self, okta_user_id: str) -> Optional[int]:
        return self.users.get(okta_user_id)

    def application_id(self, okta_app_id: str) -> Optional[int]:
        return self.applications.get(okta_app_id)

    def resolve(self, okta_user_id: str, okta_app_id: str) -> Optional[Tuple[int, int]]:
        """Return (user_id, application_id) only when both sides were synced."""
        user_id = self.user_id(okta_user_id)
        application_id = self.application_id(okta_app_id)
        if user_id is None or application_id is None:
            return None
        return user_id, application_id

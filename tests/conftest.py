"""Shared test fixtures."""
import json
from pathlib import Path
from typing import Generator
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from idpsync.config import Settings
from idpsync.db.store import SqlSyncStore

# Import all models so SQLModel.metadata knows about them
from idpsync.models.audit import AuditEvent  # noqa: F401
from idpsync.models.directory import Application, User, UserAppAccess  # noqa: F401
from idpsync.models.integration import IntegrationConnection, SyncRun  # noqa: F401

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str):
    return json.loads((FIXTURES_DIR / name).read_text())


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="store")
def store_fixture(engine) -> SqlSyncStore:
    return SqlSyncStore(engine)


@pytest.fixture(name="settings")
def settings_fixture() -> Settings:
    """Fully configured settings; tests copy and blank fields as needed."""
    return Settings(
        okta_domain="example.okta.com",
        okta_api_token="00abcdefTESTTOKEN",
        database_enabled=True,
        database_url="sqlite://",
        _env_file=None,
    )


@pytest.fixture(name="okta_users")
def okta_users_fixture():
    return load_fixture("okta_users.json")


@pytest.fixture(name="okta_apps")
def okta_apps_fixture():
    return load_fixture("okta_apps.json")


@pytest.fixture(name="okta_app_users")
def okta_app_users_fixture():
    return load_fixture("okta_app_users.json")


class FakeOktaClient:
    """
    Stands in for OktaClient inside `async with client_factory(settings)`.

    assignments maps an Okta app id to its user list, or to an Exception
    instance that the fetch for that app raises.
    """

    def __init__(self, users=None, apps=None, assignments=None):
        assignments = assignments or {}
        self.list_users = AsyncMock(return_value=list(users or []))
        self.list_applications = AsyncMock(return_value=list(apps or []))
        self.list_application_assignments = AsyncMock(
            side_effect=lambda app_id: _assignment_result(assignments, app_id)
        )
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True


def _assignment_result(assignments, app_id):
    result = assignments.get(app_id, [])
    if isinstance(result, Exception):
        raise result
    return list(result)


@pytest.fixture(name="make_okta_client")
def make_okta_client_fixture():
    """Factory for FakeOktaClient instances."""
    return FakeOktaClient

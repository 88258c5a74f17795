"""SQLModel engine cache."""
from typing import Dict

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from idpsync.config import Settings

_engines: Dict[str, Engine] = {}


def get_engine(settings: Settings) -> Engine:
    """Return the engine for the configured URL, creating it on first call."""
    url = settings.database_url
    if url not in _engines:
        connect_args = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        engine = create_engine(url, connect_args=connect_args)
        # Import all models so metadata is populated before create_all
        from idpsync.models.audit import AuditEvent  # noqa
        from idpsync.models.directory import Application, User, UserAppAccess  # noqa
        from idpsync.models.integration import IntegrationConnection, SyncRun  # noqa
        SQLModel.metadata.create_all(engine)
        from idpsync.db.migrations import run_migrations
        run_migrations(engine)
        _engines[url] = engine
    return _engines[url]

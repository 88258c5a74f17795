"""
Database migrations for the sync store.

Uses SQLite ALTER TABLE ADD COLUMN for incremental schema evolution.
Each migration is idempotent: columns are only added if absent.

Called automatically from get_engine() after create_all() so both
fresh installs and existing DBs are handled without manual steps.
Other dialects are expected to be managed out of band and are skipped.
"""
from sqlalchemy import text


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call repeatedly: each column is checked before it is added.

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    if engine.dialect.name != "sqlite":
        return

    with engine.connect() as conn:
        # SyncRun: correlation and timebox bookkeeping
        _add_column_if_missing(conn, "syncrun", "correlation_id", "VARCHAR")
        _add_column_if_missing(conn, "syncrun", "is_partial", "BOOLEAN NOT NULL DEFAULT 0")
        _add_column_if_missing(conn, "syncrun", "resume_token", "VARCHAR")

        # IntegrationConnection: provider-specific settings blob
        _add_column_if_missing(conn, "integrationconnection", "config_json", "VARCHAR")

        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name (lowercase, as SQLite stores it).
        column: Column name to add.
        col_type: SQLite column definition, e.g. "INTEGER", "VARCHAR".
    """
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))

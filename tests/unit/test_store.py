"""Tests for SqlSyncStore against in-memory SQLite."""
import json
from datetime import datetime, timedelta

from sqlmodel import Session, select

from idpsync.models.audit import AuditEvent
from idpsync.models.directory import UserAppAccess
from idpsync.models.integration import SyncRun


def _user_fields(email="alice@example.com", **overrides):
    fields = {
        "okta_id": "00u1",
        "email": email,
        "name": "Alice",
        "department": "Engineering",
        "title": None,
        "manager": None,
        "status": "active",
        "last_active": None,
        "start_date": None,
    }
    fields.update(overrides)
    return fields


def _app_fields(name="Slack", **overrides):
    fields = {
        "okta_app_id": "0oa1",
        "name": name,
        "vendor": "slack",
        "category": "Communication",
        "source": "okta",
        "status": "sanctioned",
        "sso_connected": True,
        "last_activity": None,
    }
    fields.update(overrides)
    return fields


class TestConnections:
    def test_get_or_create_is_idempotent(self, store):
        first = store.get_or_create_connection("okta", "Okta")
        second = store.get_or_create_connection("okta", "Okta")
        assert first.id == second.id
        assert first.status == "pending"

    def test_find_connection_missing(self, store):
        assert store.find_connection("okta") is None

    def test_update_connection_keeps_last_sync_when_omitted(self, store):
        connection = store.get_or_create_connection("okta", "Okta")
        synced_at = datetime(2024, 1, 15, 10, 0)
        store.update_connection(connection.id, status="connected", last_sync_at=synced_at)

        updated = store.update_connection(connection.id, status="error")
        assert updated.status == "error"
        assert updated.last_sync_at == synced_at


class TestRuns:
    def test_create_and_finish_run(self, store):
        connection = store.get_or_create_connection("okta", "Okta")
        run = store.create_run(connection.id, correlation_id="cid-1")
        assert run.status == "running"
        assert run.finished_at is None

        finished = store.finish_run(
            run.id,
            status="completed",
            counters={"records_processed": 3, "users_created": 2},
            duration_ms=120,
        )
        assert finished.status == "completed"
        assert finished.finished_at is not None
        assert finished.records_processed == 3
        assert finished.users_created == 2
        assert finished.duration_ms == 120
        assert finished.correlation_id == "cid-1"

    def test_find_active_run_respects_window(self, store, engine):
        connection = store.get_or_create_connection("okta", "Okta")
        run = store.create_run(connection.id)
        now = datetime.utcnow()

        assert store.find_active_run(connection.id, since=now - timedelta(minutes=5)).id == run.id
        assert store.find_active_run(connection.id, since=now + timedelta(minutes=5)) is None

    def test_abandon_stale_runs(self, store, engine):
        connection = store.get_or_create_connection("okta", "Okta")
        with Session(engine) as s:
            s.add(SyncRun(connection_id=connection.id, started_at=datetime(2020, 1, 1)))
            s.commit()
        fresh = store.create_run(connection.id)

        assert store.abandon_stale_runs(connection.id, before=datetime.utcnow() - timedelta(hours=1)) == 1

        with Session(engine) as s:
            runs = {r.id: r for r in s.exec(select(SyncRun)).all()}
        stale = next(r for r in runs.values() if r.id != fresh.id)
        assert stale.status == "failed"
        assert stale.finished_at is not None
        assert stale.error_message == "Run abandoned before completion"
        assert runs[fresh.id].status == "running"

    def test_recent_runs_newest_first_and_limited(self, store, engine):
        connection = store.get_or_create_connection("okta", "Okta")
        with Session(engine) as s:
            for day in range(1, 6):
                s.add(SyncRun(connection_id=connection.id, status="completed", started_at=datetime(2024, 1, day)))
            s.commit()

        runs = store.recent_runs(connection.id, limit=3)
        assert [r.started_at.day for r in runs] == [5, 4, 3]

    def test_run_totals(self, store, engine):
        connection = store.get_or_create_connection("okta", "Okta")
        with Session(engine) as s:
            s.add(SyncRun(connection_id=connection.id, status="completed", users_created=2, apps_created=1))
            s.add(SyncRun(connection_id=connection.id, status="completed", users_updated=2, apps_updated=1))
            s.add(SyncRun(connection_id=connection.id, status="failed", users_created=5))
            s.commit()

        assert store.run_totals(connection.id) == {
            "total_syncs": 3,
            "successful_syncs": 2,
            "total_users_imported": 4,
            "total_apps_imported": 2,
        }

    def test_run_totals_without_runs(self, store):
        connection = store.get_or_create_connection("okta", "Okta")
        assert store.run_totals(connection.id)["total_syncs"] == 0


class TestUsers:
    def test_upsert_creates_then_replaces(self, store):
        user, created = store.upsert_user(_user_fields())
        assert created is True

        again, created = store.upsert_user(_user_fields(name="Alice Anders", department="Sales"))
        assert created is False
        assert again.id == user.id
        assert again.name == "Alice Anders"
        assert again.department == "Sales"

    def test_email_match_is_case_insensitive(self, store):
        user, _ = store.upsert_user(_user_fields())
        again, created = store.upsert_user(_user_fields(email="Alice@Example.com"))
        assert created is False
        assert again.id == user.id
        assert store.find_user_by_email("ALICE@EXAMPLE.COM").id == user.id

    def test_missing_fields_are_cleared(self, store):
        store.upsert_user(_user_fields(title="Engineer"))
        again, _ = store.upsert_user(_user_fields(title=None))
        assert again.title is None


class TestApplications:
    def test_upsert_by_name_and_source(self, store):
        app, created = store.upsert_application(_app_fields())
        assert created is True
        again, created = store.upsert_application(_app_fields(category="Other"))
        assert created is False
        assert again.id == app.id
        assert again.category == "Other"

    def test_same_name_other_source_is_distinct(self, store):
        okta_app, _ = store.upsert_application(_app_fields())
        manual_app, created = store.upsert_application(_app_fields(source="manual"))
        assert created is True
        assert manual_app.id != okta_app.id
        assert store.find_application("Slack", "manual").id == manual_app.id


class TestAssignments:
    def test_upsert_by_user_and_application(self, store, engine):
        user, _ = store.upsert_user(_user_fields())
        app, _ = store.upsert_application(_app_fields())

        _, created = store.upsert_assignment(user.id, app.id, {"access_level": "user", "status": "active"})
        assert created is True
        access, created = store.upsert_assignment(user.id, app.id, {"access_level": "admin", "status": "active"})
        assert created is False
        assert access.access_level == "admin"

        with Session(engine) as s:
            assert len(s.exec(select(UserAppAccess)).all()) == 1


class TestAuditEvents:
    def test_append_serialises_details(self, store, engine):
        store.append_audit_event(
            actor="system",
            action="sync",
            object_type="integration",
            object_id=1,
            object_name="Okta",
            details={"status": "completed", "finished": datetime(2024, 1, 1)},
        )
        with Session(engine) as s:
            event = s.exec(select(AuditEvent)).one()
        assert event.object_id == "1"
        assert json.loads(event.details_json)["status"] == "completed"

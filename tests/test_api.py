from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from monly import paths
from monly.config import Config
from monly.main import create_app
from monly.storage.db import session_scope
from monly.reminders.service import ReminderRunSummary
from monly.storage.migration_runner import MigrationError
from monly.storage.models import User, UserPreferences, WhatsAppIntegration


TOKEN = "test-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


def _config(tmp_path: Path, **overrides) -> Config:
    values = dict(
        port=55601,
        token=TOKEN,
        log_level="WARNING",
        log_file_enabled=False,
        log_file_path=str(tmp_path / "logs" / "monly.log"),
        log_file_max_bytes=200_000,
        db_path=str(tmp_path / "api.db"),
        migrations_dir=str(paths.get_default_migrations_dir()),
        reminder_enabled=True,
        reminder_hour=20,
        reminder_minute=0,
        reminder_timezone="Asia/Jakarta",
        dev_mode=False,
        dev_initial_check_delay_seconds=5.0,
    )
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def client(tmp_path):
    app = create_app(_config(tmp_path))
    with TestClient(app) as c:
        yield c


def test_health_is_public(client):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.json() == {"status": "healthy"}


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": TOKEN}])
def test_api_requires_bearer_token(client, headers):
    res = client.get("/api/reminders/scheduler", headers=headers)
    assert res.status_code == 401


def test_migration_status_after_startup(client):
    res = client.get("/api/migrations/status", headers=AUTH)
    assert res.status_code == 200
    body = res.json()
    assert (body["total"], body["executed"], body["pending"]) == (3, 3, 0)
    assert [r["id"] for r in body["executed_records"]] == ["001", "002", "003"]
    assert body["pending_files"] == []


def test_scheduler_is_armed_on_startup(client):
    body = client.get("/api/reminders/scheduler", headers=AUTH).json()
    assert body["armed"] is True
    assert body["fire_time"] == "20:00"
    assert body["timezone"] == "Asia/Jakarta"


def test_scheduler_start_stop_cycle(client):
    res = client.post("/api/reminders/scheduler/start", headers=AUTH)
    assert res.json() == {"result": "already_running", "armed": True}

    res = client.post("/api/reminders/scheduler/stop", headers=AUTH)
    assert res.json() == {"result": "stopped", "armed": False}

    res = client.post("/api/reminders/scheduler/stop", headers=AUTH)
    assert res.json() == {"result": "not_running", "armed": False}

    res = client.post("/api/reminders/scheduler/start", headers=AUTH)
    assert res.json() == {"result": "scheduled", "armed": True}


def test_scheduler_not_started_when_disabled(tmp_path):
    app = create_app(_config(tmp_path, reminder_enabled=False))
    with TestClient(app) as c:
        body = c.get("/api/reminders/scheduler", headers=AUTH).json()
    assert body["armed"] is False


def test_manual_trigger_reports_summary(client):
    with session_scope() as s:
        s.add(User(id="u1", email="u1@example.com"))
        s.flush()
        s.add(UserPreferences(user_id="u1", language="en", transaction_reminders=1))

    res = client.post("/api/reminders/trigger-transaction-reminders", headers=AUTH)
    assert res.status_code == 200
    assert res.json() == {"users_checked": 1, "reminders_sent": 0, "already_logged": 0, "failed_users": 0}


def test_manual_trigger_returns_evaluator_summary(client, monkeypatch):
    summary = ReminderRunSummary(users_checked=3, reminders_sent=2, already_logged=1, failed_users=0)
    monkeypatch.setattr(client.app.state.reminder_service, "check_and_send_reminders", lambda: summary)

    res = client.post("/api/reminders/trigger-transaction-reminders", headers=AUTH)
    assert res.status_code == 200
    assert res.json() == {"users_checked": 3, "reminders_sent": 2, "already_logged": 1, "failed_users": 0}


def test_manual_trigger_failure_returns_500(client, monkeypatch):
    def broken():
        raise RuntimeError("boom")

    monkeypatch.setattr(client.app.state.reminder_service, "check_and_send_reminders", broken)
    res = client.post("/api/reminders/trigger-transaction-reminders", headers=AUTH)
    assert res.status_code == 500
    assert "boom" in res.json()["detail"]


def test_notification_logs_unknown_user(client):
    res = client.get("/api/reminders/notification-logs", params={"user_id": "ghost"}, headers=AUTH)
    assert res.status_code == 404


def test_notification_logs_lists_sent_reminders(client):
    with session_scope() as s:
        s.add(User(id="u1", email="u1@example.com"))
        s.flush()
        s.add(UserPreferences(user_id="u1", language="id", transaction_reminders=1))
        s.add(WhatsAppIntegration(user_id="u1", whatsapp_number="+6281111", status="active"))

    client.post("/api/reminders/trigger-transaction-reminders", headers=AUTH)

    res = client.get("/api/reminders/notification-logs", params={"user_id": "u1"}, headers=AUTH)
    assert res.status_code == 200
    [log] = res.json()
    assert log["status"] == "sent"
    assert log["type"] == "transaction_reminder"
    assert log["whatsapp_number"] == "+6281111"


def test_broken_migration_stops_startup(tmp_path):
    migrations = tmp_path / "bad_migrations"
    migrations.mkdir()
    (migrations / "001_broken.sql").write_text("CREATE TABL nope (id INTEGER);", encoding="utf-8")

    with pytest.raises(MigrationError):
        create_app(_config(tmp_path, migrations_dir=str(migrations)))

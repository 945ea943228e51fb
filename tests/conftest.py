from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from monly import paths
from monly.storage.db import build_session_scope, create_sqlite_engine, dispose_db
from monly.storage.migration_runner import MigrationRunner


@pytest.fixture(autouse=True)
def _isolated_app_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point the app root at a per-test directory so config/data/logs never leak."""

    monkeypatch.setenv("MONLY_APP_ROOT", str(tmp_path / "app_root"))
    monkeypatch.delenv("MONLY_ENV", raising=False)
    yield
    dispose_db()


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    d = tmp_path / "migrations"
    d.mkdir()
    return d


@pytest.fixture
def write_migration(migrations_dir: Path) -> Callable[[str, str], Path]:
    """Write one migration file into the temporary migrations directory."""

    def _write(filename: str, sql: str) -> Path:
        p = migrations_dir / filename
        p.write_text(sql, encoding="utf-8")
        return p

    return _write


@pytest.fixture
def engine(tmp_path: Path):
    eng = create_sqlite_engine(tmp_path / "test.db")
    yield eng
    eng.dispose()


@pytest.fixture
def ledger_ids(engine) -> Callable[[], list[str]]:
    """Return the ids recorded in the migrations ledger, in id order."""

    def _read() -> list[str]:
        with engine.connect() as conn:
            return [str(r[0]) for r in conn.execute(text("SELECT id FROM migrations ORDER BY id"))]

    return _read


@pytest.fixture
def migrated_engine(engine):
    """Engine with the shipped schema applied."""

    MigrationRunner(engine, paths.get_default_migrations_dir()).apply_pending()
    return engine


@pytest.fixture
def session_scope(migrated_engine):
    factory = sessionmaker(bind=migrated_engine, autoflush=False, autocommit=False, future=True)
    return build_session_scope(factory)

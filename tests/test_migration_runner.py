from __future__ import annotations

import pytest
from sqlalchemy import inspect, text

from monly import paths
from monly.storage.migration_runner import (
    MigrationError,
    MigrationOrderError,
    MigrationRunner,
    check_prefix_widths,
    check_unique_ids,
    extract_migration_id,
    strip_sql_comments,
)


def _table_names(engine) -> set[str]:
    return set(inspect(engine).get_table_names())


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def test_extract_migration_id_uses_numeric_prefix():
    assert extract_migration_id("001_add_x.sql") == "001"
    assert extract_migration_id("0042_reminders.sql") == "0042"


def test_extract_migration_id_falls_back_to_filename():
    assert extract_migration_id("init.sql") == "init.sql"
    assert extract_migration_id("v1_init.sql") == "v1_init.sql"
    assert extract_migration_id("001-init.sql") == "001-init.sql"


def test_strip_sql_comments_drops_comment_and_blank_lines():
    sql = "-- header\n\nCREATE TABLE a (id INTEGER);\n  -- indented comment\nINSERT INTO a VALUES (1);\n"
    assert strip_sql_comments(sql) == "CREATE TABLE a (id INTEGER);\nINSERT INTO a VALUES (1);"


def test_check_prefix_widths_accepts_uniform_and_unprefixed_names():
    check_prefix_widths(["001_a.sql", "002_b.sql", "010_c.sql", "seed.sql"])


def test_check_prefix_widths_rejects_mixed_widths():
    with pytest.raises(MigrationOrderError):
        check_prefix_widths(["999_a.sql", "1000_b.sql"])


# ---------------------------------------------------------------------------
# apply_pending
# ---------------------------------------------------------------------------


def test_apply_pending_applies_in_order_and_records_ledger(engine, write_migration, migrations_dir, ledger_ids):
    write_migration("001_init.sql", "CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT);")
    write_migration("002_seed.sql", "INSERT INTO t (name) VALUES ('first');")

    runner = MigrationRunner(engine, migrations_dir)
    assert runner.apply_pending() == 2
    assert ledger_ids() == ["001", "002"]

    with engine.connect() as conn:
        assert conn.execute(text("SELECT name FROM t")).scalar_one() == "first"

    # 2回目は何もしない
    assert runner.apply_pending() == 0
    assert ledger_ids() == ["001", "002"]


def test_apply_pending_orders_by_filename(engine, write_migration, migrations_dir, ledger_ids):
    write_migration("010_c.sql", "INSERT INTO seen (tag) VALUES ('c');")
    write_migration("002_b.sql", "INSERT INTO seen (tag) VALUES ('b');")
    write_migration("001_a.sql", "CREATE TABLE seen (n INTEGER PRIMARY KEY AUTOINCREMENT, tag TEXT);\nINSERT INTO seen (tag) VALUES ('a');")

    runner = MigrationRunner(engine, migrations_dir)
    assert runner.apply_pending() == 3
    assert ledger_ids() == ["001", "002", "010"]

    with engine.connect() as conn:
        tags = [r[0] for r in conn.execute(text("SELECT tag FROM seen ORDER BY n"))]
    assert tags == ["a", "b", "c"]


def test_apply_pending_ignores_non_sql_files(engine, write_migration, migrations_dir, ledger_ids):
    write_migration("001_init.sql", "CREATE TABLE t (id INTEGER);")
    write_migration("README.md", "# notes")
    write_migration("002_draft.txt", "CREATE TABLE nope (id INTEGER);")

    runner = MigrationRunner(engine, migrations_dir)
    assert runner.apply_pending() == 1
    assert ledger_ids() == ["001"]
    assert "nope" not in _table_names(engine)


def test_apply_pending_records_unprefixed_file_under_full_name(engine, write_migration, migrations_dir, ledger_ids):
    write_migration("seed.sql", "CREATE TABLE seeded (id INTEGER);")

    runner = MigrationRunner(engine, migrations_dir)
    assert runner.apply_pending() == 1
    assert ledger_ids() == ["seed.sql"]


def test_apply_pending_records_now_func_timestamp(engine, write_migration, migrations_dir):
    write_migration("001_init.sql", "CREATE TABLE t (id INTEGER);")

    runner = MigrationRunner(engine, migrations_dir, now_func=lambda: 1_700_000_000.7)
    runner.apply_pending()

    [record] = runner.get_executed_migrations()
    assert record.filename == "001_init.sql"
    assert record.executed_at == 1_700_000_000
    assert record.executed_at_iso == "2023-11-14T22:13:20+00:00"


def test_apply_pending_stops_at_first_failure(engine, write_migration, migrations_dir, ledger_ids):
    write_migration("001_init.sql", "CREATE TABLE t (id INTEGER);")
    write_migration("002_broken.sql", "CREATE TABL broken (id INTEGER);")
    write_migration("003_after.sql", "CREATE TABLE after_broken (id INTEGER);")

    runner = MigrationRunner(engine, migrations_dir)
    with pytest.raises(MigrationError) as excinfo:
        runner.apply_pending()

    assert excinfo.value.filename == "002_broken.sql"
    assert ledger_ids() == ["001"]
    assert "after_broken" not in _table_names(engine)


def test_apply_pending_resumes_after_fix(engine, write_migration, migrations_dir, ledger_ids):
    write_migration("001_init.sql", "CREATE TABLE t (id INTEGER);")
    write_migration("002_broken.sql", "CREATE TABL broken (id INTEGER);")
    write_migration("003_after.sql", "CREATE TABLE after_broken (id INTEGER);")

    runner = MigrationRunner(engine, migrations_dir)
    with pytest.raises(MigrationError):
        runner.apply_pending()

    write_migration("002_broken.sql", "CREATE TABLE fixed (id INTEGER);")
    assert runner.apply_pending() == 2
    assert ledger_ids() == ["001", "002", "003"]
    assert {"fixed", "after_broken"} <= _table_names(engine)


def test_apply_pending_rejects_mixed_prefix_widths_before_applying(engine, write_migration, migrations_dir, ledger_ids):
    write_migration("01_init.sql", "CREATE TABLE t (id INTEGER);")
    write_migration("002_more.sql", "CREATE TABLE u (id INTEGER);")

    runner = MigrationRunner(engine, migrations_dir)
    with pytest.raises(MigrationOrderError):
        runner.apply_pending()

    assert ledger_ids() == []
    assert "t" not in _table_names(engine)


def test_comment_only_migration_is_skipped_and_stays_pending(engine, write_migration, migrations_dir, ledger_ids):
    write_migration("001_init.sql", "CREATE TABLE t (id INTEGER);")
    write_migration("002_placeholder.sql", "-- nothing yet\n\n-- still nothing\n")

    runner = MigrationRunner(engine, migrations_dir)
    assert runner.apply_pending() == 1
    assert ledger_ids() == ["001"]
    assert runner.status().pending_files == ["002_placeholder.sql"]


def test_missing_directory_means_nothing_to_apply(engine, tmp_path, ledger_ids):
    runner = MigrationRunner(engine, tmp_path / "does_not_exist")
    assert runner.apply_pending() == 0
    assert ledger_ids() == []


def test_shipped_migrations_apply_cleanly(engine, ledger_ids):
    runner = MigrationRunner(engine, paths.get_default_migrations_dir())
    assert runner.apply_pending() == 3
    assert ledger_ids() == ["001", "002", "003"]

    tables = _table_names(engine)
    assert {"users", "user_preferences", "transactions", "whatsapp_integrations", "notification_logs"} <= tables
    pref_columns = {c["name"] for c in inspect(engine).get_columns("user_preferences")}
    assert "transaction_reminders" in pref_columns
    budget_columns = {c["name"] for c in inspect(engine).get_columns("budgets")}
    assert "metadata" in budget_columns


# ---------------------------------------------------------------------------
# status / rollback
# ---------------------------------------------------------------------------


def test_status_reports_without_touching_ledger(engine, write_migration, migrations_dir, ledger_ids):
    write_migration("001_init.sql", "CREATE TABLE t (id INTEGER);")
    write_migration("002_more.sql", "CREATE TABLE u (id INTEGER);")
    runner = MigrationRunner(engine, migrations_dir)

    before = runner.status()
    assert (before.total, before.executed, before.pending) == (2, 0, 2)
    assert before.pending_files == ["001_init.sql", "002_more.sql"]
    assert ledger_ids() == []

    runner.apply_pending()
    write_migration("003_new.sql", "CREATE TABLE v (id INTEGER);")

    after = runner.status()
    assert (after.total, after.executed, after.pending) == (3, 2, 1)
    assert [r.id for r in after.executed_records] == ["001", "002"]
    assert after.pending_files == ["003_new.sql"]
    assert ledger_ids() == ["001", "002"]
    assert "v" not in _table_names(engine)


def test_rollback_reports_latest_without_changes(engine, write_migration, migrations_dir, ledger_ids):
    write_migration("001_init.sql", "CREATE TABLE t (id INTEGER);")
    write_migration("002_more.sql", "CREATE TABLE u (id INTEGER);")
    write_migration("003_last.sql", "CREATE TABLE v (id INTEGER);")
    runner = MigrationRunner(engine, migrations_dir)
    runner.apply_pending()

    targets = runner.rollback(2)
    assert [r.filename for r in targets] == ["003_last.sql", "002_more.sql"]
    assert ledger_ids() == ["001", "002", "003"]
    assert {"t", "u", "v"} <= _table_names(engine)


def test_rollback_with_empty_ledger_returns_nothing(engine, migrations_dir):
    runner = MigrationRunner(engine, migrations_dir)
    assert runner.rollback() == []


def test_rollback_rejects_non_positive_steps(engine, migrations_dir):
    runner = MigrationRunner(engine, migrations_dir)
    with pytest.raises(ValueError):
        runner.rollback(0)


# ---------------------------------------------------------------------------
# id uniqueness / atomic application
# ---------------------------------------------------------------------------


def test_check_unique_ids_rejects_shared_prefix():
    check_unique_ids(["001_a.sql", "002_b.sql", "seed.sql"])
    with pytest.raises(MigrationOrderError, match="001"):
        check_unique_ids(["001_a.sql", "001_b.sql"])


def test_duplicate_ids_are_rejected_before_applying(engine, write_migration, migrations_dir, ledger_ids):
    write_migration("001_a.sql", "CREATE TABLE a (id INTEGER);")
    write_migration("001_b.sql", "CREATE TABLE b (id INTEGER);")

    runner = MigrationRunner(engine, migrations_dir)
    with pytest.raises(MigrationOrderError):
        runner.apply_pending()

    assert ledger_ids() == []
    assert not {"a", "b"} & _table_names(engine)


def test_partially_failed_file_leaves_nothing_behind(engine, write_migration, migrations_dir, ledger_ids):
    write_migration("001_init.sql", "CREATE TABLE t (id INTEGER);")
    write_migration("002_two.sql", "CREATE TABLE half (id INTEGER);\nCREATE TABL broken (id INTEGER);")

    runner = MigrationRunner(engine, migrations_dir)
    with pytest.raises(MigrationError):
        runner.apply_pending()

    assert ledger_ids() == ["001"]
    assert "half" not in _table_names(engine)

    # 直したファイルはそのまま再実行できる
    write_migration("002_two.sql", "CREATE TABLE half (id INTEGER);\nCREATE TABLE whole (id INTEGER);")
    assert runner.apply_pending() == 1
    assert ledger_ids() == ["001", "002"]
    assert {"half", "whole"} <= _table_names(engine)


def test_filename_with_quote_is_recorded_verbatim(engine, write_migration, migrations_dir):
    write_migration("001_o'brien.sql", "CREATE TABLE t (id INTEGER);")

    runner = MigrationRunner(engine, migrations_dir)
    assert runner.apply_pending() == 1
    assert [r.filename for r in runner.get_executed_migrations()] == ["001_o'brien.sql"]

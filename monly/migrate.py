"""
マイグレーション CLI

使い方:
    python -m monly.migrate [run|migrate|status|rollback [n]|help]

- run / migrate: 未適用のマイグレーションを適用する（既定）
- status: 適用状況を表示する
- rollback [n]: 直近 n 件のロールバック対象を表示する（実行はしない）
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from monly import paths
from monly.runtime.logging import setup_logging
from monly.storage.db import create_sqlite_engine
from monly.storage.migration_runner import MigrationError, MigrationRunner, extract_migration_id


logger = logging.getLogger(__name__)

_COMMANDS = ("run", "migrate", "status", "rollback", "help")


def _build_parser() -> argparse.ArgumentParser:
    """CLI 引数パーサを作る。"""

    parser = argparse.ArgumentParser(
        prog="python -m monly.migrate",
        description="Database migration tool",
        epilog=(
            "examples:\n"
            "  python -m monly.migrate              run all pending migrations\n"
            "  python -m monly.migrate status       show migration status\n"
            "  python -m monly.migrate rollback 3   show the last 3 migrations to roll back"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("command", nargs="?", default="run", choices=_COMMANDS, help="command (default: run)")
    parser.add_argument("steps", nargs="?", type=int, default=1, help="rollback steps (default: 1)")

    # --- DB / SQL の場所 ---
    parser.add_argument("--db-path", default=None, help="SQLite DB path (default: <app_root>/data/database.db)")
    parser.add_argument("--migrations-dir", default=None, help="directory of *.sql migrations")
    parser.add_argument("--log-level", default="INFO", help="log level (default: INFO)")
    return parser


def _print_status(runner: MigrationRunner) -> None:
    """適用状況を表示する。"""

    st = runner.status()
    print("Migration Status:")
    print("=================")
    print(f"Total migrations: {st.total}")
    print(f"Executed: {st.executed}")
    print(f"Pending: {st.pending}")

    if st.executed_records:
        print("\nExecuted migrations:")
        for r in st.executed_records:
            print(f"  {r.id}: {r.filename} ({r.executed_at_iso})")

    if st.pending_files:
        print("\nPending migrations:")
        for name in st.pending_files:
            print(f"  {extract_migration_id(name)}: {name}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI エントリポイント。終了コードを返す。"""

    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "help":
        parser.print_help()
        return 0

    if args.command == "rollback" and args.steps <= 0:
        parser.error("rollback steps must be >= 1")

    setup_logging(args.log_level)

    db_path = paths.resolve_path_under_app_root(args.db_path) if args.db_path else (paths.get_db_dir() / "database.db")
    migrations_dir = (
        paths.resolve_path_under_app_root(args.migrations_dir)
        if args.migrations_dir
        else paths.get_default_migrations_dir()
    )

    engine = create_sqlite_engine(db_path)
    try:
        runner = MigrationRunner(engine, migrations_dir)

        if args.command in ("run", "migrate"):
            applied = runner.apply_pending()
            print(f"Successfully executed {applied} migration(s)")
        elif args.command == "status":
            _print_status(runner)
        elif args.command == "rollback":
            targets = runner.rollback(args.steps)
            if not targets:
                print("No migrations to rollback")
            else:
                print("Rollback functionality requires manual intervention")
                print("Migrations to rollback:")
                for r in targets:
                    print(f"  - {r.filename}")
        return 0
    except MigrationError as exc:
        logger.error("migration failed: %s", str(exc))
        print(f"Migration failed: {exc}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())

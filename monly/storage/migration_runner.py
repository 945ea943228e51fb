"""
SQL ファイルベースのマイグレーション適用

役割:
- migrations ディレクトリの `<数値ID>_<説明>.sql` を名前順に並べ、未適用のものだけを適用する。
- 適用済みの記録は同じ DB 内の `migrations` テーブル（台帳）に追記する。

方針:
- 並び順はファイル名の文字列比較（数値比較ではない）。ID はゼロ埋めが前提。
- ゼロ埋め幅が揃っていない場合や ID が重複している場合は、何も適用する前に MigrationOrderError で止める。
- 1ファイルの本文と台帳行は同じトランザクションで確定する（途中で失敗したら両方とも残らない）。
- 1ファイルの実行に失敗したら即座に例外を投げ、以降のファイルは試みない。
  失敗したファイルの台帳行は書かない。
- ロールバックは実行しない（対象を報告するだけ）。
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from sqlalchemy import text
from sqlalchemy.engine import Engine


logger = logging.getLogger(__name__)

# 台帳テーブル名
LEDGER_TABLE_NAME = "migrations"

# マイグレーションとして扱う拡張子
MIGRATION_FILE_SUFFIX = ".sql"

# ファイル名先頭の数値ID（"001_add_x.sql" -> "001"）
_MIGRATION_ID_RE = re.compile(r"^(\d+)_")


class MigrationError(Exception):
    """マイグレーション適用の失敗。起動を止める前提の致命的エラー。"""

    def __init__(self, message: str, *, filename: str | None = None) -> None:
        super().__init__(message)
        self.filename = filename


class MigrationOrderError(MigrationError):
    """数値IDのゼロ埋め幅が揃っておらず、名前順が適用順として信用できない。"""


@dataclass(frozen=True)
class MigrationRecord:
    """適用済みマイグレーション1件（台帳の1行）。"""

    id: str
    filename: str
    executed_at: int  # UNIX秒

    @property
    def executed_at_iso(self) -> str:
        """適用時刻（UTC, ISO 8601）。"""
        return datetime.fromtimestamp(int(self.executed_at), tz=timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True)
class MigrationStatus:
    """マイグレーションの状況レポート（読み取り専用）。"""

    total: int
    executed: int
    pending: int
    executed_records: list[MigrationRecord] = field(default_factory=list)
    pending_files: list[str] = field(default_factory=list)


def extract_migration_id(filename: str) -> str:
    """
    ファイル名からマイグレーションIDを取り出す。

    先頭の数値（最初の `_` まで）を返す。数値プレフィックスが無い場合は
    ファイル名全体を ID として扱う。
    """

    m = _MIGRATION_ID_RE.match(filename)
    return m.group(1) if m else filename


def strip_sql_comments(sql: str) -> str:
    """`--` で始まるコメント行と空行を除き、残りを改行で連結する。"""

    lines = [line for line in sql.split("\n") if line.strip() and not line.strip().startswith("--")]
    return "\n".join(lines)


def check_prefix_widths(filenames: list[str]) -> None:
    """
    数値プレフィックスの桁数が揃っているか検証する。

    名前順で適用するため、`999_` の後に `1000_` が来ると順序が崩れる。
    桁数が混在していたら MigrationOrderError。
    """

    widths: dict[int, str] = {}
    for name in filenames:
        m = _MIGRATION_ID_RE.match(name)
        if m:
            widths.setdefault(len(m.group(1)), name)
    if len(widths) > 1:
        samples = ", ".join(f"{w} digits ({n})" for w, n in sorted(widths.items()))
        raise MigrationOrderError(
            f"migration id prefixes must share one zero-padded width, found: {samples}"
        )


def check_unique_ids(filenames: list[str]) -> None:
    """
    ファイル間で ID が重複していないか検証する。

    `001_a.sql` と `001_b.sql` のように同じ ID があると台帳で区別できないため、
    重複があれば MigrationOrderError。
    """

    seen: dict[str, str] = {}
    duplicates: list[str] = []
    for name in filenames:
        migration_id = extract_migration_id(name)
        if migration_id in seen:
            duplicates.append(f"{migration_id} ({seen[migration_id]}, {name})")
        else:
            seen[migration_id] = name
    if duplicates:
        raise MigrationOrderError(f"duplicate migration id(s): {'; '.join(duplicates)}")


def _sql_literal(value: str) -> str:
    """SQL の文字列リテラルにする。"""

    return "'" + str(value).replace("'", "''") + "'"


class MigrationRunner:
    """
    SQL ファイルのマイグレーションを適用するランナー。

    engine は呼び出し側が所有する（dispose は呼び出し側で行う）。
    """

    def __init__(
        self,
        engine: Engine,
        migrations_dir: str | Path,
        *,
        now_func: Callable[[], float] = time.time,
    ) -> None:
        self._engine = engine
        self._migrations_dir = Path(migrations_dir)
        self._now_func = now_func
        self._init_ledger_table()

    @property
    def migrations_dir(self) -> Path:
        """マイグレーションSQLのディレクトリ。"""
        return self._migrations_dir

    def _init_ledger_table(self) -> None:
        """台帳テーブルを作成する（既存ならそのまま）。"""

        with self._engine.begin() as conn:
            conn.execute(
                text(
                    f"""
                    CREATE TABLE IF NOT EXISTS {LEDGER_TABLE_NAME} (
                        id TEXT PRIMARY KEY,
                        filename TEXT NOT NULL,
                        executed_at INTEGER NOT NULL
                    )
                    """
                )
            )

    def get_executed_migrations(self) -> list[MigrationRecord]:
        """台帳の記録を ID 順で返す。"""

        with self._engine.connect() as conn:
            rows = conn.execute(
                text(f"SELECT id, filename, executed_at FROM {LEDGER_TABLE_NAME} ORDER BY id")
            ).fetchall()
        return [MigrationRecord(id=str(r[0]), filename=str(r[1]), executed_at=int(r[2])) for r in rows]

    def list_migration_files(self) -> list[str]:
        """マイグレーションファイル名を名前順（文字列比較）で返す。"""

        if not self._migrations_dir.is_dir():
            logger.warning("migrations directory not found: %s", self._migrations_dir)
            return []

        names = [
            p.name
            for p in self._migrations_dir.iterdir()
            if p.is_file() and p.name.endswith(MIGRATION_FILE_SUFFIX)
        ]
        return sorted(names)

    def _pending_files(self, all_files: list[str], executed_ids: set[str]) -> list[str]:
        """台帳に ID が無いファイルだけを、並び順を保って返す。"""

        return [name for name in all_files if extract_migration_id(name) not in executed_ids]

    def _execute_migration(self, filename: str) -> bool:
        """
        1ファイルを実行し、台帳へ記録する。

        Returns:
            実行した場合 True。コメント/空行だけのファイルは実行も記録もせず False。
        """

        migration_path = self._migrations_dir / filename
        statements = strip_sql_comments(migration_path.read_text(encoding="utf-8"))
        if not statements.strip():
            logger.warning("migration has no statements, skipped: %s", filename)
            return False

        logger.info("executing migration: %s", filename)
        migration_id = extract_migration_id(filename)

        # --- 本文と台帳行を1つのトランザクションにまとめて executescript で流す ---
        # executescript は開始時に commit するので BEGIN はスクリプト内に置く
        script = (
            "BEGIN;\n"
            f"{statements}\n;\n"
            f"INSERT INTO {LEDGER_TABLE_NAME} (id, filename, executed_at) "
            f"VALUES ({_sql_literal(migration_id)}, {_sql_literal(filename)}, {int(self._now_func())});\n"
            "COMMIT;"
        )

        raw = self._engine.raw_connection()
        try:
            dbapi_conn = raw.driver_connection
            try:
                dbapi_conn.executescript(script)
            except Exception as exc:
                if dbapi_conn.in_transaction:
                    dbapi_conn.rollback()
                logger.error("migration failed: %s", filename, exc_info=exc)
                raise MigrationError(f"migration {filename} failed: {exc}", filename=filename) from exc
        finally:
            raw.close()

        logger.info("migration executed: %s", filename)
        return True

    def apply_pending(self) -> int:
        """
        未適用のマイグレーションを名前順に適用する。

        Returns:
            適用したファイル数。

        Raises:
            MigrationOrderError: ID の桁数が揃っていない、または ID が重複している。
            MigrationError: いずれかのファイルの実行に失敗した（以降は未実行）。
        """

        all_files = self.list_migration_files()
        check_prefix_widths(all_files)
        check_unique_ids(all_files)

        executed_ids = {r.id for r in self.get_executed_migrations()}
        pending = self._pending_files(all_files, executed_ids)
        if not pending:
            logger.info("no pending migrations")
            return 0

        logger.info("found %d pending migration(s): %s", len(pending), ", ".join(pending))

        # --- 1件でも失敗したら例外がそのまま伝播し、残りは試みない ---
        applied = 0
        for filename in pending:
            if self._execute_migration(filename):
                applied += 1

        logger.info("applied %d migration(s)", applied)
        return applied

    def status(self) -> MigrationStatus:
        """適用状況を返す。台帳は変更しない。"""

        records = self.get_executed_migrations()
        all_files = self.list_migration_files()
        executed_ids = {r.id for r in records}
        pending = self._pending_files(all_files, executed_ids)
        return MigrationStatus(
            total=len(all_files),
            executed=len(records),
            pending=len(pending),
            executed_records=records,
            pending_files=pending,
        )

    def rollback(self, steps: int = 1) -> list[MigrationRecord]:
        """
        直近 steps 件のロールバック対象を報告する。

        ロールバック SQL は持たないため実行はしない（台帳も変更しない）。
        """

        if int(steps) <= 0:
            raise ValueError("steps must be >= 1")

        with self._engine.connect() as conn:
            rows = conn.execute(
                text(
                    f"SELECT id, filename, executed_at FROM {LEDGER_TABLE_NAME} "
                    "ORDER BY id DESC LIMIT :limit"
                ),
                {"limit": int(steps)},
            ).fetchall()
        targets = [MigrationRecord(id=str(r[0]), filename=str(r[1]), executed_at=int(r[2])) for r in rows]

        if not targets:
            logger.info("no migrations to roll back")
            return []

        logger.warning(
            "rollback requires manual intervention; would roll back: %s",
            ", ".join(r.filename for r in targets),
        )
        return targets

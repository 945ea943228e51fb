"""
DB 接続とセッション管理

SQLite の DB ファイル1つを扱う。
起動時に init_db() でエンジンとセッションファクトリを作り、未適用のマイグレーションを適用する。
スキーマは migrations/*.sql が正で、ORM（storage/models.py）はそれに合わせて定義する。
"""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Callable, ContextManager, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from monly.storage.migration_runner import MigrationRunner


logger = logging.getLogger(__name__)

# ORM 用 Base（テーブル作成はマイグレーションが担う）
Base = declarative_base()

# グローバルエンジン/セッション
_engine: Engine | None = None
SessionLocal: sessionmaker | None = None


def create_sqlite_engine(db_path: str | Path) -> Engine:
    """
    SQLite 用の SQLAlchemy エンジンを作成する。
    接続ごとに foreign_keys を有効化する。
    """

    # --- 親ディレクトリを用意する ---
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)

    # スレッドチェックを無効化し、ロック解消を待つ（to_thread からも使うため）。
    connect_args = {"check_same_thread": False, "timeout": 10.0}
    engine = create_engine(f"sqlite:///{p.resolve()}", future=True, connect_args=connect_args)

    @event.listens_for(engine, "connect")
    def apply_sqlite_pragmas(dbapi_conn, connection_record):
        """接続ごとに必要な PRAGMA を適用する（foreign_keys は接続ごとに必要）。"""
        cursor = dbapi_conn.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()

    return engine


def init_db(db_path: str | Path, migrations_dir: str | Path) -> int:
    """
    DB を初期化する（起動時）。

    - エンジンとセッションファクトリを作成する
    - 未適用のマイグレーションを適用する（失敗は起動失敗として伝播させる）

    Returns:
        今回適用したマイグレーション数。
    """

    global _engine, SessionLocal

    # --- 再初期化時は古いエンジンを閉じる ---
    if _engine is not None:
        _engine.dispose()

    _engine = None
    SessionLocal = None

    engine = create_sqlite_engine(db_path)
    try:
        runner = MigrationRunner(engine, migrations_dir)
        applied = runner.apply_pending()
    except Exception:
        engine.dispose()
        raise

    _engine = engine
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    logger.info("database initialized: %s (migrations applied=%d)", db_path, applied)
    return applied


def get_engine() -> Engine:
    """初期化済みのエンジンを返す。"""

    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


def dispose_db() -> None:
    """エンジンを破棄する（shutdown / テスト用）。"""

    global _engine, SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    SessionLocal = None


def get_db() -> Iterator[Session]:
    """
    DB セッションを取得する（FastAPI依存性注入用）。

    使用後は自動でクローズされる。
    """

    if SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextlib.contextmanager
def session_scope() -> Iterator[Session]:
    """
    DB のセッションスコープ（with文用）。

    正常終了時はコミット、例外時はロールバックする。
    """

    if SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def build_session_scope(session_factory: sessionmaker) -> Callable[[], ContextManager[Session]]:
    """
    任意のセッションファクトリから session_scope 相当を作る。

    サービスへ DB アクセス手段を渡すときに使う（テストでは別 DB を渡せる）。
    """

    @contextlib.contextmanager
    def _scope() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _scope

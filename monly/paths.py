"""
保存先パスの解決。

目的:
    - 設定/DB/ログの置き場所を1箇所に集約する。
    - 相対パスは app_root 基準で解決する。
"""

from __future__ import annotations

import os
import sys
from pathlib import Path


def get_app_root_dir() -> Path:
    """アプリのルートディレクトリを返す。"""

    # --- 明示指定（テスト/配布時） ---
    env_root = str(os.environ.get("MONLY_APP_ROOT", "")).strip()
    if env_root:
        return Path(env_root).resolve()

    # --- PyInstaller (frozen) は exe の隣 ---
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent

    # --- 通常実行はカレントディレクトリ ---
    return Path.cwd().resolve()


def _ensure_dir(p: Path) -> Path:
    """ディレクトリを作成して返す。"""

    p.mkdir(parents=True, exist_ok=True)
    return p


def get_config_dir() -> Path:
    """設定ディレクトリ（config/）を返す。"""

    return _ensure_dir(get_app_root_dir() / "config")


def get_default_config_file_path() -> Path:
    """既定の設定ファイルパス（config/setting.toml）を返す。"""

    return get_config_dir() / "setting.toml"


def get_data_dir() -> Path:
    """データディレクトリ（data/）を返す。"""

    return _ensure_dir(get_app_root_dir() / "data")


def get_db_dir() -> Path:
    """DB 保存先ディレクトリを返す。"""

    return get_data_dir()


def get_logs_dir() -> Path:
    """ログディレクトリ（logs/）を返す。"""

    return _ensure_dir(get_app_root_dir() / "logs")


def get_default_migrations_dir() -> Path:
    """パッケージ同梱のマイグレーションSQLディレクトリを返す。"""

    return (Path(__file__).resolve().parent / "migrations").resolve()


def resolve_path_under_app_root(path: str | Path) -> Path:
    """相対パスなら app_root 基準の絶対パスへ解決する。"""

    p = Path(path).expanduser()
    if p.is_absolute():
        return p.resolve()
    return (get_app_root_dir() / p).resolve()

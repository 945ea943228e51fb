"""
設定読み込みと設定ストア

config/setting.toml を読み、起動中ずっと参照する Config を組み立てる。
パス系の値は app_root 基準で絶対パスに直してから保持する。
"""

from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import tomli

from monly import paths


# TZ 未設定時のリマインダー用タイムゾーン
DEFAULT_REMINDER_TIMEZONE = "Asia/Jakarta"

# setting.toml に書けるキー
_ALLOWED_KEYS = frozenset(
    {
        "port",
        "token",
        "log_level",
        "log_file_enabled",
        "log_file_path",
        "log_file_max_bytes",
        "db_path",
        "migrations_dir",
        "reminder_enabled",
        "reminder_hour",
        "reminder_minute",
        "reminder_timezone",
        "dev_mode",
        "dev_initial_check_delay_seconds",
    }
)


@dataclass(frozen=True)
class Config:
    """起動設定。load_config() が作り、以後は読み取り専用。"""

    port: int
    token: str  # /api の Bearer トークン
    log_level: str
    log_file_enabled: bool
    log_file_path: str
    log_file_max_bytes: int
    db_path: str  # SQLite ファイル（絶対パス）
    migrations_dir: str  # *.sql の置き場（絶対パス）
    reminder_enabled: bool  # 起動時にスケジューラを張るか
    reminder_hour: int  # 0..23
    reminder_minute: int  # 0..59
    reminder_timezone: str  # IANA 名
    dev_mode: bool
    dev_initial_check_delay_seconds: float


class ConfigStore:
    """プロセス全体で共有する設定の入れ物。"""

    def __init__(self, toml_config: Config) -> None:
        self._config = toml_config

    @property
    def toml_config(self) -> Config:
        return self._config

    @property
    def token(self) -> str:
        return self._config.token


def _require_key(data: Mapping[str, Any], key: str) -> Any:
    """必須キーの値を返す。無い/空なら ValueError。"""

    value = data.get(key)
    if value is None or value == "":
        raise ValueError(f"config key '{key}' is required")
    return value


def _int_in_range(data: Mapping[str, Any], key: str, default: int, low: int, high: int) -> int:
    value = int(data.get(key, default))
    if value < low or value > high:
        raise ValueError(f"{key} must be in {low}..{high}")
    return value


def _path_setting(data: Mapping[str, Any], key: str, default: Callable[[], pathlib.Path]) -> str:
    """パス設定を app_root 基準の絶対パスにする（既定値はキーが無いときだけ作る）。"""

    raw = data[key] if key in data else default()
    return str(paths.resolve_path_under_app_root(str(raw)))


def resolve_reminder_timezone(configured: Optional[str], environ: Mapping[str, str]) -> str:
    """
    リマインダー用タイムゾーン名を決める。

    優先順位: TOML の reminder_timezone -> 環境変数 TZ -> DEFAULT_REMINDER_TIMEZONE。
    解決した名前が zoneinfo で引けない場合は ValueError。
    """

    name = str(configured or "").strip() or str(environ.get("TZ", "") or "").strip() or DEFAULT_REMINDER_TIMEZONE
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"unknown timezone: {name!r}") from exc
    return name


def load_config(
    path: str | pathlib.Path | None = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """
    setting.toml を読み込んで Config を返す。

    Args:
        path: 設定ファイル。省略時は app_root/config/setting.toml。
        environ: TZ / MONLY_ENV の参照元（省略時は os.environ）。

    Raises:
        FileNotFoundError: 設定ファイルが無い。
        ValueError: 未知のキー、必須キーの欠落、範囲外の値。
    """

    env = os.environ if environ is None else environ

    setting_path = paths.resolve_path_under_app_root(
        paths.get_default_config_file_path() if path is None else path
    )
    if not setting_path.exists():
        raise FileNotFoundError(f"config file not found: {setting_path}")
    with setting_path.open("rb") as f:
        data = tomli.load(f)

    # --- 書き間違いは起動時に落とす ---
    unknown = sorted(set(data) - _ALLOWED_KEYS)
    if unknown:
        raise ValueError(f"unknown config key(s): {', '.join(unknown)} (allowed: {sorted(_ALLOWED_KEYS)})")

    _require_key(data, "port")
    port = _int_in_range(data, "port", 0, 1, 65535)

    delay = float(data.get("dev_initial_check_delay_seconds", 5))
    if delay < 0:
        raise ValueError("dev_initial_check_delay_seconds must be >= 0")

    # --- 開発モードは TOML か MONLY_ENV=development ---
    dev_mode = bool(data.get("dev_mode", False)) or str(env.get("MONLY_ENV", "")).strip().lower() == "development"

    return Config(
        port=port,
        token=str(_require_key(data, "token")),
        log_level=str(_require_key(data, "log_level")),
        log_file_enabled=bool(data.get("log_file_enabled", False)),
        log_file_path=_path_setting(data, "log_file_path", lambda: paths.get_logs_dir() / "monly.log"),
        log_file_max_bytes=int(data.get("log_file_max_bytes", 200_000)),
        db_path=_path_setting(data, "db_path", lambda: paths.get_db_dir() / "database.db"),
        migrations_dir=_path_setting(data, "migrations_dir", paths.get_default_migrations_dir),
        reminder_enabled=bool(data.get("reminder_enabled", True)),
        reminder_hour=_int_in_range(data, "reminder_hour", 20, 0, 23),
        reminder_minute=_int_in_range(data, "reminder_minute", 0, 0, 59),
        reminder_timezone=resolve_reminder_timezone(data.get("reminder_timezone"), env),
        dev_mode=dev_mode,
        dev_initial_check_delay_seconds=delay,
    )


_config_store: ConfigStore | None = None


def set_global_config_store(store: ConfigStore) -> None:
    """起動時に1回だけ呼ぶ。"""
    global _config_store
    _config_store = store


def get_config_store() -> ConfigStore:
    """登録済みの ConfigStore を返す。未登録なら RuntimeError。"""
    if _config_store is None:
        raise RuntimeError("ConfigStore not initialized")
    return _config_store


def get_token() -> str:
    return get_config_store().token

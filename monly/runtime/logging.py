"""
ログ設定

起動時にルートロガーへコンソール/ファイルのハンドラを付与する。
uvicorn のアクセスログから、頻繁なリクエストだけを除外するフィルタも提供する。
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"

# setup_logging が付与したハンドラ（再呼び出し時に差し替える）
_installed_handlers: list[logging.Handler] = []


def setup_logging(
    level: str,
    *,
    log_file_enabled: bool = False,
    log_file_path: str | None = None,
    log_file_max_bytes: int = 200_000,
) -> None:
    """
    ルートロガーを設定する。

    Args:
        level: ログレベル名（DEBUG/INFO/WARNING/ERROR）。
        log_file_enabled: True ならローテーション付きファイルログも出力する。
        log_file_path: ファイルログの保存先。
        log_file_max_bytes: ローテーションサイズ（bytes）。
    """

    root = logging.getLogger()
    resolved_level = getattr(logging, str(level or "INFO").upper(), None)
    if not isinstance(resolved_level, int):
        raise ValueError(f"invalid log level: {level!r}")

    # --- 以前に付与したハンドラを外す（二重出力を防ぐ） ---
    for h in list(_installed_handlers):
        root.removeHandler(h)
        h.close()
    _installed_handlers.clear()

    formatter = logging.Formatter(_LOG_FORMAT)

    # --- コンソール ---
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)
    _installed_handlers.append(console)

    # --- ファイル（任意） ---
    if log_file_enabled:
        if not log_file_path:
            raise ValueError("log_file_path is required when log_file_enabled is true")
        Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file_path,
            maxBytes=max(1, int(log_file_max_bytes)),
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        _installed_handlers.append(file_handler)

    root.setLevel(resolved_level)


class _UvicornAccessPathFilter(logging.Filter):
    """指定パスへのアクセスログを落とすフィルタ。"""

    def __init__(self, paths: tuple[str, ...]) -> None:
        super().__init__()
        self._paths = paths

    def filter(self, record: logging.LogRecord) -> bool:
        # uvicorn.access の args は (client_addr, method, path, http_version, status)
        args = record.args
        if isinstance(args, tuple) and len(args) >= 3:
            path = str(args[2]).split("?", 1)[0]
            if path in self._paths:
                return False
        return True


def suppress_uvicorn_access_log_paths(*paths: str) -> None:
    """uvicorn.access から指定パスのログを除外する。"""

    access_logger = logging.getLogger("uvicorn.access")

    # --- 既存のフィルタは外してから付け直す ---
    for f in list(access_logger.filters):
        if isinstance(f, _UvicornAccessPathFilter):
            access_logger.removeFilter(f)
    access_logger.addFilter(_UvicornAccessPathFilter(tuple(paths)))

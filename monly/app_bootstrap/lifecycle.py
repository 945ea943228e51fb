"""
startup / shutdown フック。

起動時: アクセスログのフィルタ付与、日次リマインダーの起動。
終了時: リマインダー停止（実行中の評価は待つ）、DB の破棄。
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from monly.config import Config
from monly.runtime.logging import suppress_uvicorn_access_log_paths
from monly.storage.db import dispose_db


logger = logging.getLogger(__name__)

# 終了時に実行中の評価を待つ上限（秒）
_SHUTDOWN_WAIT_SECONDS = 5.0


def register_lifecycle_hooks(app: FastAPI, *, toml_config: Config) -> None:
    """create_app() から1回だけ呼ぶ。"""

    @app.on_event("startup")
    async def on_startup() -> None:
        # uvicorn の logger は起動後に構成されるので、ここで付ける
        suppress_uvicorn_access_log_paths("/api/health", "/favicon.ico")

        if toml_config.reminder_enabled:
            app.state.reminder_scheduler.start()
        else:
            logger.info("transaction reminder scheduler disabled by config")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await app.state.reminder_scheduler.shutdown(timeout_seconds=_SHUTDOWN_WAIT_SECONDS)
        dispose_db()
        logger.info("database closed")

"""
FastAPI エントリポイント

Monly APIサーバーのメインモジュール。
アプリケーションの初期化、ルーターの登録、起動/終了イベントの登録を行う。
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from monly.app_bootstrap.config_bootstrap import bootstrap_config
from monly.app_bootstrap.lifecycle import register_lifecycle_hooks
from monly.app_bootstrap.routers import register_http_routes
from monly.config import Config
from monly.reminders.scheduler import DailySchedule, ReminderScheduler
from monly.reminders.sender import LoggingMessageSender
from monly.reminders.service import TransactionReminderService
from monly.storage.db import get_engine, session_scope
from monly.storage.migration_runner import MigrationRunner


logger = logging.getLogger(__name__)


def create_app(toml_config: Optional[Config] = None) -> FastAPI:
    """
    アプリ生成と初期化を行う。
    設定→ログ→DB（マイグレーション）→サービス/スケジューラ→ルータ登録の順で実行する。
    """

    # 1. 設定/ログ/DB を初期化（マイグレーション失敗はここで起動失敗になる）
    config = bootstrap_config(toml_config)

    # 2. 取引リマインダーの評価サービス
    reminder_service = TransactionReminderService(
        session_scope=session_scope,
        sender=LoggingMessageSender(),
        timezone=config.reminder_timezone,
    )

    # 3. スケジューラのハンドル（プロセスで1つ、app.state が所有する）
    reminder_scheduler = ReminderScheduler(
        reminder_service,
        DailySchedule(
            hour=config.reminder_hour,
            minute=config.reminder_minute,
            timezone=config.reminder_timezone,
        ),
        initial_check_delay_seconds=(config.dev_initial_check_delay_seconds if config.dev_mode else None),
    )

    # 4. FastAPIアプリ作成
    app = FastAPI(title="Monly API")
    app.state.reminder_service = reminder_service
    app.state.reminder_scheduler = reminder_scheduler
    app.state.migration_runner = MigrationRunner(get_engine(), config.migrations_dir)

    register_http_routes(app)
    register_lifecycle_hooks(app, toml_config=config)
    logger.info("app created")
    return app

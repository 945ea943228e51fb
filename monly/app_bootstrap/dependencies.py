"""
依存オブジェクトの取得。

目的:
    - FastAPI の Depends で使う取得処理を起動配線側に寄せる。
    - スケジューラ/サービスは create_app() が生成し app.state に置く。
"""

from __future__ import annotations

from fastapi import Request

from monly.reminders.scheduler import ReminderScheduler
from monly.storage.migration_runner import MigrationRunner


def get_reminder_scheduler(request: Request) -> ReminderScheduler:
    """app.state のスケジューラハンドルを返す。"""

    return request.app.state.reminder_scheduler


def get_migration_runner(request: Request) -> MigrationRunner:
    """app.state のマイグレーションランナーを返す（状況参照用）。"""

    return request.app.state.migration_runner

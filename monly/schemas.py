"""
API レスポンスの Pydantic モデル

FastAPI エンドポイントで使用するレスポンスのスキーマ定義。
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class MigrationRecordResponse(BaseModel):
    """適用済みマイグレーション1件。"""

    id: str
    filename: str
    executed_at: int
    executed_at_iso: str


class MigrationStatusResponse(BaseModel):
    """マイグレーション状況。"""

    total: int
    executed: int
    pending: int
    executed_records: List[MigrationRecordResponse]
    pending_files: List[str]


class FiringOutcomeResponse(BaseModel):
    """直近の発火結果。"""

    reason: str
    started_at: datetime
    finished_at: datetime
    ok: bool
    error: Optional[str] = None


class SchedulerStatusResponse(BaseModel):
    """スケジューラ状態。"""

    armed: bool
    fire_time: str
    timezone: str
    next_fire_at: Optional[datetime] = None
    firing_count: int
    in_flight: int
    last_outcome: Optional[FiringOutcomeResponse] = None


class SchedulerControlResponse(BaseModel):
    """start/stop の結果（scheduled / already_running / stopped / not_running）。"""

    result: str
    armed: bool


class ReminderRunResponse(BaseModel):
    """手動実行の集計。"""

    users_checked: int
    reminders_sent: int
    already_logged: int
    failed_users: int


class NotificationLogResponse(BaseModel):
    """通知ログ1件。"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    type: str
    whatsapp_number: Optional[str] = None
    message: str
    status: str
    sent_at: int
    error_message: Optional[str] = None

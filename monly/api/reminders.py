"""
取引リマインダー API

提供する機能:
- スケジューラ状態の参照 / 開始 / 停止
- 手動実行（運用/動作確認用）
- 通知ログの参照
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from monly import schemas
from monly.app_bootstrap.dependencies import get_reminder_scheduler
from monly.reminders import repo
from monly.reminders.scheduler import ReminderScheduler
from monly.reminders.service import ReminderRunSummary
from monly.storage.db import get_db


logger = logging.getLogger(__name__)

router = APIRouter()


def _to_status_response(scheduler: ReminderScheduler) -> schemas.SchedulerStatusResponse:
    """スナップショットをレスポンスへ詰め替える。"""

    snap = scheduler.snapshot()
    last = snap.last_outcome
    return schemas.SchedulerStatusResponse(
        armed=snap.armed,
        fire_time=snap.fire_time,
        timezone=snap.timezone,
        next_fire_at=snap.next_fire_at,
        firing_count=snap.firing_count,
        in_flight=snap.in_flight,
        last_outcome=(
            schemas.FiringOutcomeResponse(
                reason=last.reason,
                started_at=last.started_at,
                finished_at=last.finished_at,
                ok=last.ok,
                error=last.error,
            )
            if last is not None
            else None
        ),
    )


@router.get("/reminders/scheduler", response_model=schemas.SchedulerStatusResponse)
async def scheduler_status(
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
) -> schemas.SchedulerStatusResponse:
    """スケジューラの状態を返す。"""

    return _to_status_response(scheduler)


@router.post("/reminders/scheduler/start", response_model=schemas.SchedulerControlResponse)
async def scheduler_start(
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
) -> schemas.SchedulerControlResponse:
    """スケジューラを開始する（起動済みなら already_running）。"""

    result = scheduler.start()
    return schemas.SchedulerControlResponse(result=result.value, armed=scheduler.armed)


@router.post("/reminders/scheduler/stop", response_model=schemas.SchedulerControlResponse)
async def scheduler_stop(
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
) -> schemas.SchedulerControlResponse:
    """スケジューラを停止する（未起動なら not_running）。"""

    result = scheduler.stop()
    return schemas.SchedulerControlResponse(result=result.value, armed=scheduler.armed)


@router.post("/reminders/trigger-transaction-reminders", response_model=schemas.ReminderRunResponse)
async def trigger_transaction_reminders(
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
) -> schemas.ReminderRunResponse:
    """取引リマインダーを今すぐ1回実行する。"""

    try:
        summary: ReminderRunSummary = await scheduler.trigger_manually()
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=500, detail=f"transaction reminders failed: {exc}") from exc

    return schemas.ReminderRunResponse(
        users_checked=summary.users_checked,
        reminders_sent=summary.reminders_sent,
        already_logged=summary.already_logged,
        failed_users=summary.failed_users,
    )


@router.get("/reminders/notification-logs", response_model=list[schemas.NotificationLogResponse])
def notification_logs(
    user_id: str = Query(..., min_length=1),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
) -> list[schemas.NotificationLogResponse]:
    """ユーザーの通知ログを新しい順に返す。"""

    if repo.get_user(db, user_id) is None:
        raise HTTPException(status_code=404, detail="user not found")
    rows = repo.list_notification_logs(db, user_id, limit=limit)
    return [schemas.NotificationLogResponse.model_validate(r) for r in rows]

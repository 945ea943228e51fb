"""
マイグレーション状況 API

起動時に適用済みの状況を参照する（適用/ロールバックは CLI 側で行う）。
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from monly import schemas
from monly.app_bootstrap.dependencies import get_migration_runner
from monly.storage.migration_runner import MigrationRunner


router = APIRouter()


@router.get("/migrations/status", response_model=schemas.MigrationStatusResponse)
def migration_status(runner: MigrationRunner = Depends(get_migration_runner)) -> schemas.MigrationStatusResponse:
    """適用済み/未適用のマイグレーションを返す。"""

    st = runner.status()
    return schemas.MigrationStatusResponse(
        total=st.total,
        executed=st.executed,
        pending=st.pending,
        executed_records=[
            schemas.MigrationRecordResponse(
                id=r.id,
                filename=r.filename,
                executed_at=r.executed_at,
                executed_at_iso=r.executed_at_iso,
            )
            for r in st.executed_records
        ],
        pending_files=list(st.pending_files),
    )

"""
/api 配下のルート登録。
"""

from __future__ import annotations

from fastapi import Depends, FastAPI

from monly.api import migrations, reminders
from monly.api.http_auth import require_bearer_only


_API_PREFIX = "/api"


def register_http_routes(app: FastAPI) -> None:
    """認証付きの業務ルータと、認証なしの /api/health を登録する。"""

    protected = [Depends(require_bearer_only)]
    for router in (reminders.router, migrations.router):
        app.include_router(router, prefix=_API_PREFIX, dependencies=protected)

    @app.get(f"{_API_PREFIX}/health")
    async def health() -> dict[str, str]:
        """死活確認（DB やスケジューラの状態は見ない）。"""

        return {"status": "healthy"}

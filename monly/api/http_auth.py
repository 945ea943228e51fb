"""
/api の Bearer 認証。

Authorization: Bearer <token> を setting.toml の token と比較する。
"""

from __future__ import annotations

import secrets

from fastapi import HTTPException, Request, status

from monly.config import get_token


def _bearer_token(header_value: str | None) -> str:
    """ヘッダ値からトークン部分を取り出す（Bearer 形式でなければ空文字）。"""

    scheme, _, credentials = str(header_value or "").strip().partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return credentials.strip()


def require_bearer_only(request: Request) -> None:
    """トークンが一致しなければ 401。"""

    provided = _bearer_token(request.headers.get("Authorization"))
    if provided and secrets.compare_digest(provided.encode("utf-8"), get_token().encode("utf-8")):
        return
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid authentication token",
        headers={"WWW-Authenticate": "Bearer"},
    )

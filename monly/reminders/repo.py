"""
リマインダー判定/送信で使う DB 参照・更新

セッションは呼び出し側が管理する（commit/rollback は session_scope 側）。
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from monly.storage.models import (
    NotificationLog,
    Transaction,
    User,
    UserPreferences,
    WhatsAppIntegration,
)


def list_users_with_transaction_reminders(session: Session) -> list[User]:
    """取引リマインダーが有効なユーザーを返す。"""

    stmt = (
        select(User)
        .join(UserPreferences, UserPreferences.user_id == User.id)
        .where(UserPreferences.transaction_reminders == 1)
        .order_by(User.id)
    )
    return list(session.scalars(stmt).all())


def count_user_transactions_in_range(session: Session, user_id: str, start_ts: int, end_ts: int) -> int:
    """[start_ts, end_ts) に入るユーザーの取引件数を返す。"""

    stmt = (
        select(func.count())
        .select_from(Transaction)
        .where(
            Transaction.user_id == user_id,
            Transaction.date >= int(start_ts),
            Transaction.date < int(end_ts),
        )
    )
    return int(session.scalar(stmt) or 0)


def list_active_whatsapp_numbers(session: Session, user_id: str) -> list[str]:
    """有効（active）な WhatsApp 番号を登録順で返す。"""

    stmt = (
        select(WhatsAppIntegration.whatsapp_number)
        .where(
            WhatsAppIntegration.user_id == user_id,
            WhatsAppIntegration.status == "active",
        )
        .order_by(WhatsAppIntegration.id)
    )
    return [str(n) for n in session.scalars(stmt).all()]


def get_user_preferences(session: Session, user_id: str) -> UserPreferences | None:
    """ユーザー設定を返す（無ければ None）。"""

    return session.scalars(select(UserPreferences).where(UserPreferences.user_id == user_id)).first()


def get_user(session: Session, user_id: str) -> User | None:
    """ユーザーを返す（無ければ None）。"""

    return session.get(User, user_id)


def create_notification_log(
    session: Session,
    *,
    user_id: str,
    type: str,
    whatsapp_number: str | None,
    message: str,
    status: str,
    sent_at: int,
    error_message: str | None,
    created_at: int,
) -> NotificationLog:
    """通知ログを1行追加する。"""

    row = NotificationLog(
        user_id=user_id,
        type=type,
        whatsapp_number=whatsapp_number,
        message=message,
        status=status,
        sent_at=int(sent_at),
        error_message=error_message,
        created_at=int(created_at),
    )
    session.add(row)
    session.flush()
    return row


def list_notification_logs(session: Session, user_id: str, limit: int = 50) -> list[NotificationLog]:
    """ユーザーの通知ログを新しい順に返す。"""

    stmt = (
        select(NotificationLog)
        .where(NotificationLog.user_id == user_id)
        .order_by(NotificationLog.sent_at.desc(), NotificationLog.id.desc())
        .limit(int(limit))
    )
    return list(session.scalars(stmt).all())

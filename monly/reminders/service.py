"""
取引リマインダーの判定と送信

毎日決まった時刻にスケジューラから呼ばれ、
「今日まだ取引を記録していないユーザー」へ WhatsApp でリマインダーを送る。

方針:
- ユーザー一覧の取得に失敗したら例外を投げる（スケジューラ側でログして次回へ）。
- ユーザー単位の失敗はログに残して次のユーザーへ進む。
- 送信は番号ごとに notification_logs へ sent / failed を記録する。
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, ContextManager
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from monly.reminders import repo
from monly.reminders.sender import MessageSender


logger = logging.getLogger(__name__)

# notification_logs.type
NOTIFICATION_TYPE_TRANSACTION_REMINDER = "transaction_reminder"

_REMINDER_MESSAGES: dict[str, str] = {
    "en": (
        "🔔 *Daily Transaction Reminder*\n"
        "\n"
        "Hi! It looks like you haven't logged any transactions today.\n"
        "\n"
        "Don't forget to track your expenses to keep your finances on track! 💰\n"
        "\n"
        "You can:\n"
        "• Reply with your expense (e.g., \"Lunch 50000\")\n"
        "• Send a receipt photo 📸\n"
        "• Use the Monly AI app\n"
        "\n"
        "Keep up the good habit of tracking your money! 📊✨"
    ),
    "id": (
        "🔔 *Pengingat Transaksi Harian*\n"
        "\n"
        "Halo! Sepertinya Anda belum mencatat transaksi apa pun hari ini.\n"
        "\n"
        "Jangan lupa untuk melacak pengeluaran Anda agar keuangan tetap terkontrol! 💰\n"
        "\n"
        "Anda bisa:\n"
        "• Balas dengan pengeluaran Anda (contoh: \"Makan siang 50000\")\n"
        "• Kirim foto struk belanja 📸\n"
        "• Gunakan aplikasi Monly AI\n"
        "\n"
        "Terus pertahankan kebiasaan baik mencatat keuangan! 📊✨"
    ),
}


def create_reminder_message(language: str | None) -> str:
    """言語に応じたリマインダー本文を返す（未知の言語は英語）。"""

    key = str(language or "").strip().lower()
    return _REMINDER_MESSAGES.get(key, _REMINDER_MESSAGES["en"])


def local_day_bounds(now: datetime, tz: ZoneInfo) -> tuple[int, int]:
    """
    now が属する tz 上の1日を [開始, 翌日開始) の UNIX 秒で返す。
    """

    local_now = now.astimezone(tz)
    start = datetime.combine(local_now.date(), datetime.min.time(), tzinfo=tz)
    end = datetime.combine(local_now.date() + timedelta(days=1), datetime.min.time(), tzinfo=tz)
    return int(start.timestamp()), int(end.timestamp())


@dataclass
class ReminderRunSummary:
    """1回の判定/送信の集計。"""

    users_checked: int = 0
    reminders_sent: int = 0
    already_logged: int = 0
    failed_users: int = 0


class TransactionReminderService:
    """
    取引リマインダーの判定/送信サービス。

    スケジューラからは check_and_send_reminders() だけが呼ばれる。
    """

    def __init__(
        self,
        *,
        session_scope: Callable[[], ContextManager[Session]],
        sender: MessageSender,
        timezone: str,
        now_func: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_scope = session_scope
        self._sender = sender
        self._tz = ZoneInfo(timezone)
        self._now_func = now_func or (lambda: datetime.now(tz=self._tz))

    def check_and_send_reminders(self) -> ReminderRunSummary:
        """リマインダー有効ユーザーを確認し、今日未記録のユーザーへ送る。"""

        logger.info("transaction reminders check started")

        # --- 対象ユーザーを取得（失敗は呼び出し側へ伝播） ---
        with self._session_scope() as session:
            users = [(u.id, u.email) for u in repo.list_users_with_transaction_reminders(session)]
        logger.info("found %d user(s) with transaction reminders enabled", len(users))

        summary = ReminderRunSummary()
        for user_id, email in users:
            summary.users_checked += 1
            try:
                if self.has_user_logged_transaction_today(user_id):
                    summary.already_logged += 1
                    logger.info("user %s has already logged transactions today", user_id)
                    continue
                logger.info("sending reminder to user %s (%s)", user_id, email)
                summary.reminders_sent += self.send_reminder_to_user(user_id)
            except Exception as exc:  # noqa: BLE001
                # --- 1ユーザーの失敗で全体を止めない ---
                summary.failed_users += 1
                logger.exception("error processing reminders for user %s: %s", user_id, str(exc))

        logger.info(
            "transaction reminders check completed: checked=%d sent=%d already_logged=%d failed=%d",
            summary.users_checked,
            summary.reminders_sent,
            summary.already_logged,
            summary.failed_users,
        )
        return summary

    def has_user_logged_transaction_today(self, user_id: str) -> bool:
        """
        今日（設定タイムゾーン基準）に取引を記録したかを返す。

        DB エラー時は False（= リマインダーを送る側に倒す）。
        """

        start_ts, end_ts = local_day_bounds(self._now_func(), self._tz)
        try:
            with self._session_scope() as session:
                count = repo.count_user_transactions_in_range(session, user_id, start_ts, end_ts)
        except Exception as exc:  # noqa: BLE001
            logger.exception("error checking transactions for user %s: %s", user_id, str(exc))
            return False
        return count > 0

    def get_user_whatsapp_numbers(self, user_id: str) -> list[str]:
        """有効な WhatsApp 番号を返す。DB エラー時は空リスト。"""

        try:
            with self._session_scope() as session:
                return repo.list_active_whatsapp_numbers(session, user_id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("error getting WhatsApp numbers for user %s: %s", user_id, str(exc))
            return []

    def send_reminder_to_user(self, user_id: str) -> int:
        """
        ユーザーの全番号へリマインダーを送る。

        Returns:
            送信に成功した件数。
        """

        numbers = self.get_user_whatsapp_numbers(user_id)
        if not numbers:
            logger.info("user %s has no WhatsApp numbers connected", user_id)
            return 0

        # --- 言語設定から本文を決める ---
        with self._session_scope() as session:
            prefs = repo.get_user_preferences(session, user_id)
            language = prefs.language if prefs is not None else "en"
        message = create_reminder_message(language)

        sent = 0
        for number in numbers:
            try:
                result = self._sender.send(user_id, number, message)
            except Exception as exc:  # noqa: BLE001
                logger.exception("error sending reminder to %s: %s", number, str(exc))
                self.log_notification(
                    user_id=user_id,
                    whatsapp_number=number,
                    message=message,
                    status="failed",
                    error_message=str(exc) or type(exc).__name__,
                )
                continue

            self.log_notification(
                user_id=user_id,
                whatsapp_number=number,
                message=message,
                status="sent" if result.success else "failed",
                error_message=None if result.success else result.message,
            )
            if result.success:
                sent += 1
                logger.info("reminder sent to %s", number)
            else:
                logger.error("failed to send reminder to %s: %s", number, result.message)
        return sent

    def log_notification(
        self,
        *,
        user_id: str,
        whatsapp_number: str | None,
        message: str,
        status: str,
        error_message: str | None,
    ) -> None:
        """通知ログを記録する。記録の失敗はログに残すだけにする。"""

        now_ts = int(time.time())
        try:
            with self._session_scope() as session:
                repo.create_notification_log(
                    session,
                    user_id=user_id,
                    type=NOTIFICATION_TYPE_TRANSACTION_REMINDER,
                    whatsapp_number=whatsapp_number,
                    message=message,
                    status=status,
                    sent_at=now_ts,
                    error_message=error_message,
                    created_at=now_ts,
                )
        except Exception as exc:  # noqa: BLE001
            logger.exception("error logging notification for user %s: %s", user_id, str(exc))

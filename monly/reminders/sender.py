"""
リマインダーの送信口

メッセージング（WhatsApp）の送信実装はこのサーバーの外側にある。
ここでは送信口の形（MessageSender）と、ログに出すだけの既定実装を定義する。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    """1件の送信結果。"""

    success: bool
    message: str = ""


class MessageSender(Protocol):
    """送信口。失敗は SendResult(success=False) で返すか、例外を投げる。"""

    def send(self, user_id: str, whatsapp_number: str, message: str) -> SendResult:
        ...


class LoggingMessageSender:
    """送信内容をログに出すだけの送信口（実送信は行わない）。"""

    def send(self, user_id: str, whatsapp_number: str, message: str) -> SendResult:
        logger.info(
            "reminder message queued: user_id=%s number=%s chars=%d",
            user_id,
            whatsapp_number,
            len(message),
        )
        return SendResult(success=True, message="logged")

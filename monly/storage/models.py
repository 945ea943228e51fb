"""
ORMモデル定義

テーブルは migrations/*.sql で作成する。ここではリマインダー判定/送信に必要な
テーブルだけを、SQL 側の定義に合わせてマッピングする。
時刻はすべて UNIX 秒（INTEGER）で保持する。
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Float, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from monly.storage.db import Base


class User(Base):
    """ユーザー。"""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(Text, unique=True)
    first_name: Mapped[Optional[str]] = mapped_column(Text)
    last_name: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[Optional[int]] = mapped_column(Integer)


class UserPreferences(Base):
    """ユーザー設定（1ユーザー1行）。"""

    __tablename__ = "user_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, ForeignKey("users.id"), nullable=False, unique=True)
    default_currency: Mapped[str] = mapped_column(Text, nullable=False, default="USD")
    timezone: Mapped[str] = mapped_column(Text, nullable=False, default="UTC")
    language: Mapped[str] = mapped_column(Text, nullable=False, default="en")  # 'en' / 'id'
    auto_categorize: Mapped[Optional[int]] = mapped_column(Integer, default=1)
    # --- 日次リマインダーの受信可否（003 で追加） ---
    transaction_reminders: Mapped[Optional[int]] = mapped_column(Integer, default=1)
    created_at: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[Optional[int]] = mapped_column(Integer)


class Transaction(Base):
    """取引（収入/支出）。"""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, ForeignKey("users.id"), nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(Integer)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="USD")
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)  # 'income' / 'expense'
    date: Mapped[int] = mapped_column(Integer, nullable=False)
    ai_generated: Mapped[Optional[int]] = mapped_column(Integer, default=0)
    created_at: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[Optional[int]] = mapped_column(Integer)


class WhatsAppIntegration(Base):
    """ユーザーに紐づく WhatsApp 番号。"""

    __tablename__ = "whatsapp_integrations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, ForeignKey("users.id"), nullable=False)
    whatsapp_number: Mapped[str] = mapped_column(Text, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(Text)
    activated_at: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active")  # 'active' / 'inactive'
    created_at: Mapped[Optional[int]] = mapped_column(Integer)


class NotificationLog(Base):
    """通知の送信記録（sent / failed）。"""

    __tablename__ = "notification_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, ForeignKey("users.id"), nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    whatsapp_number: Mapped[Optional[str]] = mapped_column(Text)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    sent_at: Mapped[int] = mapped_column(Integer, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[int]] = mapped_column(Integer)

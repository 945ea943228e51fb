"""
リマインダー機能パッケージ。

目的:
    - 日次リマインダーのスケジューラと、判定/送信サービスを1箇所へ集約する。
"""

from __future__ import annotations

"""
実行時ユーティリティ（ログ設定など）。
"""

from __future__ import annotations

"""
永続化（SQLite 接続・ORM モデル・マイグレーション適用）。
"""

from __future__ import annotations

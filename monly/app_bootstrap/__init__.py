"""
アプリ起動時の配線（設定・DB・ルータ・ライフサイクル）。
"""

from __future__ import annotations

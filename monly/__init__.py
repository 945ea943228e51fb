"""Monly: 家計簿サーバーの起動時マイグレーションと日次リマインダー。"""

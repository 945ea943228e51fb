"""
起動順の固定: 設定 -> ログ -> ConfigStore -> DB（マイグレーション適用）。
"""

from __future__ import annotations

from typing import Optional

from monly.config import Config, ConfigStore, load_config, set_global_config_store
from monly.runtime.logging import setup_logging
from monly.storage.db import init_db


def bootstrap_config(toml_config: Optional[Config] = None) -> Config:
    """
    起動時の初期化を行い、使った Config を返す。

    Args:
        toml_config: 省略時は setting.toml を読む（テストでは直接渡す）。

    Raises:
        MigrationError: マイグレーションの失敗（起動は止める）。
    """

    config = toml_config if toml_config is not None else load_config()

    # --- ログはマイグレーションより先に設定する ---
    setup_logging(
        config.log_level,
        log_file_enabled=config.log_file_enabled,
        log_file_path=config.log_file_path,
        log_file_max_bytes=config.log_file_max_bytes,
    )
    set_global_config_store(ConfigStore(config))

    init_db(config.db_path, config.migrations_dir)
    return config

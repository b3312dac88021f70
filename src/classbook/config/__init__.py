"""Configuration package for classbook."""

from classbook.config.app_config import (
    AppConfig,
    AttendanceConfig,
    DatabaseConfig,
    GridConfig,
    ImportConfig,
    LedgerConfig,
    clear_config_cache,
    load_app_config,
)

__all__ = [
    "AppConfig",
    "AttendanceConfig",
    "DatabaseConfig",
    "GridConfig",
    "ImportConfig",
    "LedgerConfig",
    "clear_config_cache",
    "load_app_config",
]

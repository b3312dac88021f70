"""Application configuration loader.

Loads centralized configuration from data/config/app_config_v1.yaml,
falling back to built-in defaults when the file is absent.

Usage:
    from classbook.config.app_config import load_app_config

    config = load_app_config()
    scan_rows = config.importer.header_scan_rows
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/app_config_v1.yaml")


@dataclass
class DatabaseConfig:
    """SQLite database location."""

    path: str = "db/classbook.db"


@dataclass
class GridConfig:
    """Grid editing defaults."""

    save_indicator_delay: float = 0.5
    rollback_on_failure: bool = False


@dataclass
class AttendanceConfig:
    """Attendance statistics settings."""

    threshold: int = 75


@dataclass
class LedgerConfig:
    """Ledger reconciliation settings."""

    tiebreak: str = "fetch_order"  # fetch_order | created_at


@dataclass
class ImportConfig:
    """Spreadsheet import heuristics."""

    header_scan_rows: int = 40
    header_tokens: dict[str, int] = field(
        default_factory=lambda: {
            "ALUNO": 10,
            "NOME": 5,
            "LIVRO": 2,
            "AULA": 2,
            "PROVA": 2,
        }
    )
    banner_tokens: list[str] = field(
        default_factory=lambda: ["TRIMESTRE", "TEOLOGIA", "IBICAMP"]
    )
    fallback_title: str = "Nova Turma Importada"
    title_max_length: int = 50
    default_module_name: str = "Dados Gerais"


@dataclass
class AppConfig:
    """Application-wide configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    attendance: AttendanceConfig = field(default_factory=AttendanceConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    importer: ImportConfig = field(default_factory=ImportConfig)


# Module-level cache
_cached_config: AppConfig | None = None


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    defaults = ImportConfig()

    db_data = data.get("database", {}) or {}
    database = DatabaseConfig(path=db_data.get("path", DatabaseConfig.path))

    grid_data = data.get("grid", {}) or {}
    grid = GridConfig(
        save_indicator_delay=float(
            grid_data.get("save_indicator_delay", GridConfig.save_indicator_delay)
        ),
        rollback_on_failure=bool(
            grid_data.get("rollback_on_failure", GridConfig.rollback_on_failure)
        ),
    )

    attendance_data = data.get("attendance", {}) or {}
    attendance = AttendanceConfig(
        threshold=int(attendance_data.get("threshold", AttendanceConfig.threshold)),
    )

    ledger_data = data.get("ledger", {}) or {}
    tiebreak = ledger_data.get("tiebreak", LedgerConfig.tiebreak)
    if tiebreak not in ("fetch_order", "created_at"):
        logger.warning("config.invalid_tiebreak", value=tiebreak)
        tiebreak = LedgerConfig.tiebreak
    ledger = LedgerConfig(tiebreak=tiebreak)

    import_data = data.get("import", {}) or {}
    importer = ImportConfig(
        header_scan_rows=int(
            import_data.get("header_scan_rows", defaults.header_scan_rows)
        ),
        header_tokens={
            str(k).upper(): int(v)
            for k, v in (
                import_data.get("header_tokens") or defaults.header_tokens
            ).items()
        },
        banner_tokens=list(import_data.get("banner_tokens") or defaults.banner_tokens),
        fallback_title=import_data.get("fallback_title", defaults.fallback_title),
        title_max_length=int(
            import_data.get("title_max_length", defaults.title_max_length)
        ),
        default_module_name=import_data.get(
            "default_module_name", defaults.default_module_name
        ),
    )

    return AppConfig(
        database=database,
        grid=grid,
        attendance=attendance,
        ledger=ledger,
        importer=importer,
    )


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    data: dict[str, Any]

    if CONFIG_FILE.exists():
        logger.debug("loading_app_config", source=str(CONFIG_FILE))
        data = yaml.safe_load(CONFIG_FILE.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config")
        data = {}

    _cached_config = _parse_config(data)
    return _cached_config


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None

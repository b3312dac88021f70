"""Repository functions for grid cells (academic_records).

A cell with no row is empty. Rows are created on first write and then
overwritten in place; there is at most one row per (enrollment, column).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from classbook.db import store

logger = structlog.get_logger(__name__)

CELL_KEY = ("enrollment_id", "column_id")


@dataclass
class CellRecord:
    """One stored grid cell."""

    id: str
    enrollment_id: str
    column_id: str
    value: str
    updated_at: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def save_record(
    enrollment_id: str,
    column_id: str,
    value: str,
    updated_at: str | None = None,
) -> CellRecord:
    """Insert or overwrite one cell.

    The stored row only changes when updated_at is not older than the one
    already stored, so two writes on the same cell settle on the latest.

    Args:
        enrollment_id: Row of the grid
        column_id: Column of the grid
        value: Raw string value (never validated against the column type)
        updated_at: ISO timestamp of the edit; defaults to now
    """
    row = store.upsert(
        "academic_records",
        {
            "enrollment_id": enrollment_id,
            "column_id": column_id,
            "value": value,
            "updated_at": updated_at or _now(),
        },
        conflict_keys=CELL_KEY,
        newer_column="updated_at",
    )
    logger.debug("records.saved", enrollment_id=enrollment_id, column_id=column_id)
    return _row_to_record(row)


def save_records_batch(cells: list[dict[str, str]]) -> list[CellRecord]:
    """Write many cells in one transaction.

    Args:
        cells: Dicts with enrollment_id, column_id and value
    """
    now = _now()
    rows = store.upsert_many(
        "academic_records",
        [
            {
                "enrollment_id": c["enrollment_id"],
                "column_id": c["column_id"],
                "value": c["value"],
                "updated_at": c.get("updated_at") or now,
            }
            for c in cells
        ],
        conflict_keys=CELL_KEY,
        newer_column="updated_at",
    )
    logger.debug("records.batch_saved", count=len(rows))
    return [_row_to_record(row) for row in rows]


def list_records(enrollment_ids: list[str]) -> list[CellRecord]:
    """All stored cells of the given enrollments."""
    if not enrollment_ids:
        return []
    rows = store.select_where("academic_records", {"enrollment_id": enrollment_ids})
    return [_row_to_record(row) for row in rows]


def count_records(enrollment_id: str, column_id: str) -> int:
    """Number of stored rows for one cell (0 or 1)."""
    return len(
        store.select_where(
            "academic_records",
            {"enrollment_id": enrollment_id, "column_id": column_id},
        )
    )


def _row_to_record(row: dict) -> CellRecord:
    """Convert database row to CellRecord."""
    return CellRecord(
        id=row["id"],
        enrollment_id=row["enrollment_id"],
        column_id=row["column_id"],
        value=row["value"] if row["value"] is not None else "",
        updated_at=row["updated_at"],
    )

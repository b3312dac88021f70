"""Repository functions for attendance marks.

A missing row means "unmarked". Marks are keyed by
(student_id, course_id, date).
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from classbook.db import store

logger = structlog.get_logger(__name__)

MARK_KEY = ("student_id", "course_id", "date")


@dataclass
class AttendanceRecord:
    """Attendance mark from database."""

    id: str
    student_id: str
    course_id: str
    date: str
    status: str


def upsert_attendance(
    student_id: str, course_id: str, date: str, status: str
) -> AttendanceRecord:
    """Insert or overwrite the mark for one key."""
    row = store.upsert(
        "attendance",
        {
            "student_id": student_id,
            "course_id": course_id,
            "date": date,
            "status": status,
        },
        conflict_keys=MARK_KEY,
    )
    logger.debug("attendance.upserted", student_id=student_id, date=date, status=status)
    return _row_to_record(row)


def delete_attendance(student_id: str, course_id: str, date: str) -> bool:
    """Delete the mark matching all three key fields.

    Returns:
        True if a row was deleted
    """
    deleted = store.delete_where(
        "attendance",
        {"student_id": student_id, "course_id": course_id, "date": date},
    )
    logger.debug("attendance.deleted", student_id=student_id, date=date, count=deleted)
    return deleted > 0


def list_attendance(course_id: str) -> list[AttendanceRecord]:
    """All marks of a course."""
    rows = store.select_where("attendance", {"course_id": course_id}, order_by="date")
    return [_row_to_record(row) for row in rows]


def count_marks(student_id: str, course_id: str, date: str) -> int:
    """Number of stored rows for one key (0 or 1)."""
    return len(
        store.select_where(
            "attendance",
            {"student_id": student_id, "course_id": course_id, "date": date},
        )
    )


def _row_to_record(row: dict) -> AttendanceRecord:
    """Convert database row to AttendanceRecord."""
    return AttendanceRecord(
        id=row["id"],
        student_id=row["student_id"],
        course_id=row["course_id"],
        date=row["date"],
        status=row["status"],
    )

"""Attendance marks per (student, course, date).

Each mark cycles unmarked -> present -> absent -> excused -> unmarked.
Unmarked has no row: returning to it deletes the stored mark.

The board applies a toggle locally before the store confirms it and
refuses a second toggle on a key whose write is still in flight.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

import structlog

from classbook.config import load_app_config
from classbook.db import academics_repository, attendance_repository, students_repository

logger = structlog.get_logger(__name__)


class AttendanceStatus(str, Enum):
    """Stored attendance status. Unmarked is represented by None."""

    PRESENT = "present"
    ABSENT = "absent"
    EXCUSED = "excused"


_CYCLE: dict[AttendanceStatus | None, AttendanceStatus | None] = {
    None: AttendanceStatus.PRESENT,
    AttendanceStatus.PRESENT: AttendanceStatus.ABSENT,
    AttendanceStatus.ABSENT: AttendanceStatus.EXCUSED,
    AttendanceStatus.EXCUSED: None,
}


def next_status(current: AttendanceStatus | None) -> AttendanceStatus | None:
    """Status after one toggle (None means unmarked)."""
    return _CYCLE[current]


def attendance_percentage(present: int, scheduled: int) -> int:
    """Whole percent of scheduled classes attended, halves rounded up."""
    return math.floor(present / max(1, scheduled) * 100 + 0.5)


@dataclass
class ToggleOutcome:
    """Result of a toggle request."""

    accepted: bool
    status: AttendanceStatus | None
    saved: bool = True


@dataclass
class StudentAttendance:
    """Derived attendance statistic for one student."""

    student_id: str
    student_name: str
    present: int
    scheduled: int
    percentage: int
    below_threshold: bool


@dataclass
class AttendanceSheet:
    """Course attendance: scheduled dates, marks and per-student stats."""

    course_id: str
    dates: list[str]
    marks: dict[tuple[str, str], AttendanceStatus] = field(default_factory=dict)
    students: list[StudentAttendance] = field(default_factory=list)


Upserter = Callable[[str, str, str, str], Any]
Deleter = Callable[[str, str, str], Any]


class AttendanceBoard:
    """Attendance marks of one course with optimistic toggling."""

    def __init__(
        self,
        course_id: str,
        marks: dict[tuple[str, str], AttendanceStatus] | None = None,
        upserter: Upserter | None = None,
        deleter: Deleter | None = None,
    ):
        self.course_id = course_id
        self.marks: dict[tuple[str, str], AttendanceStatus] = dict(marks or {})
        self._upsert = upserter or attendance_repository.upsert_attendance
        self._delete = deleter or attendance_repository.delete_attendance
        self._in_flight: set[tuple[str, str]] = set()

    @classmethod
    async def open(cls, course_id: str, **kwargs: Any) -> AttendanceBoard:
        """Load the stored marks of a course."""
        records = await asyncio.to_thread(attendance_repository.list_attendance, course_id)
        marks = {(r.student_id, r.date): AttendanceStatus(r.status) for r in records}
        return cls(course_id, marks, **kwargs)

    def status(self, student_id: str, date: str) -> AttendanceStatus | None:
        """Current local status; None when unmarked."""
        return self.marks.get((student_id, date))

    def is_in_flight(self, student_id: str, date: str) -> bool:
        return (student_id, date) in self._in_flight

    async def toggle(self, student_id: str, date: str) -> ToggleOutcome:
        """Advance one mark through the cycle.

        Returns:
            ToggleOutcome(accepted=False, status=current) if a toggle on the
            same key is still being written; otherwise the new status, with
            saved=False when the store refused the write
        """
        key = (student_id, date)
        current = self.marks.get(key)
        if key in self._in_flight:
            logger.debug("attendance.toggle_rejected", student_id=student_id, date=date)
            return ToggleOutcome(accepted=False, status=current)

        self._in_flight.add(key)
        upcoming = next_status(current)
        saved = True

        # Optimistic local update
        if upcoming is None:
            self.marks.pop(key, None)
        else:
            self.marks[key] = upcoming

        try:
            if upcoming is None:
                await asyncio.to_thread(self._delete, student_id, self.course_id, date)
            else:
                await asyncio.to_thread(
                    self._upsert, student_id, self.course_id, date, upcoming.value
                )
            logger.debug(
                "attendance.toggled",
                student_id=student_id,
                date=date,
                status=upcoming.value if upcoming else None,
            )
        except Exception as e:
            logger.error(
                "attendance.save_failed", student_id=student_id, date=date, error=str(e)
            )
            saved = False
        finally:
            self._in_flight.discard(key)

        return ToggleOutcome(accepted=True, status=upcoming, saved=saved)

    def present_count(self, student_id: str) -> int:
        return sum(
            1
            for (sid, _), status in self.marks.items()
            if sid == student_id and status == AttendanceStatus.PRESENT
        )

    def statistics(
        self,
        students: list[tuple[str, str]],
        scheduled: int,
        threshold: int | None = None,
    ) -> list[StudentAttendance]:
        """Attendance percentage of each (student_id, name) pair."""
        limit = load_app_config().attendance.threshold if threshold is None else threshold
        stats = []
        for student_id, name in students:
            present = self.present_count(student_id)
            percentage = attendance_percentage(present, scheduled)
            stats.append(
                StudentAttendance(
                    student_id=student_id,
                    student_name=name,
                    present=present,
                    scheduled=scheduled,
                    percentage=percentage,
                    below_threshold=percentage < limit,
                )
            )
        return stats


def attendance_sheet(course_id: str, threshold: int | None = None) -> AttendanceSheet | None:
    """Build the attendance sheet of a course from the store.

    Returns:
        None if the course doesn't exist
    """
    course = academics_repository.get_course(course_id)
    if course is None:
        return None

    records = attendance_repository.list_attendance(course_id)
    board = AttendanceBoard(
        course_id,
        {(r.student_id, r.date): AttendanceStatus(r.status) for r in records},
    )
    enrollments = students_repository.list_enrollments_with_students(course_id)
    students = [(e.student_id, e.student.name if e.student else "") for e in enrollments]

    return AttendanceSheet(
        course_id=course_id,
        dates=list(course.schedule),
        marks=dict(board.marks),
        students=board.statistics(students, len(course.schedule), threshold),
    )

"""Repository functions for students and enrollments."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from classbook.db import store
from classbook.db.store import Relation
from classbook.utils.text_utils import fold_name

logger = structlog.get_logger(__name__)


@dataclass
class StudentRecord:
    """Student from database."""

    id: str
    name: str
    user_id: str
    matricula: str = ""
    email: str | None = None
    phone: str | None = None
    created_at: str = ""


@dataclass
class EnrollmentRecord:
    """Enrollment of one student in one course."""

    id: str
    course_id: str
    student_id: str
    student: StudentRecord | None = None
    created_at: str = ""


def add_student(
    name: str,
    user_id: str,
    matricula: str = "",
    email: str | None = None,
    phone: str | None = None,
) -> StudentRecord:
    """Insert a new student owned by user_id."""
    row = store.insert(
        "students",
        {
            "name": name,
            "user_id": user_id,
            "matricula": matricula,
            "email": email,
            "phone": phone,
        },
    )
    logger.debug("students.inserted", student_id=row["id"])
    return _row_to_student(row)


def get_student(student_id: str) -> StudentRecord | None:
    """Get student by ID, None if not found."""
    rows = store.select_where("students", {"id": student_id})
    return _row_to_student(rows[0]) if rows else None


def get_students(student_ids: list[str] | set[str]) -> list[StudentRecord]:
    """Get several students by ID."""
    rows = store.select_where("students", {"id": list(student_ids)})
    return [_row_to_student(row) for row in rows]


def list_students() -> list[StudentRecord]:
    """All students ordered by name."""
    rows = store.select_where("students", order_by="name")
    return [_row_to_student(row) for row in rows]


def search_students(query: str, limit: int = 10) -> list[StudentRecord]:
    """Students whose name or matricula contains query (case-insensitive)."""
    pattern = f"%{query}%"
    rows = store.select_where(
        "students",
        ilike_any={"name": pattern, "matricula": pattern},
        order_by="name",
        limit=limit,
    )
    return [_row_to_student(row) for row in rows]


def find_student_by_name(name: str, user_id: str) -> StudentRecord | None:
    """First student of user_id whose name matches exactly, ignoring case.

    Matching folds case and surrounding whitespace only, so "Maria" and
    "MARIA " match but "Mária" does not.
    """
    wanted = name.strip().casefold()
    rows = store.select_where("students", {"user_id": user_id})
    for row in rows:
        if row["name"].strip().casefold() == wanted:
            return _row_to_student(row)
    return None


def enroll_student(course_id: str, student_id: str) -> EnrollmentRecord:
    """Enroll a student, returning the existing enrollment if there is one.

    The UNIQUE(course_id, student_id) constraint decides: a second call,
    concurrent or not, reads back the row the first one created.
    """
    row = store.upsert(
        "enrollments",
        {"course_id": course_id, "student_id": student_id},
        conflict_keys=("course_id", "student_id"),
    )
    logger.debug("enrollments.upserted", enrollment_id=row["id"], course_id=course_id)
    return _row_to_enrollment(row)


def count_enrollments(course_id: str, student_id: str) -> int:
    """Number of enrollment rows for a (course, student) pair."""
    return len(
        store.select_where(
            "enrollments", {"course_id": course_id, "student_id": student_id}
        )
    )


def list_student_enrollments(student_id: str) -> list[EnrollmentRecord]:
    """Enrollments of one student in the order they were created."""
    rows = store.select_where(
        "enrollments", {"student_id": student_id}, order_by=("created_at", "rowid")
    )
    return [_row_to_enrollment(row) for row in rows]


def list_enrollments_with_students(course_id: str) -> list[EnrollmentRecord]:
    """Enrollments of a course joined with their student, sorted by name.

    Names are compared ignoring case and accents so "Álvaro" sorts next to
    "Alvaro" instead of after "Zé".
    """
    rows = store.select_joined(
        "enrollments",
        [Relation(name="student", table="students", foreign_key="student_id")],
        filters={"course_id": course_id},
        order_by="created_at",
    )
    enrollments = [_row_to_enrollment(row) for row in rows]
    enrollments.sort(key=lambda e: fold_name(e.student.name if e.student else ""))
    return enrollments


def _row_to_student(row: dict) -> StudentRecord:
    """Convert database row to StudentRecord."""
    return StudentRecord(
        id=row["id"],
        name=row["name"],
        user_id=row["user_id"],
        matricula=row.get("matricula") or "",
        email=row.get("email"),
        phone=row.get("phone"),
        created_at=row["created_at"],
    )


def _row_to_enrollment(row: dict) -> EnrollmentRecord:
    """Convert database row to EnrollmentRecord."""
    student_row = row.get("student")
    return EnrollmentRecord(
        id=row["id"],
        course_id=row["course_id"],
        student_id=row["student_id"],
        student=_row_to_student(student_row) if student_row else None,
        created_at=row["created_at"],
    )

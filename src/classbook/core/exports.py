"""CSV exports of a course.

- grid_to_csv: the academic-records grid as shown on screen
- course_report_csv: books handed to each student and attendance per class
"""

from __future__ import annotations

import csv
import io

import structlog

from classbook.core.grid import GridData
from classbook.db import (
    academics_repository,
    attendance_repository,
    library_repository,
    students_repository,
)

logger = structlog.get_logger(__name__)

MISSING = "-"


def grid_to_csv(grid: GridData) -> str:
    """Render a grid as CSV text.

    Header is "Aluno" followed by "{module} - {column}" per column. Student
    names are quoted; commas inside cell values are replaced by spaces
    instead of quoting. Lines end with "\\n".
    """
    columns = [(module, column) for module in grid.modules for column in module.columns]

    lines = ["Aluno" + "".join(f",{module.name} - {column.name}" for module, column in columns)]
    for enrollment in grid.enrollments:
        name = enrollment.student.name if enrollment.student else ""
        line = f'"{name}"'
        for _, column in columns:
            line += "," + grid.value(enrollment.id, column.id).replace(",", " ")
        lines.append(line)

    return "\n".join(lines) + "\n"


def course_report_csv(course_id: str) -> str | None:
    """Per-student report of a course.

    Columns: Nome, Matricula, "Livro: {title}" for every book any enrolled
    student ever moved, then "Aula: {date}" for every scheduled class.
    Book cells hold the first delivery date, attendance cells the stored
    status; "-" when there is none. Lines end with "\\r\\n".

    Returns:
        CSV text, or None if the course doesn't exist
    """
    course = academics_repository.get_course(course_id)
    if course is None:
        return None

    students = [
        e.student
        for e in students_repository.list_enrollments_with_students(course_id)
        if e.student is not None
    ]
    student_ids = {s.id for s in students}

    transactions = [
        t for t in library_repository.list_transactions() if t.student_id in student_ids
    ]
    moved_books = {t.book_id for t in transactions}
    books = [b for b in library_repository.list_books() if b.id in moved_books]

    first_delivery: dict[tuple[str, str], str] = {}
    for t in transactions:
        if t.type == "delivery":
            first_delivery.setdefault((t.student_id, t.book_id), t.date)

    marks = {
        (a.student_id, a.date): a.status
        for a in attendance_repository.list_attendance(course_id)
    }

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\r\n")
    writer.writerow(
        ["Nome", "Matricula"]
        + [f"Livro: {b.title}" for b in books]
        + [f"Aula: {day}" for day in course.schedule]
    )
    for student in students:
        writer.writerow(
            [student.name, student.matricula]
            + [first_delivery.get((student.id, b.id), MISSING) for b in books]
            + [marks.get((student.id, day), MISSING) for day in course.schedule]
        )

    logger.debug("exports.course_report", course_id=course_id, students=len(students))
    return buffer.getvalue()

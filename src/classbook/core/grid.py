"""Sparse academic-records grid.

Responsibilities:
- Materialize a course grid: modules/columns in display order, enrollments
  sorted by student name, and the stored cells keyed by
  "{enrollment_id}_{column_id}"
- Edit cells optimistically: the in-memory grid changes at once and the
  write to the store runs in the background
- Add modules and typed columns, enroll students idempotently
- Collect the history of one student across all their courses

Column type ('text', 'date', 'check') is metadata for rendering. Values are
stored and returned as plain strings whatever the column type.
"""

from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

import structlog

from classbook.config import load_app_config
from classbook.db import academics_repository, records_repository, students_repository
from classbook.db.academics_repository import ColumnRecord, CourseRecord, ModuleRecord
from classbook.db.store import table_columns
from classbook.db.students_repository import EnrollmentRecord

logger = structlog.get_logger(__name__)

CELL_KEY_SEPARATOR = "_"


class ColumnType(str, Enum):
    """Rendering hint of a grid column."""

    TEXT = "text"
    DATE = "date"
    CHECK = "check"


class GridError(Exception):
    """Base exception for grid errors."""

    pass


class UnsupportedColumnTypeError(GridError):
    """Raised when a column type outside ColumnType is requested."""

    def __init__(self, column_type: str):
        self.column_type = column_type
        super().__init__(
            f"Tipo de coluna não suportado: '{column_type}' "
            f"(use {', '.join(t.value for t in ColumnType)})"
        )


class ColumnTypeUnavailableError(GridError):
    """Raised when the store has no column-type field to hold the type."""

    def __init__(self):
        super().__init__(
            "O banco de dados não possui o campo 'type' em module_columns; "
            "execute init-db para atualizar o esquema."
        )


class EnrollmentError(GridError):
    """Raised when a course or student referenced by an enrollment is missing."""

    pass


class CellOutOfGridError(GridError):
    """Raised when a cell key does not belong to the loaded grid."""

    def __init__(self, enrollment_id: str, column_id: str):
        self.enrollment_id = enrollment_id
        self.column_id = column_id
        super().__init__(
            f"Célula fora da planilha: matrícula '{enrollment_id}', coluna '{column_id}'"
        )


def cell_key(enrollment_id: str, column_id: str) -> str:
    """Address of a cell in GridData.records."""
    return f"{enrollment_id}{CELL_KEY_SEPARATOR}{column_id}"


def cell_style(value: str) -> str | None:
    """Display hint for a cell value.

    Returns:
        "fail" for F, "ok" for OK (both case-insensitive), "pending" when the
        value contains ***, None otherwise
    """
    upper = value.upper()
    if upper == "F":
        return "fail"
    if upper == "OK":
        return "ok"
    if "***" in value:
        return "pending"
    return None


@dataclass
class GridData:
    """A materialized course grid."""

    course: CourseRecord
    modules: list[ModuleRecord]
    enrollments: list[EnrollmentRecord]
    records: dict[str, str] = field(default_factory=dict)

    @property
    def columns(self) -> list[ColumnRecord]:
        """All columns, left to right."""
        return [col for module in self.modules for col in module.columns]

    def value(self, enrollment_id: str, column_id: str) -> str:
        """Cell value, "" when the cell has never been written."""
        return self.records.get(cell_key(enrollment_id, column_id), "")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "course": {
                "id": self.course.id,
                "term_id": self.course.term_id,
                "name": self.course.name,
                "schedule": self.course.schedule,
            },
            "modules": [
                {
                    "id": m.id,
                    "name": m.name,
                    "order_index": m.order_index,
                    "columns": [
                        {
                            "id": c.id,
                            "name": c.name,
                            "type": c.type,
                            "order_index": c.order_index,
                        }
                        for c in m.columns
                    ],
                }
                for m in self.modules
            ],
            "enrollments": [
                {
                    "id": e.id,
                    "student_id": e.student_id,
                    "student_name": e.student.name if e.student else "",
                    "matricula": e.student.matricula if e.student else "",
                }
                for e in self.enrollments
            ],
            "records": dict(self.records),
        }


def materialize_grid(course_id: str) -> GridData | None:
    """Load the full grid of a course.

    Args:
        course_id: Course to load

    Returns:
        GridData, or None if the course doesn't exist. A course without
        modules or enrollments yields an empty but valid grid.
    """
    course = academics_repository.get_course(course_id)
    if course is None:
        return None

    modules = academics_repository.list_modules_with_columns(course_id)
    enrollments = students_repository.list_enrollments_with_students(course_id)

    column_ids = {col.id for module in modules for col in module.columns}
    records: dict[str, str] = {}
    for record in records_repository.list_records([e.id for e in enrollments]):
        # Only cells addressable through this course's own columns
        if record.column_id in column_ids:
            records[cell_key(record.enrollment_id, record.column_id)] = record.value

    logger.debug(
        "grid.materialized",
        course_id=course_id,
        modules=len(modules),
        enrollments=len(enrollments),
        cells=len(records),
    )
    return GridData(course=course, modules=modules, enrollments=enrollments, records=records)


def add_module(course_id: str, name: str) -> ModuleRecord:
    """Append a module at the end of a course."""
    order_index = academics_repository.next_module_order(course_id)
    module = academics_repository.insert_module(course_id, name, order_index)
    logger.info("grid.module_added", course_id=course_id, module_id=module.id)
    return module


def add_column(
    module_id: str, name: str, column_type: str | ColumnType = ColumnType.TEXT
) -> ColumnRecord:
    """Append a typed column at the end of a module.

    Raises:
        UnsupportedColumnTypeError: Type is not text, date or check
        ColumnTypeUnavailableError: The store schema lacks the type field
    """
    try:
        resolved = ColumnType(column_type)
    except ValueError:
        raise UnsupportedColumnTypeError(str(column_type)) from None

    if "type" not in table_columns("module_columns"):
        raise ColumnTypeUnavailableError()

    order_index = academics_repository.next_column_order(module_id)
    column = academics_repository.insert_column(module_id, name, resolved.value, order_index)
    logger.info(
        "grid.column_added", module_id=module_id, column_id=column.id, type=resolved.value
    )
    return column


def enroll(course_id: str, student_id: str) -> EnrollmentRecord:
    """Enroll a student in a course; repeated calls return the same enrollment.

    Raises:
        EnrollmentError: Course or student doesn't exist
    """
    try:
        enrollment = students_repository.enroll_student(course_id, student_id)
    except sqlite3.IntegrityError as e:
        raise EnrollmentError(
            f"Não foi possível matricular: turma '{course_id}' ou aluno '{student_id}' inexistente"
        ) from e

    logger.debug("grid.enrolled", course_id=course_id, enrollment_id=enrollment.id)
    return enrollment


@dataclass
class CourseHistory:
    """One enrollment of a student, with its values laid out by module."""

    enrollment_id: str
    course_id: str
    course_name: str
    term_id: str
    term_name: str
    modules: list[ModuleRecord] = field(default_factory=list)
    values: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "enrollment_id": self.enrollment_id,
            "course_id": self.course_id,
            "course_name": self.course_name,
            "term_id": self.term_id,
            "term_name": self.term_name,
            "modules": [
                {
                    "id": m.id,
                    "name": m.name,
                    "columns": [
                        {
                            "id": c.id,
                            "name": c.name,
                            "type": c.type,
                            "value": self.values.get(c.id, ""),
                        }
                        for c in m.columns
                    ],
                }
                for m in self.modules
            ],
        }


def student_history(student_id: str) -> list[CourseHistory] | None:
    """Academic history of a student across every course they joined.

    Returns:
        One CourseHistory per enrollment, oldest first; an empty list for a
        student with no enrollments; None if the student doesn't exist
    """
    if students_repository.get_student(student_id) is None:
        return None

    enrollments = students_repository.list_student_enrollments(student_id)
    values: dict[str, dict[str, str]] = {}
    for record in records_repository.list_records([e.id for e in enrollments]):
        values.setdefault(record.enrollment_id, {})[record.column_id] = record.value

    history: list[CourseHistory] = []
    terms: dict[str, Any] = {}
    for enrollment in enrollments:
        course = academics_repository.get_course(enrollment.course_id)
        if course is None:
            continue
        if course.term_id not in terms:
            terms[course.term_id] = academics_repository.get_term(course.term_id)
        term = terms[course.term_id]
        history.append(
            CourseHistory(
                enrollment_id=enrollment.id,
                course_id=course.id,
                course_name=course.name,
                term_id=course.term_id,
                term_name=term.name if term else "",
                modules=academics_repository.list_modules_with_columns(course.id),
                values=values.get(enrollment.id, {}),
            )
        )

    logger.debug("grid.student_history", student_id=student_id, courses=len(history))
    return history


Saver = Callable[[str, str, str, str], Any]


def _default_saver(enrollment_id: str, column_id: str, value: str, updated_at: str) -> Any:
    return records_repository.save_record(enrollment_id, column_id, value, updated_at)


class GridSession:
    """An open grid with optimistic cell editing.

    set_cell() changes the in-memory grid immediately and persists in the
    background. A "saving" flag per cell is raised during the write and
    cleared a fixed delay after it finishes, whether it succeeded or not.
    While a later write on the same cell is still pending the flag stays on.
    Failed writes keep the optimistic value unless rollback_on_failure.
    """

    def __init__(
        self,
        grid: GridData,
        save_indicator_delay: float | None = None,
        rollback_on_failure: bool | None = None,
        saver: Saver | None = None,
    ):
        config = load_app_config().grid
        self.data = grid
        self.saving: dict[str, bool] = {}
        # Writes per cell whose indicator delay has not elapsed yet
        self._in_flight: dict[str, int] = {}
        self.save_indicator_delay = (
            config.save_indicator_delay
            if save_indicator_delay is None
            else save_indicator_delay
        )
        self.rollback_on_failure = (
            config.rollback_on_failure if rollback_on_failure is None else rollback_on_failure
        )
        self._saver = saver or _default_saver
        self._pending: set[asyncio.Task[bool]] = set()
        self._enrollment_ids = {e.id for e in grid.enrollments}
        self._column_ids = {c.id for c in grid.columns}

    @classmethod
    async def open(cls, course_id: str, **kwargs: Any) -> GridSession | None:
        """Materialize a course grid and wrap it in a session."""
        grid = await asyncio.to_thread(materialize_grid, course_id)
        if grid is None:
            return None
        return cls(grid, **kwargs)

    def value(self, enrollment_id: str, column_id: str) -> str:
        """Current (possibly unconfirmed) value of a cell."""
        return self.data.value(enrollment_id, column_id)

    def is_saving(self, enrollment_id: str, column_id: str) -> bool:
        """Whether the cell's saving indicator is on."""
        return self.saving.get(cell_key(enrollment_id, column_id), False)

    def set_cell(self, enrollment_id: str, column_id: str, value: str) -> asyncio.Task[bool]:
        """Edit one cell.

        Must be called with a running event loop. The grid reflects the new
        value when this returns; the returned task resolves to True once
        the store confirmed the write, False if it failed.

        Raises:
            CellOutOfGridError: Enrollment or column is not part of this grid
        """
        if enrollment_id not in self._enrollment_ids or column_id not in self._column_ids:
            raise CellOutOfGridError(enrollment_id, column_id)

        key = cell_key(enrollment_id, column_id)
        previous = self.data.records.get(key)
        updated_at = datetime.now(timezone.utc).isoformat()

        # 1. Optimistic update
        self.data.records[key] = value
        # 2. Saving indicator
        self.saving[key] = True
        self._in_flight[key] = self._in_flight.get(key, 0) + 1

        task = asyncio.get_running_loop().create_task(
            self._persist(key, enrollment_id, column_id, value, previous, updated_at)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _persist(
        self,
        key: str,
        enrollment_id: str,
        column_id: str,
        value: str,
        previous: str | None,
        updated_at: str,
    ) -> bool:
        loop = asyncio.get_running_loop()
        try:
            await asyncio.to_thread(self._saver, enrollment_id, column_id, value, updated_at)
            logger.debug("grid.cell_saved", key=key)
            return True
        except Exception as e:
            logger.error("grid.cell_save_failed", key=key, error=str(e))
            if self.rollback_on_failure and self.data.records.get(key) == value:
                if previous is None:
                    self.data.records.pop(key, None)
                else:
                    self.data.records[key] = previous
            return False
        finally:
            loop.call_later(self.save_indicator_delay, self._clear_saving, key)

    def _clear_saving(self, key: str) -> None:
        remaining = self._in_flight.get(key, 0) - 1
        if remaining > 0:
            self._in_flight[key] = remaining
            return
        self._in_flight.pop(key, None)
        self.saving[key] = False

    async def drain(self) -> None:
        """Wait for every background write issued so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def reload(self) -> None:
        """Re-read the grid from the store, dropping unconfirmed local state."""
        await self.drain()
        grid = await asyncio.to_thread(materialize_grid, self.data.course.id)
        if grid is not None:
            self.data = grid
            self._enrollment_ids = {e.id for e in grid.enrollments}
            self._column_ids = {c.id for c in grid.columns}

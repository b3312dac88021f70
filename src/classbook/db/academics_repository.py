"""Repository functions for terms, courses, modules and columns.

Provides CRUD operations for the academic structure that the grid is
built on.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

import structlog

from classbook.db import store
from classbook.db.store import Relation

logger = structlog.get_logger(__name__)


@dataclass
class TermRecord:
    """Academic term from database."""

    id: str
    name: str
    user_id: str
    is_archived: bool = False
    created_at: str = ""


@dataclass
class CourseRecord:
    """Course from database."""

    id: str
    term_id: str
    name: str
    schedule: list[str] = field(default_factory=list)
    created_at: str = ""


@dataclass
class ColumnRecord:
    """Grid column from database.

    type is a rendering hint only ('text', 'date' or 'check').
    """

    id: str
    module_id: str
    name: str
    type: str = "text"
    order_index: int = 0


@dataclass
class ModuleRecord:
    """Course module, optionally with its columns."""

    id: str
    course_id: str
    name: str
    order_index: int = 0
    columns: list[ColumnRecord] = field(default_factory=list)


# =============================================================================
# TERMS
# =============================================================================


def create_term(name: str, user_id: str) -> TermRecord:
    """Insert a new term owned by user_id."""
    row = store.insert("academic_terms", {"name": name, "user_id": user_id})
    logger.debug("terms.inserted", term_id=row["id"])
    return _row_to_term(row)


def get_term(term_id: str) -> TermRecord | None:
    """Get term by ID, None if not found."""
    rows = store.select_where("academic_terms", {"id": term_id})
    return _row_to_term(rows[0]) if rows else None


def list_terms() -> list[TermRecord]:
    """All terms, newest first."""
    rows = store.select_where(
        "academic_terms", order_by=("created_at", "rowid"), descending=True
    )
    return [_row_to_term(row) for row in rows]


def delete_term(term_id: str) -> bool:
    """Delete a term and, by cascade, everything under it.

    Returns:
        True if deleted, False if not found
    """
    deleted = store.delete_where("academic_terms", {"id": term_id}) > 0
    if deleted:
        logger.debug("terms.deleted", term_id=term_id)
    return deleted


def duplicate_term(term_id: str, new_name: str) -> TermRecord | None:
    """Copy a term's structure into a new term.

    Courses, modules and columns (names, order and types) are copied.
    Enrollments, cell values and attendance are not.

    Returns:
        The new term, or None if the source term doesn't exist
    """
    source = get_term(term_id)
    if source is None:
        return None

    new_term = create_term(new_name, source.user_id)

    for course in list_courses(term_id):
        new_course = create_course(new_term.id, course.name)
        for module in list_modules_with_columns(course.id):
            new_module = store.insert(
                "course_modules",
                {
                    "course_id": new_course.id,
                    "name": module.name,
                    "order_index": module.order_index,
                },
            )
            store.insert_many(
                "module_columns",
                [
                    {
                        "module_id": new_module["id"],
                        "name": col.name,
                        "type": col.type,
                        "order_index": col.order_index,
                    }
                    for col in module.columns
                ],
            )

    logger.info("terms.duplicated", source_term_id=term_id, term_id=new_term.id)
    return new_term


# =============================================================================
# COURSES
# =============================================================================


def create_course(term_id: str, name: str) -> CourseRecord:
    """Insert a new course under a term."""
    row = store.insert("courses", {"term_id": term_id, "name": name})
    logger.debug("courses.inserted", course_id=row["id"], term_id=term_id)
    return _row_to_course(row)


def get_course(course_id: str) -> CourseRecord | None:
    """Get course by ID, None if not found."""
    rows = store.select_where("courses", {"id": course_id})
    return _row_to_course(rows[0]) if rows else None


def list_courses(term_id: str) -> list[CourseRecord]:
    """Courses of a term ordered by name."""
    rows = store.select_where("courses", {"term_id": term_id}, order_by="name")
    return [_row_to_course(row) for row in rows]


def set_course_schedule(course_id: str, dates: list[str]) -> CourseRecord | None:
    """Replace the list of class dates of a course."""
    if get_course(course_id) is None:
        return None

    schedule = sorted(set(dates))
    store.update_where("courses", {"schedule": json.dumps(schedule)}, {"id": course_id})
    logger.debug("courses.schedule_updated", course_id=course_id, dates=len(schedule))
    return get_course(course_id)


# =============================================================================
# MODULES & COLUMNS
# =============================================================================


def insert_module(course_id: str, name: str, order_index: int) -> ModuleRecord:
    """Insert a module row."""
    row = store.insert(
        "course_modules",
        {"course_id": course_id, "name": name, "order_index": order_index},
    )
    return _row_to_module(row)


def insert_column(
    module_id: str, name: str, column_type: str, order_index: int
) -> ColumnRecord:
    """Insert a column row.

    Raises:
        sqlite3.IntegrityError: If the type is rejected by the schema
    """
    row = store.insert(
        "module_columns",
        {
            "module_id": module_id,
            "name": name,
            "type": column_type,
            "order_index": order_index,
        },
    )
    return _row_to_column(row)


def get_module(module_id: str) -> ModuleRecord | None:
    """Get module by ID (without columns)."""
    rows = store.select_where("course_modules", {"id": module_id})
    return _row_to_module(rows[0]) if rows else None


def next_module_order(course_id: str) -> int:
    """Order index for a module appended at the end of a course."""
    rows = store.select_where(
        "course_modules", {"course_id": course_id}, order_by="order_index",
        descending=True, limit=1,
    )
    return rows[0]["order_index"] + 1 if rows else 0


def next_column_order(module_id: str) -> int:
    """Order index for a column appended at the end of a module."""
    rows = store.select_where(
        "module_columns", {"module_id": module_id}, order_by="order_index",
        descending=True, limit=1,
    )
    return rows[0]["order_index"] + 1 if rows else 0


def list_modules_with_columns(course_id: str) -> list[ModuleRecord]:
    """Modules of a course by display order, each with ordered columns."""
    rows = store.select_joined(
        "course_modules",
        [
            Relation(
                name="columns",
                table="module_columns",
                foreign_key="module_id",
                many=True,
                order_by=("order_index", "rowid"),
            )
        ],
        filters={"course_id": course_id},
        order_by=("order_index", "rowid"),
    )
    modules = []
    for row in rows:
        module = _row_to_module(row)
        module.columns = [_row_to_column(c) for c in row.get("columns", [])]
        modules.append(module)
    return modules


def _row_to_term(row: dict) -> TermRecord:
    """Convert database row to TermRecord."""
    return TermRecord(
        id=row["id"],
        name=row["name"],
        user_id=row["user_id"],
        is_archived=bool(row["is_archived"]),
        created_at=row["created_at"],
    )


def _row_to_course(row: dict) -> CourseRecord:
    """Convert database row to CourseRecord."""
    return CourseRecord(
        id=row["id"],
        term_id=row["term_id"],
        name=row["name"],
        schedule=json.loads(row["schedule"]) if row.get("schedule") else [],
        created_at=row["created_at"],
    )


def _row_to_module(row: dict) -> ModuleRecord:
    """Convert database row to ModuleRecord."""
    return ModuleRecord(
        id=row["id"],
        course_id=row["course_id"],
        name=row["name"],
        order_index=row["order_index"],
    )


def _row_to_column(row: dict) -> ColumnRecord:
    """Convert database row to ColumnRecord."""
    return ColumnRecord(
        id=row["id"],
        module_id=row["module_id"],
        name=row["name"],
        type=row.get("type") or "text",
        order_index=row["order_index"],
    )

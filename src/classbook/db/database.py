"""SQLite database connection and schema management.

Provides connection management and schema initialization for classbook.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import structlog

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_PATH = Path("db/classbook.db")

# Current connection (module-level for simplicity in CLI context)
_db_path: Path | None = None


def init_db(db_path: Path | None = None) -> None:
    """Initialize database with schema.

    Creates the database file and all required tables if they don't exist,
    then applies additive column migrations.

    Args:
        db_path: Path to database file. Defaults to db/classbook.db
    """
    global _db_path
    _db_path = Path(db_path) if db_path else DEFAULT_DB_PATH

    # Ensure directory exists
    _db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_db() as conn:
        _create_schema(conn)
        _ensure_column(conn, "module_columns", "type", "TEXT NOT NULL DEFAULT 'text'")
        _ensure_column(conn, "courses", "schedule", "TEXT NOT NULL DEFAULT '[]'")

    logger.info("database.initialized", path=str(_db_path))


def current_db_path() -> Path:
    """Path of the database used by get_db()."""
    return _db_path or DEFAULT_DB_PATH


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get database connection as context manager.

    Yields:
        SQLite connection with row factory set to sqlite3.Row

    Example:
        with get_db() as conn:
            cursor = conn.execute("SELECT * FROM courses")
            rows = cursor.fetchall()
    """
    db_path = current_db_path()

    # Ensure directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _ensure_column(
    conn: sqlite3.Connection, table: str, column: str, definition: str
) -> None:
    """Add a column to an existing table if it is missing.

    Only additive changes are supported; existing values are never touched.
    """
    existing = {row["name"] for row in conn.execute(f"PRAGMA table_info({table})")}
    if column in existing:
        return

    conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
    logger.info("database.column_added", table=table, column=column)


def _create_schema(conn: sqlite3.Connection) -> None:
    """Create database schema.

    Uses IF NOT EXISTS for idempotency. Deleting a term cascades to its
    courses, and from there to modules, columns, enrollments and records.
    """
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS academic_terms (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            is_archived INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
            user_id TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS courses (
            id TEXT PRIMARY KEY,
            term_id TEXT NOT NULL REFERENCES academic_terms(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            schedule TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
        );

        CREATE TABLE IF NOT EXISTS students (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            matricula TEXT,
            phone TEXT,
            email TEXT,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
            user_id TEXT NOT NULL
        );

        -- Uma matrícula por (turma, aluno)
        CREATE TABLE IF NOT EXISTS enrollments (
            id TEXT PRIMARY KEY,
            course_id TEXT NOT NULL REFERENCES courses(id) ON DELETE CASCADE,
            student_id TEXT NOT NULL REFERENCES students(id) ON DELETE CASCADE,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
            UNIQUE(course_id, student_id)
        );

        CREATE TABLE IF NOT EXISTS course_modules (
            id TEXT PRIMARY KEY,
            course_id TEXT NOT NULL REFERENCES courses(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            order_index INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
        );

        CREATE TABLE IF NOT EXISTS module_columns (
            id TEXT PRIMARY KEY,
            module_id TEXT NOT NULL REFERENCES course_modules(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            type TEXT NOT NULL DEFAULT 'text' CHECK(type IN ('text', 'date', 'check')),
            order_index INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
        );

        -- Células da planilha: uma linha por (matrícula, coluna), criada na primeira escrita
        CREATE TABLE IF NOT EXISTS academic_records (
            id TEXT PRIMARY KEY,
            enrollment_id TEXT NOT NULL REFERENCES enrollments(id) ON DELETE CASCADE,
            column_id TEXT NOT NULL REFERENCES module_columns(id) ON DELETE CASCADE,
            value TEXT,
            updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
            UNIQUE(enrollment_id, column_id)
        );

        CREATE TABLE IF NOT EXISTS library_books (
            id TEXT PRIMARY KEY,
            code TEXT,
            title TEXT NOT NULL,
            author TEXT,
            category TEXT,
            stock INTEGER NOT NULL DEFAULT 0,
            user_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
        );

        -- Livro de empréstimos: apenas inserções
        CREATE TABLE IF NOT EXISTS book_transactions (
            id TEXT PRIMARY KEY,
            student_id TEXT NOT NULL REFERENCES students(id) ON DELETE CASCADE,
            book_id TEXT REFERENCES library_books(id) ON DELETE CASCADE,
            type TEXT NOT NULL CHECK(type IN ('delivery', 'return')),
            date TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
        );

        CREATE TABLE IF NOT EXISTS attendance (
            id TEXT PRIMARY KEY,
            student_id TEXT NOT NULL REFERENCES students(id) ON DELETE CASCADE,
            course_id TEXT NOT NULL REFERENCES courses(id) ON DELETE CASCADE,
            date TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('present', 'absent', 'excused')),
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
            UNIQUE(student_id, course_id, date)
        );

        -- Índices
        CREATE INDEX IF NOT EXISTS idx_courses_term ON courses(term_id);
        CREATE INDEX IF NOT EXISTS idx_modules_course ON course_modules(course_id);
        CREATE INDEX IF NOT EXISTS idx_columns_module ON module_columns(module_id);
        CREATE INDEX IF NOT EXISTS idx_enrollments_course ON enrollments(course_id);
        CREATE INDEX IF NOT EXISTS idx_records_enrollment ON academic_records(enrollment_id);
        CREATE INDEX IF NOT EXISTS idx_transactions_pair ON book_transactions(student_id, book_id);
        CREATE INDEX IF NOT EXISTS idx_attendance_course ON attendance(course_id);
        """
    )

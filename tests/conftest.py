"""Shared fixtures.

Every test that touches the store gets its own SQLite file under tmp_path,
so tests never see each other's rows.
"""

from pathlib import Path
from typing import Callable

import pytest
from openpyxl import Workbook

from classbook.config import clear_config_cache
from classbook.db import init_db
from classbook.db import academics_repository, students_repository

USER_ID = "user-1"


@pytest.fixture(autouse=True)
def _fresh_config():
    """Reload configuration for every test."""
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def db_path(tmp_path) -> Path:
    """Initialize an empty database for the test."""
    path = tmp_path / "db" / "classbook.db"
    init_db(path)
    return path


@pytest.fixture
def course(db_path):
    """A course under a fresh term, without modules or students."""
    term = academics_repository.create_term("2024.1", USER_ID)
    return academics_repository.create_course(term.id, "Teologia Sistemática")


@pytest.fixture
def student_factory(db_path) -> Callable:
    """Create students owned by USER_ID."""

    def _create(name: str, matricula: str = ""):
        return students_repository.add_student(name, USER_ID, matricula=matricula)

    return _create


@pytest.fixture
def workbook_factory(tmp_path) -> Callable[[list[list], str], Path]:
    """Write rows into the first sheet of a new .xlsx file."""

    def _create(rows: list[list], name: str = "turma.xlsx") -> Path:
        wb = Workbook()
        ws = wb.active
        ws.title = "Planilha1"
        for row in rows:
            ws.append(row)
        path = tmp_path / name
        wb.save(path)
        return path

    return _create

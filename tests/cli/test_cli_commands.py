"""Tests for the classbook CLI."""

from pathlib import Path

import pytest
from openpyxl import Workbook
from typer.testing import CliRunner

from classbook.cli.commands import app
from classbook.core.grid import add_column, add_module, enroll
from classbook.db import academics_repository, library_repository, students_repository

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path, monkeypatch) -> Path:
    """Run commands from an empty directory with an initialized database."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CLASSBOOK_USER_ID", raising=False)
    result = runner.invoke(app, ["init-db"])
    assert result.exit_code == 0
    return tmp_path


@pytest.fixture
def graded_course(workspace):
    """Course with one column and one enrolled student."""
    term = academics_repository.create_term("2024.1", "user-1")
    course = academics_repository.create_course(term.id, "Teologia")
    module = add_module(course.id, "Livro 1")
    column = add_column(module.id, "Prova 1")
    student = students_repository.add_student("Ana Lima", "user-1")
    enrollment = enroll(course.id, student.id)
    return {"course": course, "column": column, "student": student, "enrollment": enrollment}


def _write_workbook(path: Path, rows: list[list]) -> Path:
    wb = Workbook()
    for row in rows:
        wb.active.append(row)
    wb.save(path)
    return path


class TestInitDb:
    """Tests for classbook init-db."""

    def test_creates_database(self, workspace):
        """Database file is created under db/."""
        assert (workspace / "db" / "classbook.db").exists()

    def test_is_idempotent(self, workspace):
        """Running it again succeeds."""
        result = runner.invoke(app, ["init-db"])
        assert result.exit_code == 0
        assert "Banco de dados pronto" in result.stdout


class TestImportSheet:
    """Tests for classbook import-sheet."""

    def test_import(self, workspace):
        """Import prints progress and the number of students."""
        path = _write_workbook(workspace / "turma.xlsx", [["Aluno", "Prova 1"], ["Maria", 8]])

        result = runner.invoke(app, ["import-sheet", str(path), "--user", "user-1"])

        assert result.exit_code == 0
        assert "Analisando estrutura do arquivo..." in result.stdout
        assert "1 alunos importados" in result.stdout
        assert [s.name for s in students_repository.list_students()] == ["Maria"]

    def test_user_from_environment(self, workspace):
        """The owner can come from CLASSBOOK_USER_ID."""
        path = _write_workbook(workspace / "turma.xlsx", [["Aluno"], ["Maria"]])

        result = runner.invoke(
            app, ["import-sheet", str(path)], env={"CLASSBOOK_USER_ID": "user-2"}
        )

        assert result.exit_code == 0
        assert students_repository.list_students()[0].user_id == "user-2"

    def test_reuse_students(self, workspace):
        """--reuse-students avoids duplicating students."""
        path = _write_workbook(workspace / "turma.xlsx", [["Aluno"], ["Maria"]])
        for _ in range(2):
            runner.invoke(app, ["import-sheet", str(path), "-u", "user-1", "--reuse-students"])
        assert len(students_repository.list_students()) == 1

    def test_header_not_found(self, workspace):
        """A fatal import error exits with code 1."""
        path = _write_workbook(workspace / "turma.xlsx", [["Data", "Valor"], ["2024", "1"]])

        result = runner.invoke(app, ["import-sheet", str(path), "-u", "user-1"])

        assert result.exit_code == 1
        assert "✗" in result.stdout

    def test_unreadable_workbook(self, workspace):
        """A file that is not a workbook exits with code 1."""
        path = workspace / "turma.xlsx"
        path.write_bytes(b"not a workbook")

        result = runner.invoke(app, ["import-sheet", str(path), "-u", "user-1"])

        assert result.exit_code == 1
        assert "✗" in result.stdout


class TestGridCommands:
    """Tests for grid, set-cell and export-grid."""

    def test_grid_missing_course(self, workspace):
        """Unknown course exits with code 1."""
        result = runner.invoke(app, ["grid", "nope"])
        assert result.exit_code == 1

    def test_grid_without_students(self, workspace):
        """A course without enrollments only prints a warning."""
        term = academics_repository.create_term("2024.1", "user-1")
        course = academics_repository.create_course(term.id, "Vazia")

        result = runner.invoke(app, ["grid", course.id])

        assert result.exit_code == 0
        assert "Nenhum aluno matriculado" in result.stdout

    def test_set_cell_then_grid(self, graded_course):
        """A written cell shows up in the grid."""
        ids = graded_course
        result = runner.invoke(
            app,
            ["set-cell", ids["course"].id, ids["enrollment"].id, ids["column"].id, "9"],
        )
        assert result.exit_code == 0
        assert "Célula salva" in result.stdout

        result = runner.invoke(app, ["grid", ids["course"].id])
        assert result.exit_code == 0
        assert "Ana Lima" in result.stdout
        assert "9" in result.stdout

    def test_set_cell_outside_grid(self, graded_course):
        """Unknown enrollment exits with code 1."""
        ids = graded_course
        result = runner.invoke(app, ["set-cell", ids["course"].id, "ghost", ids["column"].id, "9"])
        assert result.exit_code == 1

    def test_export_grid_default_name(self, graded_course, workspace):
        """Export writes Planilha_<course>.csv by default."""
        result = runner.invoke(app, ["export-grid", graded_course["course"].id])

        assert result.exit_code == 0
        content = (workspace / "Planilha_Teologia.csv").read_text(encoding="utf-8")
        assert content == 'Aluno,Livro 1 - Prova 1\n"Ana Lima",\n'

    def test_export_grid_output_option(self, graded_course, workspace):
        """-o chooses the output file."""
        target = workspace / "out.csv"
        result = runner.invoke(app, ["export-grid", graded_course["course"].id, "-o", str(target)])
        assert result.exit_code == 0
        assert target.read_text(encoding="utf-8").startswith("Aluno,")


class TestLibraryCommands:
    """Tests for pending-returns and availability."""

    def test_nothing_pending(self, workspace):
        """Empty ledger reports no pending returns."""
        result = runner.invoke(app, ["pending-returns"])
        assert result.exit_code == 0
        assert "Nenhuma devolução pendente" in result.stdout

    def test_pending_and_availability(self, workspace):
        """A delivery is pending and reduces availability."""
        student = students_repository.add_student("Ana", "user-1")
        book = library_repository.create_book("Bíblia", "user-1", code="B1", stock=3)
        library_repository.insert_transaction(student.id, book.id, "delivery", "2024-03-01")

        pending = runner.invoke(app, ["pending-returns", "--today", "2024-03-20"])
        assert pending.exit_code == 0
        assert "Bíblia" in pending.stdout
        assert "19" in pending.stdout

        stock = runner.invoke(app, ["availability"])
        assert stock.exit_code == 0
        assert "Em circulação: 1" in stock.stdout

    def test_bad_today(self, workspace):
        """An unparseable --today exits with code 1."""
        result = runner.invoke(app, ["pending-returns", "--today", "20/03/2024"])
        assert result.exit_code == 1


class TestAttendanceCommand:
    """Tests for classbook attendance."""

    def test_toggle_and_show(self, graded_course):
        """Toggling prints the new status and the sheet shows P."""
        ids = graded_course
        academics_repository.set_course_schedule(ids["course"].id, ["2024-03-01"])

        result = runner.invoke(
            app,
            ["attendance", ids["course"].id, "--toggle", ids["student"].id, "--date", "2024-03-01"],
        )

        assert result.exit_code == 0
        assert "present" in result.stdout
        assert "100%" in result.stdout

    def test_toggle_not_saved(self, graded_course):
        """A toggle the store refuses prints ✗ and exits with code 1."""
        ids = graded_course

        result = runner.invoke(
            app, ["attendance", ids["course"].id, "--toggle", "ghost", "--date", "2024-03-01"]
        )

        assert result.exit_code == 1
        assert "✗" in result.stdout
        assert "✓" not in result.stdout

    def test_toggle_requires_date(self, graded_course):
        """--toggle without --date exits with code 1."""
        ids = graded_course
        result = runner.invoke(app, ["attendance", ids["course"].id, "--toggle", ids["student"].id])
        assert result.exit_code == 1

    def test_missing_course(self, workspace):
        """Unknown course exits with code 1."""
        result = runner.invoke(app, ["attendance", "nope"])
        assert result.exit_code == 1

"""Tests for the spreadsheet import pipeline."""

import zipfile
from datetime import date, datetime

import pytest
import xlrd
from xlrd.sheet import Cell

from classbook.config import ImportConfig
from classbook.core import sheet_importer
from classbook.core.grid import materialize_grid
from classbook.core.sheet_importer import (
    ColumnCreationError,
    EmptySpreadsheetError,
    HeaderNotFoundError,
    ImportOptions,
    SpreadsheetReadError,
    StudentColumnNotFoundError,
    _cell_text,
    accept_student_name,
    detect_header_row,
    import_spreadsheet,
    importable_header,
    infer_course_title,
    read_first_sheet,
)
from classbook.db import academics_repository, store, students_repository

USER = "user-1"
TOKENS = ImportConfig().header_tokens
BANNERS = ImportConfig().banner_tokens


def _truncate_first_sheet(source, target):
    """Copy a workbook cutting its first worksheet XML in half."""
    with zipfile.ZipFile(source) as src, zipfile.ZipFile(target, "w") as dst:
        for item in src.infolist():
            data = src.read(item.filename)
            if item.filename == "xl/worksheets/sheet1.xml":
                data = data[: len(data) // 2]
            dst.writestr(item, data)
    return target


def _table_counts() -> tuple[int, int, int]:
    return (
        len(store.select_where("academic_terms")),
        len(store.select_where("courses")),
        len(store.select_where("course_modules")),
    )


class TestReading:
    """Tests for read_first_sheet and cell rendering."""

    def test_cell_text(self):
        """Integral floats lose .0; dates become ISO; None is empty."""
        assert _cell_text(8.0) == "8"
        assert _cell_text(7.5) == "7.5"
        assert _cell_text(None) == ""
        assert _cell_text(True) == "true"
        assert _cell_text(datetime(2024, 3, 1)) == "2024-03-01"
        assert _cell_text(date(2024, 3, 1)) == "2024-03-01"

    def test_xlsx_rows_are_rectangular(self, workbook_factory):
        """Short rows are padded and trailing blank rows dropped."""
        path = workbook_factory([["Aluno", "P1", "P2"], ["Maria", 8], [None, None]])
        rows = read_first_sheet(path)
        assert rows == [["Aluno", "P1", "P2"], ["Maria", "8", ""]]

    def test_csv_with_semicolons(self, tmp_path):
        """CSV delimiter is sniffed."""
        path = tmp_path / "turma.csv"
        path.write_text("Aluno;Prova 1\nMaria;8\nJoão;7\n", encoding="utf-8")
        assert read_first_sheet(path)[1] == ["Maria", "8"]

    def test_corrupt_workbook(self, tmp_path):
        """A file that is not a workbook raises SpreadsheetReadError."""
        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"not a zip file")
        with pytest.raises(SpreadsheetReadError):
            read_first_sheet(path)

    def test_broken_worksheet(self, workbook_factory, tmp_path):
        """A valid zip with a truncated sheet XML raises SpreadsheetReadError."""
        source = workbook_factory([["Aluno", "Prova 1"], ["Maria", 8], ["Pedro", 6]])
        broken = _truncate_first_sheet(source, tmp_path / "broken_sheet.xlsx")

        with pytest.raises(SpreadsheetReadError):
            read_first_sheet(broken)

    def test_legacy_xls(self, tmp_path, monkeypatch):
        """.xls workbooks are read through xlrd, dates and numbers rendered."""

        class FakeSheet:
            def get_rows(self):
                yield [Cell(xlrd.XL_CELL_TEXT, "Aluno"), Cell(xlrd.XL_CELL_TEXT, "Data")]
                yield [Cell(xlrd.XL_CELL_TEXT, "Maria"), Cell(xlrd.XL_CELL_DATE, 45352.0)]
                yield [Cell(xlrd.XL_CELL_TEXT, "Pedro"), Cell(xlrd.XL_CELL_EMPTY, "")]
                yield [Cell(xlrd.XL_CELL_NUMBER, 8.0), Cell(xlrd.XL_CELL_BOOLEAN, 1)]

        class FakeBook:
            nsheets = 1
            datemode = 0

            def sheet_by_index(self, index):
                return FakeSheet()

        monkeypatch.setattr(sheet_importer.xlrd, "open_workbook", lambda path: FakeBook())
        path = tmp_path / "turma.xls"
        path.write_bytes(b"\xd0\xcf\x11\xe0")

        assert read_first_sheet(path) == [
            ["Aluno", "Data"],
            ["Maria", "2024-03-01"],
            ["Pedro", ""],
            ["8", "true"],
        ]

    def test_corrupt_xls(self, tmp_path):
        """An unreadable .xls is a read error, not an unsupported format."""
        path = tmp_path / "turma.xls"
        path.write_bytes(b"not an excel file")
        with pytest.raises(SpreadsheetReadError) as excinfo:
            read_first_sheet(path)
        assert "formato não suportado" not in str(excinfo.value)

    def test_unsupported_extension(self, tmp_path):
        """Only xlsx, xlsm, xls and csv are read."""
        path = tmp_path / "turma.ods"
        path.write_bytes(b"x")
        with pytest.raises(SpreadsheetReadError):
            read_first_sheet(path)


class TestStructureDetection:
    """Tests for header and title heuristics."""

    def test_detects_best_scoring_row(self):
        """ALUNO outweighs LIVRO/AULA rows."""
        rows = [["Livro de aula"], ["Nº", "Aluno", "Prova"], ["1", "Maria", "8"]]
        assert detect_header_row(rows, TOKENS, 40) == 1

    def test_first_row_wins_ties(self):
        """Equal scores keep the earliest row."""
        rows = [["Nome"], ["Nome"]]
        assert detect_header_row(rows, TOKENS, 40) == 0

    def test_scan_limit(self):
        """Rows past the scan limit are ignored."""
        rows = [["x"]] * 40 + [["Aluno"]]
        assert detect_header_row(rows, TOKENS, 40) is None
        assert detect_header_row(rows, TOKENS, 41) == 40

    def test_title_from_row_above_header(self):
        """Cell above the header names the course."""
        rows = [["Instituto"], ["Teologia 1º Ano"], ["Aluno"]]
        assert infer_course_title(rows, 2, ImportConfig()) == "Teologia 1º Ano"

    def test_title_fallbacks(self):
        """Falls back to the first cell, then to the default title."""
        assert infer_course_title([["Turma A"], [""], ["Aluno"]], 2, ImportConfig()) == "Turma A"
        assert infer_course_title([["", "Aluno"]], 0, ImportConfig()) == "Nova Turma Importada"

    def test_title_truncated(self):
        """Long titles are cut to 50 characters plus an ellipsis."""
        title = infer_course_title([["x" * 60], ["Aluno"]], 1, ImportConfig())
        assert title == "x" * 50 + "..."

    @pytest.mark.parametrize(
        "header,expected",
        [
            ("Prova 1", "Prova 1"),
            ("Prova\n2", "Prova 2"),
            ("  ", None),
            ("Nome do Aluno", None),
            ("nome", None),
            ("Nº", None),
            ("#", None),
            ("ID", None),
        ],
    )
    def test_importable_header(self, header, expected):
        """Identification and blank headers are skipped."""
        assert importable_header(header) == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("  Maria  ", "Maria"),
            ("Jo", None),
            ("", None),
            ("ALUNO", None),
            ("Nome", None),
            ("1º TRIMESTRE", None),
            ("Teologia Básica", None),
        ],
    )
    def test_accept_student_name(self, raw, expected):
        """Short names, header labels and banners are not students."""
        assert accept_student_name(raw, BANNERS) == expected


class TestImportSpreadsheet:
    """Tests for import_spreadsheet."""

    def test_imports_students_and_records(self, db_path, workbook_factory):
        """One student Maria with two records 8 and F."""
        path = workbook_factory([["Aluno", "Prova 1", "Prova 2"], ["Maria", 8, "F"]])

        result = import_spreadsheet(path, USER)

        assert result.success is True
        assert result.count == 1
        assert result.errors == []
        assert result.term_name == f"Importado {date.today().strftime('%d/%m/%Y')}"

        grid = materialize_grid(result.course_id)
        assert [m.name for m in grid.modules] == ["Dados Gerais"]
        assert [c.name for c in grid.columns] == ["Prova 1", "Prova 2"]
        [enrollment] = grid.enrollments
        assert enrollment.student.name == "Maria"
        assert sorted(grid.records.values()) == ["8", "F"]

    def test_reimport_creates_second_student(self, db_path, workbook_factory):
        """Importing twice yields two Marias under two terms."""
        path = workbook_factory([["Aluno", "Prova 1", "Prova 2"], ["Maria", 8, "F"]])

        first = import_spreadsheet(path, USER)
        second = import_spreadsheet(path, USER)

        assert first.term_id != second.term_id
        marias = [s for s in students_repository.list_students() if s.name == "Maria"]
        assert len(marias) == 2

    def test_reuse_existing_students(self, db_path, workbook_factory):
        """With reuse enabled the same student is enrolled again."""
        path = workbook_factory([["Aluno", "Prova 1"], ["Maria", 8]])
        options = ImportOptions(reuse_existing_students=True)

        import_spreadsheet(path, USER, options=options)
        import_spreadsheet(path, USER, options=options)

        assert len(students_repository.list_students()) == 1

    def test_no_header_writes_nothing(self, db_path, workbook_factory):
        """Unrecognized header fails before any term/course/module."""
        path = workbook_factory([["Data", "Valor"], ["2024", "10"]])

        with pytest.raises(HeaderNotFoundError):
            import_spreadsheet(path, USER)
        assert _table_counts() == (0, 0, 0)

    def test_no_student_column_writes_nothing(self, db_path, workbook_factory):
        """Header without a student column fails before writes."""
        path = workbook_factory([["Livro", "Prova"], ["Gênesis", "8"]])

        with pytest.raises(StudentColumnNotFoundError):
            import_spreadsheet(path, USER)
        assert _table_counts() == (0, 0, 0)

    def test_single_row_is_empty(self, db_path, workbook_factory):
        """Fewer than two rows is rejected."""
        path = workbook_factory([["Aluno", "Prova 1"]])
        with pytest.raises(EmptySpreadsheetError):
            import_spreadsheet(path, USER)

    def test_corrupt_file_writes_nothing(self, db_path, tmp_path):
        """Unreadable files fail before any write."""
        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"garbage")
        with pytest.raises(SpreadsheetReadError):
            import_spreadsheet(path, USER)
        assert _table_counts() == (0, 0, 0)

    def test_broken_worksheet_writes_nothing(self, db_path, workbook_factory, tmp_path):
        """A sheet that fails to parse mid-file is a read error, not a crash."""
        source = workbook_factory([["Aluno", "Prova 1"], ["Maria", 8], ["Pedro", 6]])
        broken = _truncate_first_sheet(source, tmp_path / "broken_sheet.xlsx")

        with pytest.raises(SpreadsheetReadError):
            import_spreadsheet(broken, USER)
        assert _table_counts() == (0, 0, 0)

    def test_real_world_layout(self, db_path, workbook_factory):
        """Banner rows, numbering column and title above the header."""
        path = workbook_factory(
            [
                ["IBICAMP - Instituto Bíblico"],
                ["Teologia Sistemática - Turma B"],
                ["Nº", "Nome do Aluno", "Livro 1\nEntregue", "Prova 1", None],
                [1, "Ana Lima", "ok", 9.0, None],
                [None, "1º TRIMESTRE", None, None, None],
                [2, "Bruno Reis", None, 7.5, None],
                [3, "Jo", "ok", 5, None],
            ]
        )
        messages = []

        result = import_spreadsheet(path, USER, on_progress=messages.append)

        assert result.course_name == "Teologia Sistemática - Turma B"
        assert result.count == 2
        grid = materialize_grid(result.course_id)
        assert [c.name for c in grid.columns] == ["Livro 1 Entregue", "Prova 1"]
        by_name = {e.student.name: e for e in grid.enrollments}
        assert set(by_name) == {"Ana Lima", "Bruno Reis"}
        bruno = by_name["Bruno Reis"]
        assert grid.value(bruno.id, grid.columns[0].id) == ""
        assert grid.value(bruno.id, grid.columns[1].id) == "7.5"

        assert messages[0] == "Analisando estrutura do arquivo..."
        assert messages[1] == "Criando Turma: Teologia Sistemática - Turma B..."
        assert messages[2] == "Criando colunas..."
        assert messages[3] == "Processando (1): Ana Lima"
        assert messages[-1] == "Concluído!"

    def test_row_failure_is_collected(self, db_path, workbook_factory, monkeypatch):
        """A failing row is reported and the next rows still import."""
        path = workbook_factory([["Aluno", "Prova 1"], ["Maria", 8], ["Pedro", 6]])
        real_add = students_repository.add_student

        def flaky_add(name, user_id, **kwargs):
            if name == "Maria":
                raise RuntimeError("banco indisponível")
            return real_add(name, user_id, **kwargs)

        monkeypatch.setattr(students_repository, "add_student", flaky_add)

        result = import_spreadsheet(path, USER)

        assert result.count == 2
        assert result.errors == ["Falha em Maria: banco indisponível"]
        assert [s.name for s in students_repository.list_students()] == ["Pedro"]

    def test_column_failure_lenient_and_strict(self, db_path, workbook_factory, monkeypatch):
        """A failed column is reported, or fatal in strict mode."""
        path = workbook_factory([["Aluno", "Prova 1", "Prova 2"], ["Maria", 8, 9]])
        real_insert = academics_repository.insert_column

        def flaky_insert(module_id, name, column_type, order_index):
            if name == "Prova 2":
                raise RuntimeError("coluna recusada")
            return real_insert(module_id, name, column_type, order_index)

        monkeypatch.setattr(academics_repository, "insert_column", flaky_insert)

        result = import_spreadsheet(path, USER)
        assert len(result.errors) == 1
        assert "Prova 2" in result.errors[0]
        grid = materialize_grid(result.course_id)
        assert list(grid.records.values()) == ["8"]

        with pytest.raises(ColumnCreationError):
            import_spreadsheet(path, USER, options=ImportOptions(strict_columns=True))

    def test_csv_import(self, db_path, tmp_path):
        """CSV files go through the same pipeline."""
        path = tmp_path / "turma.csv"
        path.write_text("Aluno,Prova 1\nMaria,8\n", encoding="utf-8")

        result = import_spreadsheet(path, USER)

        assert result.count == 1
        grid = materialize_grid(result.course_id)
        assert list(grid.records.values()) == ["8"]

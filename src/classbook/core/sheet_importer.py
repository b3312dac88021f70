"""Spreadsheet import orchestrator.

Responsibilities:
- Read the first sheet of an xlsx/xlsm/xls workbook or a CSV file into rows
  of strings
- Detect the header row by keyword scoring and locate the student column
- Create Term, Course and a default module, one text column per header
- Create (or reuse) a student per data row, enroll it and write its cells

Structural problems (unreadable file, no header, no student column) are
detected before anything is written. Failures on individual rows are
collected in ImportResult.errors and the import carries on.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Callable

import structlog
import xlrd
from openpyxl import load_workbook

from classbook.config import ImportConfig, load_app_config
from classbook.core.grid import ColumnType
from classbook.db import academics_repository, records_repository, students_repository
from classbook.utils.text_utils import collapse_newlines, truncate

logger = structlog.get_logger(__name__)

EXCEL_FORMATS = (".xlsx", ".xlsm")
LEGACY_EXCEL_FORMATS = (".xls",)
CSV_FORMATS = (".csv",)
SUPPORTED_FORMATS = EXCEL_FORMATS + LEGACY_EXCEL_FORMATS + CSV_FORMATS
IDENTIFIER_HEADERS = ("N°", "Nº", "#", "ID")
STUDENT_HEADER_TOKEN = "ALUNO"
NAME_HEADER = "NOME"
MIN_NAME_LENGTH = 3

ProgressCallback = Callable[[str], None]


@dataclass
class ImportOptions:
    """Behaviour switches of an import run."""

    # Reuse the owner's student with the same name instead of creating one
    reuse_existing_students: bool = False
    # Abort the import when a column cannot be created
    strict_columns: bool = False


@dataclass
class ImportResult:
    """Result of a spreadsheet import."""

    success: bool
    count: int
    errors: list[str] = field(default_factory=list)
    course_name: str = ""
    term_name: str = ""
    course_id: str | None = None
    term_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "count": self.count,
            "errors": list(self.errors),
            "course_name": self.course_name,
            "term_name": self.term_name,
            "course_id": self.course_id,
            "term_id": self.term_id,
        }


class SheetImportError(Exception):
    """Base exception for fatal import errors."""

    pass


class SpreadsheetReadError(SheetImportError):
    """Raised when the file cannot be opened or parsed."""

    def __init__(self, file_path: Path, reason: str):
        self.file_path = file_path
        self.reason = reason
        super().__init__(f"Não foi possível ler a planilha '{file_path.name}': {reason}")


class EmptySpreadsheetError(SheetImportError):
    """Raised when the first sheet has fewer than two rows."""

    def __init__(self):
        super().__init__("Arquivo vazio ou formato inválido.")


class HeaderNotFoundError(SheetImportError):
    """Raised when no scanned row looks like a header."""

    def __init__(self, scanned_rows: int):
        self.scanned_rows = scanned_rows
        super().__init__(
            "Não foi possível identificar a linha de cabeçalho "
            f"(procurei por 'ALUNO' ou 'NOME' nas primeiras {scanned_rows} linhas)."
        )


class StudentColumnNotFoundError(SheetImportError):
    """Raised when the header row has no student-name column."""

    def __init__(self):
        super().__init__("Coluna de Aluno não encontrada.")


class ImportStructureError(SheetImportError):
    """Raised when the term, course or default module cannot be created."""

    pass


class ColumnCreationError(SheetImportError):
    """Raised in strict mode when a column cannot be created."""

    def __init__(self, header: str, reason: str):
        self.header = header
        super().__init__(f"Falha ao criar coluna '{header}': {reason}")


# =============================================================================
# READING
# =============================================================================


def _cell_text(value: Any) -> str:
    """Render a cell value as the string stored in the grid."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _rectangular(rows: list[list[str]]) -> list[list[str]]:
    """Pad rows to the same width and drop trailing blank rows."""
    while rows and not any(cell.strip() for cell in rows[-1]):
        rows.pop()
    width = max((len(row) for row in rows), default=0)
    return [row + [""] * (width - len(row)) for row in rows]


def _read_workbook(file_path: Path) -> list[list[str]]:
    try:
        workbook = load_workbook(file_path, read_only=True, data_only=True)
    except Exception as e:
        raise SpreadsheetReadError(file_path, str(e)) from e

    # Worksheets are parsed lazily, so XML errors surface while iterating
    try:
        if not workbook.sheetnames:
            return []
        sheet = workbook[workbook.sheetnames[0]]
        return [[_cell_text(value) for value in row] for row in sheet.iter_rows(values_only=True)]
    except Exception as e:
        raise SpreadsheetReadError(file_path, str(e)) from e
    finally:
        workbook.close()


def _xls_cell_value(cell: xlrd.sheet.Cell, datemode: int) -> Any:
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
        return None
    if cell.ctype == xlrd.XL_CELL_DATE:
        return xlrd.xldate_as_datetime(cell.value, datemode)
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    return cell.value


def _read_xls(file_path: Path) -> list[list[str]]:
    """Read the first sheet of a legacy Excel 97-2003 workbook."""
    try:
        book = xlrd.open_workbook(str(file_path))
        if book.nsheets == 0:
            return []
        sheet = book.sheet_by_index(0)
        return [
            [_cell_text(_xls_cell_value(cell, book.datemode)) for cell in row]
            for row in sheet.get_rows()
        ]
    except Exception as e:
        raise SpreadsheetReadError(file_path, str(e)) from e


def _decode(raw: bytes) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Spreadsheets exported on Windows are usually latin-1
        return raw.decode("latin-1")


def _read_csv(file_path: Path) -> list[list[str]]:
    try:
        text = _decode(file_path.read_bytes())
    except OSError as e:
        raise SpreadsheetReadError(file_path, str(e)) from e

    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel

    try:
        return [list(row) for row in csv.reader(io.StringIO(text), dialect)]
    except csv.Error as e:
        raise SpreadsheetReadError(file_path, str(e)) from e


def read_first_sheet(file_path: Path | str) -> list[list[str]]:
    """Read the first sheet of a spreadsheet as rows of strings.

    Args:
        file_path: Path to an .xlsx, .xlsm, .xls or .csv file

    Returns:
        Rectangular list of rows; empty cells are ""

    Raises:
        SpreadsheetReadError: Missing file, unsupported format or parse failure
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise SpreadsheetReadError(file_path, "arquivo não encontrado")

    suffix = file_path.suffix.lower()
    if suffix in EXCEL_FORMATS:
        rows = _read_workbook(file_path)
    elif suffix in LEGACY_EXCEL_FORMATS:
        rows = _read_xls(file_path)
    elif suffix in CSV_FORMATS:
        rows = _read_csv(file_path)
    else:
        raise SpreadsheetReadError(file_path, f"formato não suportado ({suffix or 'sem extensão'})")

    return _rectangular(rows)


# =============================================================================
# STRUCTURE DETECTION
# =============================================================================


def header_score(row: list[str], tokens: dict[str, int]) -> int:
    """Keyword score of a row; each token counts once."""
    joined = " ".join(cell.upper() for cell in row)
    return sum(weight for token, weight in tokens.items() if token in joined)


def detect_header_row(
    rows: list[list[str]], tokens: dict[str, int], scan_rows: int
) -> int | None:
    """Index of the best-scoring row among the first scan_rows.

    Only a strictly higher score replaces the current best, so the first
    row wins ties. Returns None when no row scores above zero.
    """
    best_index: int | None = None
    best_score = 0
    for index, row in enumerate(rows[:scan_rows]):
        score = header_score(row, tokens)
        if score > best_score:
            best_score = score
            best_index = index
    return best_index


def is_student_header(header: str) -> bool:
    upper = header.strip().upper()
    return STUDENT_HEADER_TOKEN in upper or upper == NAME_HEADER


def find_student_column(headers: list[str]) -> int | None:
    """Index of the first student-name header, None if there is none."""
    for index, header in enumerate(headers):
        if is_student_header(header):
            return index
    return None


def infer_course_title(rows: list[list[str]], header_index: int, config: ImportConfig) -> str:
    """Course name from the row above the header, or the first sheet cell."""
    title = ""
    if header_index > 0 and rows[header_index - 1]:
        title = rows[header_index - 1][0].strip()
    if not title and rows and rows[0]:
        title = rows[0][0].strip()
    if not title:
        title = config.fallback_title
    return truncate(title, config.title_max_length)


def importable_header(header: str) -> str | None:
    """Column name for a header, or None when the header is skipped."""
    name = collapse_newlines(header.strip())
    if not name:
        return None
    if is_student_header(name):
        return None
    if name.upper() in IDENTIFIER_HEADERS:
        return None
    return name


def accept_student_name(raw: str, banner_tokens: list[str]) -> str | None:
    """Cleaned student name, or None for rows that are not students.

    Rejects blank and too-short names, repeated header labels and section
    banners such as "1º TRIMESTRE".
    """
    name = raw.strip()
    if len(name) < MIN_NAME_LENGTH:
        return None
    upper = name.upper()
    if upper in (STUDENT_HEADER_TOKEN, NAME_HEADER):
        return None
    if any(token.upper() in upper for token in banner_tokens):
        return None
    return name


def term_name_for(day: date) -> str:
    return f"Importado {day.strftime('%d/%m/%Y')}"


# =============================================================================
# IMPORT
# =============================================================================


def _noop(message: str) -> None:
    pass


def import_spreadsheet(
    file_path: Path | str,
    user_id: str,
    on_progress: ProgressCallback | None = None,
    options: ImportOptions | None = None,
) -> ImportResult:
    """Import a spreadsheet as a new term with one course.

    Args:
        file_path: Spreadsheet to import (.xlsx, .xlsm, .xls or .csv)
        user_id: Owner of the created term and students
        on_progress: Receives a human-readable message after each phase
            and each accepted row
        options: Student reuse and column strictness

    Returns:
        ImportResult with the accepted-row count and per-row errors

    Raises:
        SpreadsheetReadError: If the file cannot be read
        EmptySpreadsheetError: If the sheet has fewer than two rows
        HeaderNotFoundError: If no header row is recognized
        StudentColumnNotFoundError: If the header has no student column
        ImportStructureError: If term, course or module creation fails
        ColumnCreationError: If a column fails and options.strict_columns
    """
    progress = on_progress or _noop
    options = options or ImportOptions()
    config = load_app_config().importer
    file_path = Path(file_path)

    logger.info("import.start", file=str(file_path), user_id=user_id)

    rows = read_first_sheet(file_path)
    if len(rows) < 2:
        raise EmptySpreadsheetError()

    # 1. Structure detection (nothing written yet)
    progress("Analisando estrutura do arquivo...")
    header_index = detect_header_row(rows, config.header_tokens, config.header_scan_rows)
    if header_index is None:
        raise HeaderNotFoundError(min(len(rows), config.header_scan_rows))

    headers = rows[header_index]
    student_index = find_student_column(headers)
    if student_index is None:
        raise StudentColumnNotFoundError()

    course_name = infer_course_title(rows, header_index, config)
    term_name = term_name_for(date.today())
    logger.debug(
        "import.structure_detected",
        header_row=header_index,
        student_column=student_index,
        course_name=course_name,
    )

    # 2. Term, course and default module
    progress(f"Criando Turma: {course_name}...")
    try:
        term = academics_repository.create_term(term_name, user_id)
        course = academics_repository.create_course(term.id, course_name)
        module = academics_repository.insert_module(course.id, config.default_module_name, 0)
    except Exception as e:
        raise ImportStructureError(f"Falha ao criar a estrutura da turma: {e}") from e

    # 3. Columns
    progress("Criando colunas...")
    errors: list[str] = []
    column_map: dict[int, str] = {}
    order_index = 0
    for index, header in enumerate(headers):
        name = importable_header(header)
        if name is None:
            continue
        try:
            column = academics_repository.insert_column(
                module.id, name, ColumnType.TEXT.value, order_index
            )
        except Exception as e:
            if options.strict_columns:
                raise ColumnCreationError(name, str(e)) from e
            logger.warning("import.column_failed", header=name, error=str(e))
            errors.append(f"Falha ao criar coluna '{name}': {e}")
            continue
        column_map[index] = column.id
        order_index += 1

    # 4. Rows
    count = 0
    for row in rows[header_index + 1 :]:
        name = accept_student_name(row[student_index], config.banner_tokens)
        if name is None:
            continue

        count += 1
        progress(f"Processando ({count}): {name}")

        try:
            student = None
            if options.reuse_existing_students:
                student = students_repository.find_student_by_name(name, user_id)
            if student is None:
                student = students_repository.add_student(name, user_id)

            enrollment = students_repository.enroll_student(course.id, student.id)

            cells = []
            for index, column_id in column_map.items():
                value = row[index].strip()
                if value:
                    cells.append(
                        {"enrollment_id": enrollment.id, "column_id": column_id, "value": value}
                    )
            if cells:
                records_repository.save_records_batch(cells)
        except Exception as e:
            logger.warning("import.row_failed", student=name, error=str(e))
            errors.append(f"Falha em {name}: {str(e) or 'Erro desconhecido'}")

    progress("Concluído!")
    logger.info(
        "import.success",
        course_id=course.id,
        term_id=term.id,
        count=count,
        errors=len(errors),
    )

    return ImportResult(
        success=True,
        count=count,
        errors=errors,
        course_name=course_name,
        term_name=term_name,
        course_id=course.id,
        term_id=term.id,
    )

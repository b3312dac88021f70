"""CLI commands for classbook.

Commands:
- init-db: Create or migrate the SQLite database
- import-sheet: Import a spreadsheet as a new term
- grid: Show the academic-records grid of a course
- set-cell: Write one grid cell
- export-grid: Write the grid of a course as CSV
- pending-returns: Loans whose last transaction is a delivery
- availability: Book stock minus books currently out
- attendance: Attendance sheet of a course, optionally toggling a mark
"""

import asyncio
from datetime import date
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from classbook.config import load_app_config
from classbook.core import exports, ledger
from classbook.core.attendance import AttendanceBoard, attendance_sheet
from classbook.core.grid import CellOutOfGridError, GridSession, cell_style, materialize_grid
from classbook.core.sheet_importer import (
    ImportOptions,
    SheetImportError,
    import_spreadsheet,
)
from classbook.db import academics_repository, init_db

app = typer.Typer(
    name="classbook",
    help="Academic records, library lending and attendance for a teaching institution.",
    no_args_is_help=True,
)

console = Console()

_STYLE_COLORS = {"fail": "red", "ok": "green", "pending": "yellow"}
_STATUS_LABELS = {"present": "P", "absent": "F", "excused": "J"}


def _open_db() -> Path:
    """Initialize the configured database and return its path."""
    path = Path(load_app_config().database.path)
    init_db(path)
    return path


def _styled(value: str) -> str:
    color = _STYLE_COLORS.get(cell_style(value) or "")
    return f"[{color}]{value}[/{color}]" if color else value


@app.command(name="init-db")
def init_db_command() -> None:
    """Create the database schema (safe to run again)."""
    path = _open_db()
    console.print(f"[green]✓ Banco de dados pronto:[/green] {path}")


@app.command(name="import-sheet")
def import_sheet(
    file: str = typer.Argument(..., help="Path to .xlsx, .xlsm, .xls or .csv file"),
    user: str = typer.Option(
        ..., "--user", "-u", envvar="CLASSBOOK_USER_ID", help="Owner user id"
    ),
    reuse_students: bool = typer.Option(
        False, "--reuse-students", help="Reuse students with the same name"
    ),
    strict_columns: bool = typer.Option(
        False, "--strict-columns", help="Abort if a column cannot be created"
    ),
) -> None:
    """Import the first sheet of a spreadsheet as a new term and course."""
    _open_db()
    file_path = Path(file).expanduser().resolve()

    try:
        result = import_spreadsheet(
            file_path,
            user,
            on_progress=lambda message: console.print(f"[dim]{message}[/dim]"),
            options=ImportOptions(
                reuse_existing_students=reuse_students,
                strict_columns=strict_columns,
            ),
        )
    except SheetImportError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ {result.count} alunos importados[/green]")
    console.print(f"  [dim]período:[/dim]   {result.term_name}")
    console.print(f"  [dim]turma:[/dim]     {result.course_name}")
    console.print(f"  [dim]course_id:[/dim] {result.course_id}")
    if result.errors:
        console.print(f"[yellow]⚠ {len(result.errors)} erro(s):[/yellow]")
        for error in result.errors:
            console.print(f"  - {error}")


@app.command()
def grid(
    course_id: str = typer.Argument(..., help="Course ID"),
) -> None:
    """Show the grid of a course."""
    _open_db()
    data = materialize_grid(course_id)
    if data is None:
        console.print(f"[red]✗ Turma não encontrada: {course_id}[/red]")
        raise typer.Exit(code=1)

    if not data.enrollments:
        console.print(f"[yellow]⚠ Nenhum aluno matriculado em {data.course.name}[/yellow]")
        return

    table = Table(title=data.course.name, show_header=True, header_style="bold")
    table.add_column("Aluno", style="cyan")
    for module in data.modules:
        for column in module.columns:
            table.add_column(f"{module.name} - {column.name}")

    for enrollment in data.enrollments:
        name = enrollment.student.name if enrollment.student else ""
        table.add_row(
            name,
            *[_styled(data.value(enrollment.id, column.id)) for column in data.columns],
        )

    console.print(table)
    console.print(f"\n[dim]{len(data.enrollments)} alunos, {len(data.columns)} colunas[/dim]")


@app.command(name="set-cell")
def set_cell(
    course_id: str = typer.Argument(..., help="Course ID"),
    enrollment_id: str = typer.Argument(..., help="Enrollment ID (grid row)"),
    column_id: str = typer.Argument(..., help="Column ID"),
    value: str = typer.Argument(..., help="New value (empty string clears)"),
) -> None:
    """Write one cell of a course grid."""
    _open_db()

    async def _write() -> bool:
        session = await GridSession.open(course_id, save_indicator_delay=0)
        if session is None:
            console.print(f"[red]✗ Turma não encontrada: {course_id}[/red]")
            raise typer.Exit(code=1)
        task = session.set_cell(enrollment_id, column_id, value)
        return await task

    try:
        saved = asyncio.run(_write())
    except CellOutOfGridError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    if not saved:
        console.print("[red]✗ Falha ao salvar a célula[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓ Célula salva:[/green] {value!r}")


@app.command(name="export-grid")
def export_grid(
    course_id: str = typer.Argument(..., help="Course ID"),
    output: str | None = typer.Option(
        None, "--output", "-o", help="Output file (default: Planilha_<course>.csv)"
    ),
) -> None:
    """Export the grid of a course as CSV."""
    _open_db()
    data = materialize_grid(course_id)
    if data is None:
        console.print(f"[red]✗ Turma não encontrada: {course_id}[/red]")
        raise typer.Exit(code=1)

    out_path = Path(output) if output else Path(f"Planilha_{data.course.name}.csv")
    out_path.write_text(exports.grid_to_csv(data), encoding="utf-8")
    console.print(f"[green]✓ Planilha exportada:[/green] {out_path}")


@app.command(name="pending-returns")
def pending_returns(
    today: str | None = typer.Option(
        None, "--today", help="Reference day (YYYY-MM-DD), default: today"
    ),
) -> None:
    """List loans that were delivered and not yet returned."""
    _open_db()
    try:
        reference = ledger.parse_ledger_date(today) if today else date.today()
    except ledger.InvalidTransactionError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    pending = ledger.pending_returns(reference)
    if not pending:
        console.print("[green]✓ Nenhuma devolução pendente[/green]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Aluno", style="cyan")
    table.add_column("Livro")
    table.add_column("Código")
    table.add_column("Entregue em", justify="center")
    table.add_column("Dias", justify="right")

    for item in sorted(pending, key=lambda p: p.days_outstanding, reverse=True):
        table.add_row(
            item.student_name,
            item.book_title,
            item.book_code,
            item.delivery_date.isoformat(),
            str(item.days_outstanding),
        )

    console.print(table)


@app.command()
def availability() -> None:
    """Show stock and availability of every book."""
    _open_db()
    lines = ledger.inventory()
    if not lines:
        console.print("[yellow]⚠ Nenhum livro cadastrado[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Livro", style="cyan")
    table.add_column("Código")
    table.add_column("Estoque", justify="right")
    table.add_column("Emprestados", justify="right")
    table.add_column("Disponíveis", justify="right")

    for line in lines:
        available = str(line.available)
        if line.available <= 0:
            available = f"[red]{available}[/red]"
        table.add_row(line.title, line.code, str(line.stock), str(line.currently_out), available)

    console.print(table)

    totals = ledger.dashboard_summary()
    console.print(
        f"\n[dim]Em circulação: {totals.in_circulation} | "
        f"Entregas: {totals.delivered} | Devoluções: {totals.returned}[/dim]"
    )


@app.command()
def attendance(
    course_id: str = typer.Argument(..., help="Course ID"),
    toggle: str | None = typer.Option(
        None, "--toggle", help="Student ID whose mark advances one step"
    ),
    on: str | None = typer.Option(None, "--date", help="Class date (YYYY-MM-DD) for --toggle"),
) -> None:
    """Show the attendance sheet of a course, or toggle one mark."""
    _open_db()
    if academics_repository.get_course(course_id) is None:
        console.print(f"[red]✗ Turma não encontrada: {course_id}[/red]")
        raise typer.Exit(code=1)

    if toggle is not None:
        if not on:
            console.print("[red]✗ Informe --date junto com --toggle[/red]")
            raise typer.Exit(code=1)

        async def _toggle():
            board = await AttendanceBoard.open(course_id)
            return await board.toggle(toggle, on)

        outcome = asyncio.run(_toggle())
        if not outcome.saved:
            console.print(f"[red]✗ Falha ao salvar a presença de {toggle} em {on}[/red]")
            raise typer.Exit(code=1)
        label = outcome.status.value if outcome.status else "sem marcação"
        console.print(f"[green]✓ {toggle} em {on}:[/green] {label}")

    sheet = attendance_sheet(course_id)
    if sheet is None:
        console.print(f"[red]✗ Turma não encontrada: {course_id}[/red]")
        raise typer.Exit(code=1)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Aluno", style="cyan")
    for day in sheet.dates:
        table.add_column(day[5:], justify="center")
    table.add_column("%", justify="right")

    for student in sheet.students:
        marks = []
        for day in sheet.dates:
            status = sheet.marks.get((student.student_id, day))
            marks.append(_STATUS_LABELS[status.value] if status else "-")
        percentage = f"{student.percentage}%"
        if student.below_threshold:
            percentage = f"[red]{percentage}[/red]"
        table.add_row(student.student_name, *marks, percentage)

    console.print(table)


if __name__ == "__main__":
    app()

"""Course endpoints: grid, cells, modules, enrollments, schedule, exports."""

from dataclasses import asdict

import structlog
from fastapi import APIRouter, HTTPException, Response, status

from classbook.core import exports
from classbook.core.grid import (
    CellOutOfGridError,
    EnrollmentError,
    GridSession,
    add_module,
    cell_key,
    enroll,
    materialize_grid,
)
from classbook.db import academics_repository
from classbook.web.schemas import (
    CellResponse,
    CellUpdate,
    CourseResponse,
    EnrollmentCreate,
    EnrollmentResponse,
    GridResponse,
    ModuleCreate,
    ModuleResponse,
    ScheduleUpdate,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/courses", tags=["courses"])


def _course_not_found(course_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Turma '{course_id}' não encontrada",
    )


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{course_id}", response_model=CourseResponse)
async def get_course(course_id: str) -> CourseResponse:
    """Get a course with its schedule."""
    course = academics_repository.get_course(course_id)
    if course is None:
        raise _course_not_found(course_id)
    return CourseResponse(**asdict(course))


@router.get("/{course_id}/grid", response_model=GridResponse)
async def get_grid(course_id: str) -> GridResponse:
    """Materialize the academic-records grid of a course."""
    grid = materialize_grid(course_id)
    if grid is None:
        raise _course_not_found(course_id)
    return GridResponse(**grid.to_dict())


@router.put("/{course_id}/cells", response_model=CellResponse)
async def save_cell(course_id: str, body: CellUpdate) -> CellResponse:
    """Write one cell of the grid.

    The write goes through a GridSession, so the stored row follows the
    same last-write-wins rule as interactive edits.
    """
    session = await GridSession.open(course_id)
    if session is None:
        raise _course_not_found(course_id)

    try:
        task = session.set_cell(body.enrollment_id, body.column_id, body.value)
    except CellOutOfGridError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    saved = await task
    return CellResponse(
        key=cell_key(body.enrollment_id, body.column_id),
        value=session.value(body.enrollment_id, body.column_id),
        saved=saved,
    )


@router.post(
    "/{course_id}/modules",
    response_model=ModuleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_module(course_id: str, body: ModuleCreate) -> ModuleResponse:
    """Append a module to a course."""
    if academics_repository.get_course(course_id) is None:
        raise _course_not_found(course_id)
    module = add_module(course_id, body.name.strip())
    return ModuleResponse(**asdict(module))


@router.post("/{course_id}/enrollments", response_model=EnrollmentResponse)
async def create_enrollment(course_id: str, body: EnrollmentCreate) -> EnrollmentResponse:
    """Enroll a student; enrolling twice returns the same enrollment."""
    try:
        enrollment = enroll(course_id, body.student_id)
    except EnrollmentError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return EnrollmentResponse(
        id=enrollment.id,
        course_id=enrollment.course_id,
        student_id=enrollment.student_id,
    )


@router.put("/{course_id}/schedule", response_model=CourseResponse)
async def set_schedule(course_id: str, body: ScheduleUpdate) -> CourseResponse:
    """Replace the class dates of a course."""
    course = academics_repository.set_course_schedule(course_id, body.dates)
    if course is None:
        raise _course_not_found(course_id)
    return CourseResponse(**asdict(course))


@router.get("/{course_id}/grid.csv")
async def export_grid(course_id: str) -> Response:
    """Download the grid as CSV."""
    grid = materialize_grid(course_id)
    if grid is None:
        raise _course_not_found(course_id)
    return _csv_response(exports.grid_to_csv(grid), f"Planilha_{grid.course.name}.csv")


@router.get("/{course_id}/report.csv")
async def export_report(course_id: str) -> Response:
    """Download the books-and-attendance report of a course as CSV."""
    course = academics_repository.get_course(course_id)
    content = exports.course_report_csv(course_id)
    if course is None or content is None:
        raise _course_not_found(course_id)
    return _csv_response(content, f"relatorio_{course.name}.csv")

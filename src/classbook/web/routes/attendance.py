"""Attendance endpoints."""

from dataclasses import asdict

from fastapi import APIRouter, HTTPException, status

from classbook.core.attendance import attendance_sheet
from classbook.db import academics_repository
from classbook.web.boards import get_board_manager
from classbook.web.schemas import (
    AttendanceMark,
    AttendanceSheetResponse,
    AttendanceToggleRequest,
    AttendanceToggleResponse,
    StudentAttendanceResponse,
)

router = APIRouter(prefix="/api/courses", tags=["attendance"])


def _course_not_found(course_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Turma '{course_id}' não encontrada",
    )


@router.post("/{course_id}/attendance/toggle", response_model=AttendanceToggleResponse)
async def toggle_attendance(
    course_id: str, body: AttendanceToggleRequest
) -> AttendanceToggleResponse:
    """Advance a mark: unmarked, present, absent, excused, unmarked.

    A toggle arriving while the previous one on the same student and date
    is still being written is answered with accepted=false.
    """
    if academics_repository.get_course(course_id) is None:
        raise _course_not_found(course_id)

    board = await get_board_manager().get_board(course_id)
    outcome = await board.toggle(body.student_id, body.date)
    return AttendanceToggleResponse(
        accepted=outcome.accepted,
        status=outcome.status.value if outcome.status else None,
        saved=outcome.saved,
    )


@router.get("/{course_id}/attendance", response_model=AttendanceSheetResponse)
async def get_attendance(course_id: str) -> AttendanceSheetResponse:
    """Scheduled dates, stored marks and per-student percentages."""
    sheet = attendance_sheet(course_id)
    if sheet is None:
        raise _course_not_found(course_id)

    return AttendanceSheetResponse(
        course_id=sheet.course_id,
        dates=sheet.dates,
        marks=[
            AttendanceMark(student_id=student_id, date=day, status=mark.value)
            for (student_id, day), mark in sorted(sheet.marks.items())
        ],
        students=[StudentAttendanceResponse(**asdict(s)) for s in sheet.students],
    )

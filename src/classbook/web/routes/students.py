"""Student endpoints."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, status

from classbook.core.grid import student_history
from classbook.db import students_repository
from classbook.web.deps import current_user_id
from classbook.web.schemas import (
    StudentCreate,
    StudentHistoryResponse,
    StudentListResponse,
    StudentResponse,
)

router = APIRouter(prefix="/api/students", tags=["students"])


@router.get("", response_model=StudentListResponse)
async def list_students(
    q: str | None = Query(default=None, description="Name or matricula fragment"),
    limit: int = Query(default=10, ge=1, le=100),
) -> StudentListResponse:
    """List students, or search them by a case-insensitive fragment."""
    if q:
        records = students_repository.search_students(q, limit=limit)
    else:
        records = students_repository.list_students()
    students = [StudentResponse(**asdict(s)) for s in records]
    return StudentListResponse(students=students, count=len(students))


@router.get("/{student_id}", response_model=StudentResponse)
async def get_student(student_id: str) -> StudentResponse:
    """Get a specific student by ID."""
    student = students_repository.get_student(student_id)
    if student is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Aluno '{student_id}' não encontrado",
        )
    return StudentResponse(**asdict(student))


@router.get("/{student_id}/history", response_model=StudentHistoryResponse)
async def get_student_history(student_id: str) -> StudentHistoryResponse:
    """Courses the student is enrolled in, with their values by module."""
    history = student_history(student_id)
    if history is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Aluno '{student_id}' não encontrado",
        )
    return StudentHistoryResponse(
        student_id=student_id,
        courses=[entry.to_dict() for entry in history],
        count=len(history),
    )


@router.post("", response_model=StudentResponse, status_code=status.HTTP_201_CREATED)
async def create_student(
    body: StudentCreate, user_id: str = Depends(current_user_id)
) -> StudentResponse:
    """Create a student owned by the requesting user."""
    student = students_repository.add_student(
        name=body.name.strip(),
        user_id=user_id,
        matricula=body.matricula,
        email=body.email,
        phone=body.phone,
    )
    return StudentResponse(**asdict(student))

"""Term endpoints, with the courses listed under each term."""

from dataclasses import asdict

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from classbook.db import academics_repository
from classbook.web.deps import current_user_id
from classbook.web.schemas import (
    CourseCreate,
    CourseListResponse,
    CourseResponse,
    TermCreate,
    TermDuplicate,
    TermListResponse,
    TermResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/terms", tags=["terms"])


def _require_term(term_id: str) -> None:
    if academics_repository.get_term(term_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Período '{term_id}' não encontrado",
        )


@router.get("", response_model=TermListResponse)
async def list_terms() -> TermListResponse:
    """List all terms, newest first."""
    terms = [TermResponse(**asdict(t)) for t in academics_repository.list_terms()]
    return TermListResponse(terms=terms, count=len(terms))


@router.post("", response_model=TermResponse, status_code=status.HTTP_201_CREATED)
async def create_term(
    body: TermCreate, user_id: str = Depends(current_user_id)
) -> TermResponse:
    """Create a term owned by the requesting user."""
    term = academics_repository.create_term(body.name.strip(), user_id)
    logger.info("api.term_created", term_id=term.id)
    return TermResponse(**asdict(term))


@router.delete("/{term_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_term(term_id: str) -> None:
    """Delete a term with all its courses, grids and marks."""
    if not academics_repository.delete_term(term_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Período '{term_id}' não encontrado",
        )


@router.post(
    "/{term_id}/duplicate",
    response_model=TermResponse,
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_term(term_id: str, body: TermDuplicate) -> TermResponse:
    """Copy the structure of a term (courses, modules, columns)."""
    term = academics_repository.duplicate_term(term_id, body.name.strip())
    if term is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Período '{term_id}' não encontrado",
        )
    return TermResponse(**asdict(term))


@router.get("/{term_id}/courses", response_model=CourseListResponse)
async def list_courses(term_id: str) -> CourseListResponse:
    """List the courses of a term by name."""
    _require_term(term_id)
    courses = [CourseResponse(**asdict(c)) for c in academics_repository.list_courses(term_id)]
    return CourseListResponse(courses=courses, count=len(courses))


@router.post(
    "/{term_id}/courses",
    response_model=CourseResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_course(term_id: str, body: CourseCreate) -> CourseResponse:
    """Create a course under a term."""
    _require_term(term_id)
    course = academics_repository.create_course(term_id, body.name.strip())
    return CourseResponse(**asdict(course))

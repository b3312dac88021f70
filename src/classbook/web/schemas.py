"""Pydantic schemas for the Web API.

Serialization models for terms, courses, grids, students, the lending
ledger, attendance and spreadsheet imports.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


# =============================================================================
# TERM / COURSE SCHEMAS
# =============================================================================


class TermCreate(BaseModel):
    """Request body for creating a term."""

    name: str = Field(..., min_length=1, max_length=200)


class TermDuplicate(BaseModel):
    """Request body for duplicating a term."""

    name: str = Field(..., min_length=1, max_length=200)


class TermResponse(BaseModel):
    """Response for a term."""

    id: str
    name: str
    user_id: str
    is_archived: bool = False
    created_at: str = ""

    model_config = {"from_attributes": True}


class TermListResponse(BaseModel):
    """Response for list of terms."""

    terms: list[TermResponse]
    count: int


class CourseCreate(BaseModel):
    """Request body for creating a course."""

    name: str = Field(..., min_length=1, max_length=200)


class CourseResponse(BaseModel):
    """Response for a course."""

    id: str
    term_id: str
    name: str
    schedule: list[str] = Field(default_factory=list)
    created_at: str = ""

    model_config = {"from_attributes": True}


class CourseListResponse(BaseModel):
    """Response for list of courses."""

    courses: list[CourseResponse]
    count: int


class ScheduleUpdate(BaseModel):
    """Class dates of a course (ISO dates)."""

    dates: list[str]


# =============================================================================
# GRID SCHEMAS
# =============================================================================


class ModuleCreate(BaseModel):
    """Request body for adding a module."""

    name: str = Field(..., min_length=1, max_length=200)


class ColumnCreate(BaseModel):
    """Request body for adding a column."""

    name: str = Field(..., min_length=1, max_length=200)
    type: str = "text"  # text | date | check


class ColumnResponse(BaseModel):
    """Response for a grid column."""

    id: str
    module_id: str
    name: str
    type: str
    order_index: int

    model_config = {"from_attributes": True}


class ModuleResponse(BaseModel):
    """Response for a module with its columns."""

    id: str
    course_id: str
    name: str
    order_index: int
    columns: list[ColumnResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class EnrollmentCreate(BaseModel):
    """Request body for enrolling a student."""

    student_id: str


class EnrollmentResponse(BaseModel):
    """Response for an enrollment."""

    id: str
    course_id: str
    student_id: str


class GridResponse(BaseModel):
    """A materialized course grid."""

    course: dict[str, Any]
    modules: list[dict[str, Any]]
    enrollments: list[dict[str, Any]]
    records: dict[str, str]


class CellUpdate(BaseModel):
    """Request body for writing one cell."""

    enrollment_id: str
    column_id: str
    value: str = Field(default="", max_length=2000)


class CellResponse(BaseModel):
    """Result of a cell write."""

    key: str
    value: str
    saved: bool


# =============================================================================
# STUDENT SCHEMAS
# =============================================================================


class StudentCreate(BaseModel):
    """Request body for creating a student."""

    name: str = Field(..., min_length=1, max_length=200)
    matricula: str = Field(default="", max_length=50)
    email: str | None = Field(default=None, max_length=200)
    phone: str | None = Field(default=None, max_length=50)


class StudentResponse(BaseModel):
    """Response for a student."""

    id: str
    name: str
    user_id: str
    matricula: str = ""
    email: str | None = None
    phone: str | None = None
    created_at: str = ""

    model_config = {"from_attributes": True}


class StudentListResponse(BaseModel):
    """Response for list of students."""

    students: list[StudentResponse]
    count: int


class StudentHistoryResponse(BaseModel):
    """Academic history of one student, one entry per enrollment."""

    student_id: str
    courses: list[dict]
    count: int


# =============================================================================
# LIBRARY SCHEMAS
# =============================================================================


class BookCreate(BaseModel):
    """Request body for registering a book."""

    title: str = Field(..., min_length=1, max_length=300)
    code: str = Field(default="", max_length=50)
    author: str = Field(default="", max_length=200)
    category: str = Field(default="", max_length=100)
    stock: int = Field(default=0, ge=0)


class BookResponse(BaseModel):
    """Response for a book."""

    id: str
    title: str
    user_id: str
    code: str = ""
    author: str = ""
    category: str = ""
    stock: int = 0
    created_at: str = ""

    model_config = {"from_attributes": True}


class BookListResponse(BaseModel):
    """Response for list of books."""

    books: list[BookResponse]
    count: int


class TransactionCreate(BaseModel):
    """Request body for a ledger entry."""

    student_id: str
    book_id: str
    type: str  # delivery | return
    date: str


class TransactionResponse(BaseModel):
    """Response for a ledger entry."""

    id: str
    student_id: str
    book_id: str
    type: str
    date: str
    created_at: str = ""

    model_config = {"from_attributes": True}


class PendingReturnResponse(BaseModel):
    """An outstanding loan."""

    transaction_id: str
    student_id: str
    student_name: str
    book_id: str
    book_title: str
    book_code: str
    delivery_date: str
    days_outstanding: int


class PendingReturnListResponse(BaseModel):
    """Response for pending returns."""

    pending: list[PendingReturnResponse]
    count: int


class AvailabilityResponse(BaseModel):
    """Inventory line of a book."""

    book_id: str
    title: str
    code: str
    stock: int
    delivered: int
    returned: int
    currently_out: int
    available: int


class AvailabilityListResponse(BaseModel):
    """Response for book availability."""

    books: list[AvailabilityResponse]
    count: int


class SummaryResponse(BaseModel):
    """Dashboard totals."""

    total_stock: int
    delivered: int
    returned: int
    in_circulation: int
    students: int
    courses: int


# =============================================================================
# ATTENDANCE SCHEMAS
# =============================================================================


class AttendanceToggleRequest(BaseModel):
    """Request body for toggling a mark."""

    student_id: str
    date: str


class AttendanceToggleResponse(BaseModel):
    """Result of a toggle; status None means unmarked."""

    accepted: bool
    status: str | None = None
    saved: bool = True


class AttendanceMark(BaseModel):
    """One stored mark."""

    student_id: str
    date: str
    status: str


class StudentAttendanceResponse(BaseModel):
    """Attendance statistic of one student."""

    student_id: str
    student_name: str
    present: int
    scheduled: int
    percentage: int
    below_threshold: bool


class AttendanceSheetResponse(BaseModel):
    """Attendance sheet of a course."""

    course_id: str
    dates: list[str]
    marks: list[AttendanceMark]
    students: list[StudentAttendanceResponse]


# =============================================================================
# IMPORT SCHEMAS
# =============================================================================


class ImportResponse(BaseModel):
    """Result of a spreadsheet import."""

    success: bool
    count: int
    errors: list[str] = Field(default_factory=list)
    course_name: str = ""
    term_name: str = ""
    course_id: str | None = None
    term_id: str | None = None
    progress: list[str] = Field(default_factory=list)


# =============================================================================
# HEALTH SCHEMAS
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

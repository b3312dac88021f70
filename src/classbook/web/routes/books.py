"""Library endpoints: books, ledger entries and circulation reports."""

from dataclasses import asdict
from datetime import date

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from classbook.core import ledger
from classbook.db import library_repository
from classbook.web.deps import current_user_id
from classbook.web.schemas import (
    AvailabilityListResponse,
    AvailabilityResponse,
    BookCreate,
    BookListResponse,
    BookResponse,
    PendingReturnListResponse,
    PendingReturnResponse,
    SummaryResponse,
    TransactionCreate,
    TransactionResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/books", tags=["books"])


@router.get("", response_model=BookListResponse)
async def list_books() -> BookListResponse:
    """List all books by title."""
    books = [BookResponse(**asdict(b)) for b in library_repository.list_books()]
    return BookListResponse(books=books, count=len(books))


@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    body: BookCreate, user_id: str = Depends(current_user_id)
) -> BookResponse:
    """Register a book."""
    book = library_repository.create_book(
        title=body.title.strip(),
        user_id=user_id,
        code=body.code,
        author=body.author,
        category=body.category,
        stock=body.stock,
    )
    return BookResponse(**asdict(book))


@router.post(
    "/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_transaction(body: TransactionCreate) -> TransactionResponse:
    """Record a delivery or a return."""
    try:
        transaction = ledger.record_transaction(
            body.student_id, body.book_id, body.type, body.date
        )
    except ledger.InvalidTransactionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return TransactionResponse(**asdict(transaction))


@router.get("/pending-returns", response_model=PendingReturnListResponse)
async def pending_returns(
    today: date | None = Query(default=None, description="Reference day (ISO)"),
) -> PendingReturnListResponse:
    """Loans whose last transaction is a delivery."""
    pending = [PendingReturnResponse(**p.to_dict()) for p in ledger.pending_returns(today)]
    pending.sort(key=lambda p: p.days_outstanding, reverse=True)
    return PendingReturnListResponse(pending=pending, count=len(pending))


@router.get("/availability", response_model=AvailabilityListResponse)
async def availability() -> AvailabilityListResponse:
    """Stock minus books currently out, per book."""
    lines = [
        AvailabilityResponse(
            book_id=line.book_id,
            title=line.title,
            code=line.code,
            stock=line.stock,
            delivered=line.delivered,
            returned=line.returned,
            currently_out=line.currently_out,
            available=line.available,
        )
        for line in ledger.inventory()
    ]
    return AvailabilityListResponse(books=lines, count=len(lines))


@router.get("/summary", response_model=SummaryResponse)
async def summary() -> SummaryResponse:
    """Dashboard totals."""
    totals = ledger.dashboard_summary()
    return SummaryResponse(
        total_stock=totals.total_stock,
        delivered=totals.delivered,
        returned=totals.returned,
        in_circulation=totals.in_circulation,
        students=totals.students,
        courses=totals.courses,
    )

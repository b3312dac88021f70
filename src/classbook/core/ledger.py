"""Lending ledger reconciliation.

Two independent readings of the book_transactions log:

- Pending returns: per (student, book) pair, the chronologically last
  transaction decides. The pair is outstanding iff that last entry is a
  delivery. Borrowing the same book twice and returning it once therefore
  reads as settled.
- Availability: per book, stock - (deliveries - returns) using plain counts.

They can disagree and are kept as separate operations on purpose.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable

import structlog

from classbook.config import load_app_config
from classbook.db import library_repository, store, students_repository
from classbook.db.library_repository import LibraryBookRecord, TransactionRecord
from classbook.db.students_repository import StudentRecord

logger = structlog.get_logger(__name__)


class TransactionType(str, Enum):
    """Kind of ledger entry."""

    DELIVERY = "delivery"
    RETURN = "return"


class InvalidTransactionError(Exception):
    """Raised when a ledger entry cannot be recorded."""

    pass


@dataclass
class PendingReturn:
    """A loan whose last transaction is a delivery."""

    transaction_id: str
    student_id: str
    student_name: str
    book_id: str
    book_title: str
    book_code: str
    delivery_date: date
    days_outstanding: int

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "transaction_id": self.transaction_id,
            "student_id": self.student_id,
            "student_name": self.student_name,
            "book_id": self.book_id,
            "book_title": self.book_title,
            "book_code": self.book_code,
            "delivery_date": self.delivery_date.isoformat(),
            "days_outstanding": self.days_outstanding,
        }


@dataclass
class BookAvailability:
    """Inventory line for one book."""

    book_id: str
    title: str
    code: str
    stock: int
    delivered: int
    returned: int

    @property
    def currently_out(self) -> int:
        return self.delivered - self.returned

    @property
    def available(self) -> int:
        return self.stock - self.currently_out


@dataclass
class CirculationSummary:
    """Dashboard totals."""

    total_stock: int
    delivered: int
    returned: int
    students: int
    courses: int

    @property
    def in_circulation(self) -> int:
        return self.delivered - self.returned


def parse_ledger_date(value: str) -> date:
    """Parse the date of a ledger entry (ISO date, time part ignored).

    Raises:
        InvalidTransactionError: If the value is not an ISO date
    """
    try:
        return date.fromisoformat(value.strip()[:10])
    except (ValueError, AttributeError):
        raise InvalidTransactionError(f"Data inválida: '{value}'") from None


def compute_pending_returns(
    transactions: Iterable[TransactionRecord],
    students: Iterable[StudentRecord],
    books: Iterable[LibraryBookRecord],
    today: date,
    tiebreak: str = "fetch_order",
) -> list[PendingReturn]:
    """Classify every (student, book) pair and list the outstanding loans.

    Args:
        transactions: The whole ledger
        students: Students to resolve names
        books: Books to resolve titles/codes
        today: Reference day for days_outstanding
        tiebreak: Order of same-day entries. "fetch_order" keeps the order
            they were given in; "created_at" orders them by creation time.

    Returns:
        One PendingReturn per outstanding pair, in no particular order
    """
    entries = list(transactions)
    if tiebreak == "created_at":
        entries.sort(key=lambda t: (parse_ledger_date(t.date), t.created_at))
    else:
        # sort() is stable: same-day entries keep their given order
        entries.sort(key=lambda t: parse_ledger_date(t.date))

    last_by_pair: dict[tuple[str, str], TransactionRecord] = {}
    for transaction in entries:
        last_by_pair[(transaction.student_id, transaction.book_id)] = transaction

    names = {s.id: s.name for s in students}
    book_map = {b.id: b for b in books}

    pending = []
    for (student_id, book_id), last in last_by_pair.items():
        if last.type != TransactionType.DELIVERY.value:
            continue

        delivered_on = parse_ledger_date(last.date)
        book = book_map.get(book_id)
        pending.append(
            PendingReturn(
                transaction_id=last.id,
                student_id=student_id,
                student_name=names.get(student_id, ""),
                book_id=book_id,
                book_title=book.title if book else "",
                book_code=book.code if book else "",
                delivery_date=delivered_on,
                days_outstanding=(today - delivered_on).days,
            )
        )

    return pending


def book_availability(
    books: Iterable[LibraryBookRecord],
    transactions: Iterable[TransactionRecord],
) -> list[BookAvailability]:
    """Count-based availability per book."""
    entries = list(transactions)
    lines = []
    for book in books:
        delivered = sum(
            1 for t in entries if t.book_id == book.id and t.type == TransactionType.DELIVERY.value
        )
        returned = sum(
            1 for t in entries if t.book_id == book.id and t.type == TransactionType.RETURN.value
        )
        lines.append(
            BookAvailability(
                book_id=book.id,
                title=book.title,
                code=book.code,
                stock=book.stock,
                delivered=delivered,
                returned=returned,
            )
        )
    return lines


def circulation_summary(
    books: Iterable[LibraryBookRecord],
    transactions: Iterable[TransactionRecord],
    students: int,
    courses: int,
) -> CirculationSummary:
    """Totals shown on the dashboard."""
    entries = list(transactions)
    return CirculationSummary(
        total_stock=sum(b.stock for b in books),
        delivered=sum(1 for t in entries if t.type == TransactionType.DELIVERY.value),
        returned=sum(1 for t in entries if t.type == TransactionType.RETURN.value),
        students=students,
        courses=courses,
    )


# =============================================================================
# STORE-BACKED OPERATIONS
# =============================================================================


def record_transaction(
    student_id: str, book_id: str, transaction_type: str, on: str | date
) -> TransactionRecord:
    """Append a delivery or return to the ledger.

    Raises:
        InvalidTransactionError: Unknown type, bad date, or unknown student/book
    """
    try:
        kind = TransactionType(transaction_type)
    except ValueError:
        raise InvalidTransactionError(
            f"Tipo de transação inválido: '{transaction_type}' (use delivery ou return)"
        ) from None

    day = on if isinstance(on, date) else parse_ledger_date(on)

    if students_repository.get_student(student_id) is None:
        raise InvalidTransactionError(f"Aluno não encontrado: '{student_id}'")
    if library_repository.get_book(book_id) is None:
        raise InvalidTransactionError(f"Livro não encontrado: '{book_id}'")

    transaction = library_repository.insert_transaction(
        student_id, book_id, kind.value, day.isoformat()
    )
    logger.info(
        "ledger.transaction_recorded",
        transaction_id=transaction.id,
        type=kind.value,
        student_id=student_id,
        book_id=book_id,
    )
    return transaction


def pending_returns(today: date | None = None) -> list[PendingReturn]:
    """Outstanding loans over the whole stored ledger."""
    transactions = library_repository.list_transactions()
    students = students_repository.get_students({t.student_id for t in transactions})
    books = library_repository.list_books()

    pending = compute_pending_returns(
        transactions,
        students,
        books,
        today or date.today(),
        tiebreak=load_app_config().ledger.tiebreak,
    )
    logger.info("ledger.pending_returns", transactions=len(transactions), pending=len(pending))
    return pending


def inventory() -> list[BookAvailability]:
    """Availability of every stored book."""
    return book_availability(library_repository.list_books(), library_repository.list_transactions())


def dashboard_summary() -> CirculationSummary:
    """Dashboard totals over the stored data."""
    return circulation_summary(
        library_repository.list_books(),
        library_repository.list_transactions(),
        students=len(students_repository.list_students()),
        courses=len(store.select_where("courses")),
    )

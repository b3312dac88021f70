"""Repository functions for library books and the lending ledger.

book_transactions is append-only: this module offers no update or delete
for it. A mistaken delivery is corrected by recording a return.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from classbook.db import store

logger = structlog.get_logger(__name__)


@dataclass
class LibraryBookRecord:
    """Library book from database."""

    id: str
    title: str
    user_id: str
    code: str = ""
    author: str = ""
    category: str = ""
    stock: int = 0
    created_at: str = ""


@dataclass
class TransactionRecord:
    """One ledger entry: a delivery or a return of a book to a student."""

    id: str
    student_id: str
    book_id: str
    type: str
    date: str
    created_at: str = ""


def create_book(
    title: str,
    user_id: str,
    code: str = "",
    author: str = "",
    category: str = "",
    stock: int = 0,
) -> LibraryBookRecord:
    """Insert a new book."""
    row = store.insert(
        "library_books",
        {
            "title": title,
            "user_id": user_id,
            "code": code,
            "author": author,
            "category": category,
            "stock": stock,
        },
    )
    logger.debug("library.book_inserted", book_id=row["id"])
    return _row_to_book(row)


def list_books() -> list[LibraryBookRecord]:
    """All books ordered by title."""
    return [_row_to_book(row) for row in store.select_where("library_books", order_by="title")]


def get_book(book_id: str) -> LibraryBookRecord | None:
    """Get book by ID, None if not found."""
    rows = store.select_where("library_books", {"id": book_id})
    return _row_to_book(rows[0]) if rows else None


def insert_transaction(
    student_id: str, book_id: str, transaction_type: str, date: str
) -> TransactionRecord:
    """Append a ledger entry."""
    row = store.insert(
        "book_transactions",
        {
            "student_id": student_id,
            "book_id": book_id,
            "type": transaction_type,
            "date": date,
        },
    )
    logger.debug(
        "library.transaction_inserted",
        transaction_id=row["id"],
        type=transaction_type,
    )
    return _row_to_transaction(row)


def list_transactions() -> list[TransactionRecord]:
    """The whole ledger in the order entries were written."""
    rows = store.select_where("book_transactions", order_by=("created_at", "rowid"))
    return [_row_to_transaction(row) for row in rows]


def _row_to_book(row: dict) -> LibraryBookRecord:
    """Convert database row to LibraryBookRecord."""
    return LibraryBookRecord(
        id=row["id"],
        title=row["title"],
        user_id=row["user_id"],
        code=row.get("code") or "",
        author=row.get("author") or "",
        category=row.get("category") or "",
        stock=int(row.get("stock") or 0),
        created_at=row["created_at"],
    )


def _row_to_transaction(row: dict) -> TransactionRecord:
    """Convert database row to TransactionRecord."""
    return TransactionRecord(
        id=row["id"],
        student_id=row["student_id"],
        book_id=row["book_id"],
        type=row["type"],
        date=row["date"],
        created_at=row["created_at"],
    )

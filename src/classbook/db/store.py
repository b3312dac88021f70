"""Generic record operations over the SQLite schema.

The rest of the package talks to the database through these functions:

- insert / insert_many: create rows (ids generated when missing)
- upsert / upsert_many: insert or overwrite on a composite key
- update_where: overwrite columns of matching rows
- delete_where: delete rows matching every given field
- select_where: filtered, ordered select
- select_joined: select with nested related rows

Table and column names are checked against the known schema before any
SQL is built; values always travel as parameters.
"""

from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass
from typing import Any, Iterable

import structlog

from classbook.db.database import get_db

logger = structlog.get_logger(__name__)

TABLES: dict[str, tuple[str, ...]] = {
    "academic_terms": ("id", "name", "is_archived", "created_at", "user_id"),
    "courses": ("id", "term_id", "name", "schedule", "created_at"),
    "students": (
        "id",
        "name",
        "matricula",
        "phone",
        "email",
        "created_at",
        "user_id",
    ),
    "enrollments": ("id", "course_id", "student_id", "created_at"),
    "course_modules": ("id", "course_id", "name", "order_index", "created_at"),
    "module_columns": (
        "id",
        "module_id",
        "name",
        "type",
        "order_index",
        "created_at",
    ),
    "academic_records": ("id", "enrollment_id", "column_id", "value", "updated_at"),
    "library_books": (
        "id",
        "code",
        "title",
        "author",
        "category",
        "stock",
        "user_id",
        "created_at",
    ),
    "book_transactions": ("id", "student_id", "book_id", "type", "date", "created_at"),
    "attendance": ("id", "student_id", "course_id", "date", "status", "created_at"),
}


class StoreError(Exception):
    """Raised for operations on unknown tables or columns."""

    pass


@dataclass(frozen=True)
class Relation:
    """A related table to nest into selected rows.

    With many=False, foreign_key is a column of the parent row pointing at
    the related row's id and the nested value is a dict (or None).
    With many=True, foreign_key is a column of the related table pointing
    at the parent id and the nested value is a list.
    """

    name: str
    table: str
    foreign_key: str
    many: bool = False
    order_by: str | tuple[str, ...] | None = None


def _check(table: str, columns: Iterable[str] = ()) -> None:
    known = TABLES.get(table)
    if known is None:
        raise StoreError(f"Tabela desconhecida: {table}")
    unknown = [c for c in columns if c not in known]
    if unknown:
        raise StoreError(f"Colunas desconhecidas em {table}: {', '.join(unknown)}")


def _where(
    filters: dict[str, Any] | None,
    ilike: dict[str, str] | None = None,
    ilike_any: dict[str, str] | None = None,
) -> tuple[str, list[Any]]:
    """Build a WHERE clause; list/tuple/set values become IN (...).

    ilike patterns must all match; ilike_any patterns are ORed together.
    """
    clauses: list[str] = []
    params: list[Any] = []

    for column, value in (filters or {}).items():
        if isinstance(value, (list, tuple, set, frozenset)):
            values = list(value)
            if not values:
                clauses.append("0")
                continue
            placeholders = ", ".join("?" for _ in values)
            clauses.append(f"{column} IN ({placeholders})")
            params.extend(values)
        elif value is None:
            clauses.append(f"{column} IS NULL")
        else:
            clauses.append(f"{column} = ?")
            params.append(value)

    for column, pattern in (ilike or {}).items():
        clauses.append(f"LOWER({column}) LIKE LOWER(?)")
        params.append(pattern)

    if ilike_any:
        alternatives = []
        for column, pattern in ilike_any.items():
            alternatives.append(f"LOWER({column}) LIKE LOWER(?)")
            params.append(pattern)
        clauses.append("(" + " OR ".join(alternatives) + ")")

    if not clauses:
        return "", params
    return " WHERE " + " AND ".join(clauses), params


def _fetch_by_id(conn: sqlite3.Connection, table: str, row_id: str) -> dict[str, Any]:
    row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,)).fetchone()
    return dict(row) if row is not None else {}


def table_columns(table: str) -> set[str]:
    """Columns actually present in the live database table."""
    _check(table)
    with get_db() as conn:
        rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {row["name"] for row in rows}


def insert(table: str, fields: dict[str, Any]) -> dict[str, Any]:
    """Insert one row and return it as stored (defaults included).

    Raises:
        StoreError: Unknown table or column
        sqlite3.IntegrityError: Constraint violation
    """
    return insert_many(table, [fields])[0]


def insert_many(table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Insert several rows in one transaction."""
    if not rows:
        return []

    created: list[dict[str, Any]] = []
    with get_db() as conn:
        for fields in rows:
            values = dict(fields)
            values.setdefault("id", str(uuid.uuid4()))
            _check(table, values)

            columns = list(values)
            placeholders = ", ".join("?" for _ in columns)
            conn.execute(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                [values[c] for c in columns],
            )
            created.append(_fetch_by_id(conn, table, values["id"]))

    logger.debug("store.inserted", table=table, count=len(created))
    return created


def upsert(
    table: str,
    fields: dict[str, Any],
    conflict_keys: tuple[str, ...],
    newer_column: str | None = None,
) -> dict[str, Any]:
    """Insert a row or overwrite the one sharing conflict_keys.

    Args:
        table: Table name
        fields: Column values; must include every conflict key
        conflict_keys: Columns of a UNIQUE constraint
        newer_column: When given, an existing row is only overwritten if the
            incoming value of this column is >= the stored one

    Returns:
        The row as stored after the operation
    """
    return upsert_many(table, [fields], conflict_keys, newer_column)[0]


def upsert_many(
    table: str,
    rows: list[dict[str, Any]],
    conflict_keys: tuple[str, ...],
    newer_column: str | None = None,
) -> list[dict[str, Any]]:
    """Upsert several rows in one transaction."""
    if not rows:
        return []

    _check(table, conflict_keys)
    if newer_column:
        _check(table, (newer_column,))

    stored: list[dict[str, Any]] = []
    with get_db() as conn:
        for fields in rows:
            values = dict(fields)
            values.setdefault("id", str(uuid.uuid4()))
            _check(table, values)

            missing = [k for k in conflict_keys if k not in values]
            if missing:
                raise StoreError(f"Chave de conflito ausente: {', '.join(missing)}")

            columns = list(values)
            updates = [c for c in columns if c not in conflict_keys and c != "id"]
            placeholders = ", ".join("?" for _ in columns)
            sql = (
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
                f"ON CONFLICT({', '.join(conflict_keys)}) "
            )
            if updates:
                sql += "DO UPDATE SET " + ", ".join(f"{c} = excluded.{c}" for c in updates)
                if newer_column:
                    sql += f" WHERE excluded.{newer_column} >= {table}.{newer_column}"
            else:
                sql += "DO NOTHING"

            conn.execute(sql, [values[c] for c in columns])

            where, params = _where({k: values[k] for k in conflict_keys})
            row = conn.execute(f"SELECT * FROM {table}{where}", params).fetchone()
            stored.append(dict(row))

    logger.debug("store.upserted", table=table, count=len(stored))
    return stored


def update_where(table: str, values: dict[str, Any], match: dict[str, Any]) -> int:
    """Overwrite columns of the rows matching every field in match.

    Returns:
        Number of updated rows
    """
    if not match:
        raise StoreError("update_where exige pelo menos um filtro")
    if not values:
        return 0
    _check(table, list(values) + list(match))

    where, params = _where(match)
    assignments = ", ".join(f"{c} = ?" for c in values)
    with get_db() as conn:
        cursor = conn.execute(
            f"UPDATE {table} SET {assignments}{where}",
            list(values.values()) + params,
        )

    logger.debug("store.updated", table=table, count=cursor.rowcount)
    return cursor.rowcount


def delete_where(table: str, match: dict[str, Any]) -> int:
    """Delete rows matching every field in match.

    An empty match is refused rather than deleting the whole table.

    Returns:
        Number of deleted rows
    """
    if not match:
        raise StoreError("delete_where exige pelo menos um filtro")
    _check(table, match)

    where, params = _where(match)
    with get_db() as conn:
        cursor = conn.execute(f"DELETE FROM {table}{where}", params)

    logger.debug("store.deleted", table=table, count=cursor.rowcount)
    return cursor.rowcount


def select_where(
    table: str,
    filters: dict[str, Any] | None = None,
    order_by: str | tuple[str, ...] | None = None,
    descending: bool = False,
    limit: int | None = None,
    ilike: dict[str, str] | None = None,
    ilike_any: dict[str, str] | None = None,
) -> list[dict[str, Any]]:
    """Select rows matching equality (or IN) filters.

    Rows without an explicit order come back in insertion order.
    """
    _check(table, [*(filters or {}), *(ilike or {}), *(ilike_any or {})])

    if order_by is None:
        order = ("rowid",)
    elif isinstance(order_by, str):
        order = (order_by,)
    else:
        order = tuple(order_by)
    _check(table, [c for c in order if c != "rowid"])

    where, params = _where(filters, ilike, ilike_any)
    direction = " DESC" if descending else ""
    sql = f"SELECT * FROM {table}{where} ORDER BY " + ", ".join(
        f"{c}{direction}" for c in order
    )
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)

    with get_db() as conn:
        rows = conn.execute(sql, params).fetchall()

    return [dict(row) for row in rows]


def select_joined(
    table: str,
    relations: list[Relation],
    filters: dict[str, Any] | None = None,
    order_by: str | tuple[str, ...] | None = None,
) -> list[dict[str, Any]]:
    """Select rows and nest related rows under each relation's name."""
    rows = select_where(table, filters, order_by=order_by)
    if not rows:
        return rows

    for relation in relations:
        if relation.many:
            _check(relation.table, (relation.foreign_key,))
            parent_ids = [row["id"] for row in rows]
            children = select_where(
                relation.table,
                {relation.foreign_key: parent_ids},
                order_by=relation.order_by,
            )
            grouped: dict[str, list[dict[str, Any]]] = {pid: [] for pid in parent_ids}
            for child in children:
                grouped[child[relation.foreign_key]].append(child)
            for row in rows:
                row[relation.name] = grouped[row["id"]]
        else:
            _check(table, (relation.foreign_key,))
            related_ids = {
                row[relation.foreign_key]
                for row in rows
                if row[relation.foreign_key] is not None
            }
            related = {
                r["id"]: r for r in select_where(relation.table, {"id": related_ids})
            }
            for row in rows:
                row[relation.name] = related.get(row[relation.foreign_key])

    return rows

"""Core business logic.

Modules:
- grid: Sparse academic-records grid and optimistic cell editing
- ledger: Lending ledger reconciliation
- attendance: Attendance cycle and statistics
- sheet_importer: Spreadsheet import orchestrator
- exports: CSV exports of a course
"""

__all__ = [
    "grid",
    "ledger",
    "attendance",
    "sheet_importer",
    "exports",
]

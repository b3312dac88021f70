"""Database module for SQLite persistence.

Provides:
- Database connection management
- Schema initialization with additive migrations
- Generic record operations (store)
- Repository functions per table group
"""

from classbook.db.database import get_db, init_db

__all__ = ["get_db", "init_db"]

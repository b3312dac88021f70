"""Open attendance boards of the running API process.

A toggle must see the in-flight keys of earlier toggles on the same
course, so boards are kept per course instead of being rebuilt per request.
"""

from __future__ import annotations

import asyncio

import structlog

from classbook.core.attendance import AttendanceBoard

logger = structlog.get_logger(__name__)


class BoardManager:
    """Keeps one AttendanceBoard per course."""

    def __init__(self):
        self._boards: dict[str, AttendanceBoard] = {}
        self._lock = asyncio.Lock()

    async def get_board(self, course_id: str) -> AttendanceBoard:
        """Board of a course, loading its marks on first use."""
        async with self._lock:
            board = self._boards.get(course_id)
            if board is None:
                board = await AttendanceBoard.open(course_id)
                self._boards[course_id] = board
                logger.debug("boards.opened", course_id=course_id, marks=len(board.marks))
            return board

    def count(self) -> int:
        return len(self._boards)


# Global board manager instance
_board_manager: BoardManager | None = None


def get_board_manager() -> BoardManager:
    """Get the global board manager instance."""
    global _board_manager
    if _board_manager is None:
        _board_manager = BoardManager()
    return _board_manager


def reset_board_manager() -> None:
    """Reset the global board manager (for testing)."""
    global _board_manager
    _board_manager = None

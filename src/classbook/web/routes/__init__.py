"""Route handlers for the Web API."""

from classbook.web.routes.attendance import router as attendance_router
from classbook.web.routes.books import router as books_router
from classbook.web.routes.courses import router as courses_router
from classbook.web.routes.health import router as health_router
from classbook.web.routes.imports import router as imports_router
from classbook.web.routes.modules import router as modules_router
from classbook.web.routes.students import router as students_router
from classbook.web.routes.terms import router as terms_router

__all__ = [
    "attendance_router",
    "books_router",
    "courses_router",
    "health_router",
    "imports_router",
    "modules_router",
    "students_router",
    "terms_router",
]

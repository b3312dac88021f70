"""FastAPI application factory.

Main entry point for the classbook Web API.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from classbook import __version__
from classbook.config import load_app_config
from classbook.db import init_db
from classbook.web.boards import reset_board_manager
from classbook.web.routes import (
    attendance_router,
    books_router,
    courses_router,
    health_router,
    imports_router,
    modules_router,
    students_router,
    terms_router,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    # Startup
    db_path = Path(load_app_config().database.path)
    init_db(db_path)
    reset_board_manager()
    logger.info("api_startup", db_path=str(db_path.absolute()))
    yield
    # Shutdown
    reset_board_manager()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Classbook API",
        description="Academic records, library lending and attendance",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware for web clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health_router)
    app.include_router(terms_router)
    app.include_router(courses_router)
    app.include_router(modules_router)
    app.include_router(attendance_router)
    app.include_router(students_router)
    app.include_router(books_router)
    app.include_router(imports_router)

    return app


# Default app instance for uvicorn
app = create_app()

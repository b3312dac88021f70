"""Module endpoints (columns of a module)."""

from dataclasses import asdict

from fastapi import APIRouter, HTTPException, status

from classbook.core.grid import ColumnTypeUnavailableError, UnsupportedColumnTypeError, add_column
from classbook.db import academics_repository
from classbook.web.schemas import ColumnCreate, ColumnResponse

router = APIRouter(prefix="/api/modules", tags=["courses"])


@router.post(
    "/{module_id}/columns",
    response_model=ColumnResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_column(module_id: str, body: ColumnCreate) -> ColumnResponse:
    """Append a typed column (text, date or check) to a module."""
    if academics_repository.get_module(module_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Módulo '{module_id}' não encontrado",
        )

    try:
        column = add_column(module_id, body.name.strip(), body.type)
    except UnsupportedColumnTypeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ColumnTypeUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return ColumnResponse(**asdict(column))

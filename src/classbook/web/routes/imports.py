"""Spreadsheet import endpoint."""

import shutil
import tempfile
from pathlib import Path

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from classbook.core.sheet_importer import (
    SUPPORTED_FORMATS,
    ImportOptions,
    SheetImportError,
    import_spreadsheet,
)
from classbook.web.deps import current_user_id
from classbook.web.schemas import ImportResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/imports", tags=["imports"])


@router.post("", response_model=ImportResponse, status_code=status.HTTP_201_CREATED)
async def upload_spreadsheet(
    file: UploadFile = File(...),
    reuse_existing_students: bool = False,
    strict_columns: bool = False,
    user_id: str = Depends(current_user_id),
) -> ImportResponse:
    """Import the first sheet of an uploaded workbook or CSV as a new term."""
    suffix = Path(file.filename or "").suffix.lower()
    if suffix not in SUPPORTED_FORMATS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Formato não suportado: '{suffix or file.filename}'",
        )

    progress: list[str] = []
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / f"upload{suffix}"
        with open(path, "wb") as out:
            shutil.copyfileobj(file.file, out)

        try:
            result = import_spreadsheet(
                path,
                user_id,
                on_progress=progress.append,
                options=ImportOptions(
                    reuse_existing_students=reuse_existing_students,
                    strict_columns=strict_columns,
                ),
            )
        except SheetImportError as e:
            logger.warning("api.import_failed", filename=file.filename, error=str(e))
            raise HTTPException(
                status_code=422, detail=str(e)
            )

    return ImportResponse(**result.to_dict(), progress=progress)

"""Request dependencies shared by the routers."""

from fastapi import Header, HTTPException, status


async def current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Owner id of the request, taken from the X-User-Id header.

    Raises:
        HTTPException: 401 when the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Cabeçalho X-User-Id obrigatório",
        )
    return x_user_id.strip()

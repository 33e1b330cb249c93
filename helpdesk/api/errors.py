from __future__ import annotations

from fastapi import HTTPException, status

from helpdesk.tickets.errors import (
    ConflictError,
    InvalidTicketError,
    NotFoundError,
    PermissionDeniedError,
    TerminalLevelError,
    TicketServiceError,
)


def to_http_exception(exc: TicketServiceError) -> HTTPException:
    """Map a domain error onto the HTTP status the API reports for it."""

    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": str(exc), "action": exc.action.value},
        )
    if isinstance(exc, InvalidTicketError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, (TerminalLevelError, ConflictError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))

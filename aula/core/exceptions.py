"""
Error taxonomy shared by every router.

All errors are HTTPException subclasses so FastAPI renders them with the
right status code wherever they are raised.
"""

import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Token inválido o expirado"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(HTTPException):
    def __init__(self, detail: str = "Acceso denegado"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class ValidationError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConflictError(HTTPException):
    def __init__(self, detail: str, field: str | None = None):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)
        self.field = field


class DependencyConflictError(ConflictError):
    def __init__(self, dependent: str, count: int | None = None, detail: str | None = None):
        if detail is None:
            detail = f"No se puede eliminar: existen {dependent} asociados"
            if count is not None:
                detail = f"{detail} ({count})"
        super().__init__(detail=detail, field=dependent)
        self.dependent = dependent
        self.count = count


class MailDeliveryError(HTTPException):
    def __init__(self, detail: str = "Error al procesar la solicitud"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def integrity_conflict(exc: IntegrityError, messages: dict[str, str], default: str) -> ConflictError:
    """
    Translate a unique/FK violation into a ConflictError.

    `messages` maps a fragment of the constraint name (or of the column list
    the driver reports) to a user-facing message naming the field.
    """
    text = str(exc.orig).lower()
    for fragment, message in messages.items():
        if fragment.lower() in text:
            return ConflictError(message, field=fragment)
    logger.warning("Unmapped integrity error: %s", text)
    return ConflictError(default)

"""
Taxonomía de errores de negocio.

Cada error es un HTTPException con un `kind` estable, de modo que los
servicios siguen lanzando excepciones HTTP como el resto de la API y los
handlers registrados en la aplicación los serializan como
{"kind": ..., "detail": ...}.
"""
import logging
from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(HTTPException):
    kind = "Error"
    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: Any = None, headers: Optional[dict] = None):
        super().__init__(
            status_code=self.status_code_default,
            detail=detail if detail is not None else self.kind,
            headers=headers,
        )


class ValidationError(AppError):
    kind = "ValidationError"


class ReferenceMismatch(AppError):
    kind = "ReferenceMismatch"


class Unauthenticated(AppError):
    kind = "Unauthenticated"
    status_code_default = status.HTTP_401_UNAUTHORIZED

    def __init__(self, detail: Any = "No se pudieron validar las credenciales"):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(AppError):
    kind = "Forbidden"
    status_code_default = status.HTTP_403_FORBIDDEN


class NotFound(AppError):
    kind = "NotFound"
    status_code_default = status.HTTP_404_NOT_FOUND


class InvalidState(AppError):
    kind = "InvalidState"


class InvalidTransition(AppError):
    kind = "InvalidTransition"


class InsufficientStock(AppError):
    kind = "InsufficientStock"


class Conflict(AppError):
    kind = "Conflict"
    status_code_default = status.HTTP_409_CONFLICT


class ServiceError(AppError):
    """Fallo inesperado de persistencia; el detalle interno solo va al log."""
    kind = "InternalError"
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} on {request.method} {request.url.path}: {exc.detail}")
    else:
        logger.info(f"{exc.kind} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"kind": exc.kind, "detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "kind": ValidationError.kind,
            "detail": "Datos de entrada inválidos",
            "errors": errors,
        },
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

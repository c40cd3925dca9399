"""
Errores de dominio compartidos por los módulos de precios, cotizaciones y pedidos.

Los servicios lanzan estos errores; los handlers registrados en app.main
los convierten en respuestas JSON {"detail": ...}.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base de los errores de negocio"""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Entrada mal formada o fuera de rango"""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(DomainError):
    """El recurso referenciado no existe"""

    status_code = status.HTTP_404_NOT_FOUND


class StateError(ValidationError):
    """Mutación sobre un documento finalizado o anulado"""

    status_code = status.HTTP_409_CONFLICT


class ConflictError(DomainError):
    """El estado leído por el cliente ya no coincide con el persistido"""

    status_code = status.HTTP_409_CONFLICT


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_exception_handlers(app) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)

"""Errores de dominio y handler para FastAPI"""
import logging
from typing import Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Error base. Se responde como {"error": message} con status_code."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidAmountError(ValidationError):
    pass


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class ConfigurationError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ExternalServiceError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY


class TokenGenerationError(ExternalServiceError):
    """generate_qr_token() falló; la fila queda sin modificar"""


class PersistenceError(ExternalServiceError):
    """Falló la escritura del token; el token generado se descarta"""


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} en {request.url.path}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} en {request.url.path}: {exc.message}")

    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Errores de body/query de pydantic con el mismo formato {"error": ...}"""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        message = "Solicitud inválida"

    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})

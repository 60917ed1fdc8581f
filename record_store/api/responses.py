from typing import Any, Generic, Optional, TypeVar
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException
from shared.core import get_logger
from record_store.domain import messages
from record_store.domain.exceptions import RecordStoreError

logger = get_logger(__name__)

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by every endpoint, success or failure."""
    status: int
    message: str
    data: Optional[T] = None
    error: Optional[dict] = None


def _error(status_code: int, message: str, error: dict, headers: Optional[dict] = None) -> JSONResponse:
    body = {"status": status_code, "message": message, "data": None, "error": error}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


async def record_store_error_handler(request: Request, exc: RecordStoreError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}", exc_info=exc)
    return _error(exc.status_code, exc.message, exc.to_dict())


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail), {"code": f"HTTP_{exc.status_code}"}, getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(
        422,
        "Request validation failed",
        {"code": "VALIDATION_ERROR", "errors": exc.errors()},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, messages.INTERNAL_SERVER, {"code": "INTERNAL_ERROR"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RecordStoreError, record_store_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

"""
Errores base y handlers globales para respuestas de error consistentes.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


class AppError(Exception):
    """Clase base para las excepciones de la aplicación."""

    def __init__(self, message: str, status_code: int = 500, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


def _req_id(request: Request) -> str | None:
    return getattr(getattr(request, "state", object()), "request_id", None)


def _body(request: Request, message: str, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"message": message}
    body.update({k: v for k, v in extra.items() if v})
    rid = _req_id(request)
    if rid:
        body["request_id"] = rid
    return body


def register_exception_handlers(app: FastAPI) -> None:
    log = logging.getLogger("schedsync.errors")

    @app.exception_handler(AppError)
    async def _app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            log.error("AppError status=%s request_id=%s: %s", exc.status_code, _req_id(request), exc.message)
        return JSONResponse(status_code=exc.status_code, content=_body(request, exc.message, details=exc.details))

    @app.exception_handler(StarletteHTTPException)
    async def _http_exc_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content=_body(request, exc.detail or "HTTP error"))

    @app.exception_handler(RequestValidationError)
    async def _validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=422, content=_body(request, "Validation error", errors=jsonable_encoder(exc.errors())))

    @app.exception_handler(Exception)
    async def _generic_handler(request: Request, exc: Exception):
        rid = _req_id(request)
        log.exception("Unhandled error request_id=%s", rid)
        return JSONResponse(status_code=500, content=_body(request, "Internal server error"))

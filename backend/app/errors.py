from __future__ import annotations
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from loguru import logger

from .geom import AreaError


def _error_response(status_code: int, error: str, detail=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "detail": detail})


async def area_exception_handler(request: Request, exc: AreaError):
    logger.warning(f"[{exc.kind}] {exc}")
    return _error_response(422, exc.kind, str(exc))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"[VALIDATION] {exc.errors()}")
    return _error_response(422, "ValidationError", jsonable_errors(exc))


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"[HTTP] {exc.status_code} - {exc.detail}")
    return _error_response(exc.status_code, "HTTPError", str(exc.detail))


def jsonable_errors(exc: RequestValidationError):
    # ctx pode trazer a exceção levantada, que não é serializável
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AreaError, area_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

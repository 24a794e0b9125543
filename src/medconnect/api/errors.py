"""Exception handlers — every failure leaves as {success: false, message}.

Learn: Services raise AppError subclasses; this module is the only place
that turns exceptions into HTTP responses.

- operational AppError    → its own status and message, verbatim
- RequestValidationError  → 400 with per-field messages
- IntegrityError          → 409 (a unique constraint fired)
- anything else           → logged in full, generic 500 to the client
  (development mode adds the traceback to the body)
"""

import traceback

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from medconnect.config import settings
from medconnect.errors import AppError, ValidationFailed

logger = structlog.get_logger()

GENERIC_MESSAGE = "Something went wrong!"


def _error_body(message: str, **extra) -> dict:
    return {"success": False, "message": message, **extra}


def _internal_response(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "medconnect.unhandled_error",
        path=request.url.path,
        method=request.method,
        error=repr(exc),
        exc_info=exc,
    )
    extra = {}
    if settings.is_development:
        extra["error"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    return JSONResponse(status_code=500, content=_error_body(GENERIC_MESSAGE, **extra))


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if not exc.is_operational:
        return _internal_response(request, exc)

    extra = {}
    errors = getattr(exc, "errors", None)
    if errors:
        extra["errors"] = errors
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, **extra),
        headers=exc.headers,
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        # Drop the leading "body"/"query"/"path" segment.
        loc = [str(part) for part in err.get("loc", ())][1:] or ["request"]
        errors.setdefault(".".join(loc), []).append(err.get("msg", "Invalid value"))
    return await app_error_handler(request, ValidationFailed(errors=errors))


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("medconnect.integrity_error", path=request.url.path, error=str(exc.orig))
    return JSONResponse(status_code=409, content=_error_body("Resource already exists"))


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Route {request.url.path} not found"
    else:
        message = str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(message),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return _internal_response(request, exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

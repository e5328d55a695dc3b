"""
JSON error envelope shared by every endpoint:

    {"success": false, "errors": [{"msg": ..., "code": ..., "details": ...}]}

Domain errors carry their own status and code; request validation errors list
one entry per offending field.
"""
import logging
from typing import Union

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from appraisal.core.exceptions import AppException

logger = logging.getLogger(__name__)


def _error_response(status_code: int, errors: list, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "errors": errors}, headers=headers)


def _field_path(loc) -> str:
    # ('body', 'responses', 0, 'value') -> 'responses.0.value'
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(parts) or "request"


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": _field_path(error.get("loc", ())), "msg": error["msg"], "code": "INVALID_FIELD"}
        for error in exc.errors()
    ]
    logger.warning(f"Rejected {request.method} {request.url.path}: {len(errors)} invalid field(s)", extra={"errors": errors})
    return _error_response(422, errors)


async def app_exception_handler(request: Request, exc: AppException):
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(level, f"{exc.error_code}: {exc.message}", extra={"path": request.url.path})
    return _error_response(
        exc.status_code,
        [{"msg": exc.message, "code": exc.error_code, "details": exc.details}],
    )


async def http_exception_handler(request: Request, exc: Union[HTTPException, StarletteHTTPException]):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _error_response(exc.status_code, [{"msg": message}], headers=getattr(exc, "headers", None))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled server error", extra={"path": request.url.path})
    return _error_response(500, [{"msg": "An unexpected server error occurred."}])


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

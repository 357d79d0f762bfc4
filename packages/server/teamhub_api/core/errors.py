"""
Typed application errors and the handlers that render them into the
response envelope ``{success, message, errors}``.

Services raise these; routers never build error responses by hand.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

log = structlog.get_logger()


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "validation_error"  # 400
    UNAUTHORIZED = "unauthorized"          # 401
    FORBIDDEN = "forbidden"                # 403
    NOT_FOUND = "not_found"                # 404
    CONFLICT = "conflict"                  # 409
    INTERNAL_ERROR = "internal_error"      # 500


_DEFAULT_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
}


class AppError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = ErrorCode.INTERNAL_ERROR
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        field: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(
            status_code=self.status_code,
            detail=message or self.default_message,
            headers=headers,
        )
        self.field = field


class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.VALIDATION_ERROR
    default_message = "Validation failed"


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = ErrorCode.UNAUTHORIZED
    default_message = "Authentication required"

    def __init__(self, message: Optional[str] = None, **kwargs: Any):
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCode.FORBIDDEN
    default_message = "Insufficient permissions"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.NOT_FOUND
    default_message = "Resource not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.CONFLICT
    default_message = "Resource already exists"


# ---------------------------------------------------------------------------
# Envelope rendering
# ---------------------------------------------------------------------------

def error_body(message: str, errors: list[dict[str, Any]]) -> dict[str, Any]:
    return {"success": False, "message": message, "errors": errors}


async def app_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc, AppError):
        code = exc.code.value
        field = exc.field
    else:
        default = _DEFAULT_CODES.get(exc.status_code)
        code = default.value if default else f"http_{exc.status_code}"
        field = None

    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    entry: dict[str, Any] = {"message": message, "code": code}
    if field:
        entry["field"] = field
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message, [entry]),
        headers=getattr(exc, "headers", None),
    )


def _field_name(loc: tuple) -> Optional[str]:
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or None


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": _field_name(tuple(err.get("loc", ()))),
            "message": err.get("msg", "Invalid value"),
            "code": err.get("type", ErrorCode.VALIDATION_ERROR.value),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder(error_body("Validation failed", errors)),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error(
        "request.unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            "Internal server error",
            [{"message": "Internal server error", "code": ErrorCode.INTERNAL_ERROR.value}],
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

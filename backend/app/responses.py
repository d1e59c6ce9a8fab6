"""Response envelope and error handlers.

Every response body is either ``{success: true, data, message?}`` or
``{success: false, error: {code, message, details?}}``. Keys in ``data`` are
camelCase on the wire.
"""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

from nimmit.errors import NimmitError

from .logging_config import get_logger

logger = get_logger("nimmit.api.errors")

_HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMITED",
}


class ApiModel(BaseModel):
    """Request body accepting camelCase (or snake_case) field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def camelize(value: Any) -> Any:
    """Recursively convert dict keys to camelCase."""
    if isinstance(value, dict):
        return {to_camel(k) if isinstance(k, str) else k: camelize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [camelize(v) for v in value]
    return value


def success(data: Any = None, message: str | None = None) -> dict:
    body: dict = {"success": True, "data": camelize(data)}
    if message:
        body["message"] = message
    return body


def failure(code: str, message: str, details: Any = None) -> dict:
    error: dict = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"success": False, "error": error}


async def nimmit_error_handler(request: Request, exc: NimmitError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"{request.method} {request.url.path} | {exc.code} | {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": camelize(exc.to_dict())},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    return JSONResponse(
        status_code=exc.status_code,
        content=failure(code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    message = errors[0]["message"] if errors else "Invalid request"
    logger.warning(f"{request.method} {request.url.path} | VALIDATION_ERROR | {message}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=failure("VALIDATION_ERROR", message, {"errors": errors}),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error | {request.method} {request.url.path} | {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=failure("INTERNAL_ERROR", "Internal server error"),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NimmitError, nimmit_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

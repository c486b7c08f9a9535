"""RFC 7807 Problem Details exception handlers for FastAPI."""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException

from exambot.core.exceptions import ExamBotError, RecordNotFoundError, ScheduleStateError

_ERROR_TYPES = {
    400: "urn:exambot:error:bad-request",
    404: "urn:exambot:error:not-found",
    409: "urn:exambot:error:conflict",
    422: "urn:exambot:error:validation",
    500: "urn:exambot:error:internal-server",
    503: "urn:exambot:error:service-unavailable",
}

_ERROR_TITLES = {
    400: "Bad Request",
    404: "Not Found",
    409: "Conflict",
    422: "Validation Error",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def _problem(request: Request, status_code: int, detail: str, **extra) -> JSONResponse:
    content = {
        "success": False,
        "type": _ERROR_TYPES.get(status_code, f"urn:exambot:error:http-{status_code}"),
        "title": _ERROR_TITLES.get(status_code, "Error"),
        "status": status_code,
        "detail": detail,
        "instance": request.url.path,
        **extra,
    }
    return JSONResponse(
        status_code=status_code, content=content, media_type="application/problem+json"
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert FastAPI HTTPException to RFC 7807 Problem Details format."""
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _problem(request, exc.status_code, detail)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert Pydantic validation errors to RFC 7807 format."""
    errors = {}
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        errors[field] = error["msg"]
    return _problem(request, 422, "Request validation failed", errors=errors)


async def exambot_error_handler(request: Request, exc: ExamBotError) -> JSONResponse:
    """Map domain errors to HTTP status codes."""
    if isinstance(exc, RecordNotFoundError):
        status_code = 404
    elif isinstance(exc, ScheduleStateError):
        status_code = 409
    else:
        status_code = 500
        logger.error(f"Unhandled error on {request.url.path}: {exc.message}")
    return _problem(request, status_code, exc.message, timestamp=exc.timestamp)

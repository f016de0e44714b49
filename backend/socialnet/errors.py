import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ValidationFailed(Exception):
    """Field-level validation failure, rendered as ``{"errors": {field: [messages]}}`` with 422."""

    def __init__(self, errors: dict[str, list[str]]):
        super().__init__(errors)
        self.errors = errors

    @classmethod
    def on(cls, field: str, message: str) -> "ValidationFailed":
        return cls({field: [message]})


def _session_headers(request: Request) -> dict[str, str]:
    # set by the auth dependency once a token has been rotated for this request
    return getattr(request.state, "session_headers", None) or {}


def _field_errors(exc: RequestValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "header")]
        field = loc[-1] if loc else "base"
        msg = str(err.get("msg", "is invalid")).removeprefix("Value error, ")
        errors.setdefault(field, []).append(msg)
    return errors


async def validation_failed_handler(request: Request, exc: ValidationFailed) -> JSONResponse:
    logger.info("Validation failed on %s %s: %s", request.method, request.url.path, exc.errors)
    return JSONResponse(
        {"errors": exc.errors},
        status_code=422,
        headers=_session_headers(request),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        {"errors": _field_errors(exc)},
        status_code=422,
        headers=_session_headers(request),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    headers = dict(exc.headers or {})
    headers.update(_session_headers(request))
    return JSONResponse({"message": exc.detail}, status_code=exc.status_code, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationFailed, validation_failed_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

"""
Error taxonomy for the API and the handlers that turn it into JSON responses.

Every failure reaches the client as ``{"error": "<message>"}`` with the status
code of its category. Nothing is retried.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(AppError):
    status_code = 400


class Unauthorized(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    """Entity is absent or not visible to the caller's organization. The two are indistinguishable."""
    status_code = 404


class Conflict(AppError):
    status_code = 409


class UpstreamFailure(AppError):
    """The external LLM call failed or returned nothing usable."""
    status_code = 500


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"[{request.url.path}] {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"Invalid {field}: {first.get('msg')}" if field else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"error": message, "details": [{"loc": e.get("loc"), "msg": e.get("msg")} for e in errors]},
    )


async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"[{request.url.path}] Integrity error: {exc.orig}")
    return JSONResponse(status_code=409, content={"error": "Conflict with existing data"})


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"[{request.url.path}] Unexpected error")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

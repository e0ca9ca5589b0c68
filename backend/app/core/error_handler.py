"""
Error handling and sanitization

P2-4: Sanitize error messages to prevent internal information leakage
- Auth errors -> their own safe message and status
- Validation errors -> 400 with field details (safe to expose)
- Database errors, stack traces -> logged only, generic message to client
DEBUG adds diagnostic detail; production never does.
"""
import logging
import traceback

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.exceptions import AuthBaseError, InfrastructureError

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."


def _debug_enabled(request: Request) -> bool:
    settings = getattr(request.app.state, "settings", None)
    return bool(settings and settings.DEBUG)


async def auth_error_handler(request: Request, exc: AuthBaseError) -> JSONResponse:
    """Render domain errors with their safe message."""
    if isinstance(exc, InfrastructureError):
        logger.error(f"{exc!r} on {request.method} {request.url.path}: {exc.details}")

    content = {"error": exc.code, "message": exc.message}
    remaining = getattr(exc, "remaining_minutes", None)
    if remaining is not None:
        content["remaining_minutes"] = remaining
    if exc.details and _debug_enabled(request):
        content["details"] = exc.details

    return JSONResponse(status_code=exc.status_code, content=content)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Schema failures are client errors: 400 with the offending fields."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    first = errors[0] if errors else {"field": "", "message": "Invalid request"}
    message = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
    return JSONResponse(
        status_code=400,
        content={"error": "validation_error", "message": message, "errors": errors},
    )


class ErrorSanitizationMiddleware(BaseHTTPMiddleware):
    """
    P2-4: Middleware to catch unhandled exceptions and sanitize error responses.

    - In production: Returns generic error, logs full details
    - In development: Returns full error for debugging
    """

    async def dispatch(self, request: Request, call_next):
        try:
            response = await call_next(request)
            return response
        except HTTPException:
            # Let FastAPI handle HTTPExceptions normally
            raise
        except Exception as e:
            # Log full error with traceback
            error_id = f"{request.client.host if request.client else 'unknown'}-{id(e)}"
            logger.error(
                f"Unhandled exception [{error_id}]: {type(e).__name__}: {str(e)}\n"
                f"Path: {request.url.path}\n"
                f"Method: {request.method}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            if _debug_enabled(request):
                return JSONResponse(
                    status_code=500,
                    content={
                        "error": "internal_error",
                        "message": str(e),
                        "type": type(e).__name__,
                        "error_id": error_id,
                    }
                )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_error",
                    "message": GENERIC_ERROR_MESSAGE,
                    "error_id": error_id,
                }
            )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthBaseError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_middleware(ErrorSanitizationMiddleware)

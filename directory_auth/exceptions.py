from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AuthError(Exception):
    """Base of the error taxonomy. Carries its own HTTP status."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None,
                 extra: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}
        self.headers = headers
        super().__init__(self.message)


class ValidationError(AuthError):
    status_code = 400
    default_message = "Invalid request"


class ConflictError(AuthError):
    status_code = 400
    default_message = "Already exists"


class AuthenticationError(AuthError):
    status_code = 401
    default_message = "Invalid credentials"


class AuthorizationError(AuthError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(AuthError):
    # Missing sessions are an authentication failure from the client's side
    status_code = 401
    default_message = "Not found"


class LockedError(AuthError):
    status_code = 423
    default_message = "Too many failed attempts"


class RateLimitError(AuthError):
    status_code = 429
    default_message = "Too many requests. Please try again later."


class TransientStoreError(AuthError):
    status_code = 500
    default_message = "Storage temporarily unavailable"


class InternalError(AuthError):
    status_code = 500
    default_message = "Internal server error"


def create_error_response(error_message: str, extra: Optional[Dict[str, Any]] = None) -> dict:
    """Create a standardized error response"""
    body = {"error": error_message}
    if extra:
        body.update(extra)
    return body


async def auth_exception_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render any AuthError as {"error": message, ...extra}"""
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.message, exc.extra),
        headers=exc.headers,
    )


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are a plain 400 rather than FastAPI's 422 detail list"""
    return JSONResponse(status_code=400, content=create_error_response("Invalid request body"))

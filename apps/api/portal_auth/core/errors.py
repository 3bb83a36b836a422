"""
Authentication error taxonomy and the HTTP handlers that render it.

Every session failure is reported to the client with the same 401 payload;
the specific reason only reaches the server log.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

INVALID_SESSION_BODY = {
    "error": "invalid_session",
    "message": "Invalid or expired session",
}


class AuthError(Exception):
    """Base class for session failures surfaced as a generic 401."""

    reason = "auth_failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.reason)


class NoTokenProvided(AuthError):
    reason = "no_token_provided"


class Revoked(AuthError):
    reason = "revoked"


class NotFoundOrExpired(AuthError):
    reason = "not_found_or_expired"


class FingerprintMismatch(AuthError):
    reason = "fingerprint_mismatch"


class UserInactiveOrMissing(AuthError):
    reason = "user_inactive_or_missing"


class StoreUnavailable(Exception):
    """The durable or cache tier could not be reached."""


class PermissionDenied(Exception):
    """The authenticated identity does not satisfy a route's policy."""


async def auth_error_handler(request: Request, exc: AuthError):
    logger.info(f"Authentication rejected on {request.url.path}: {exc.reason}")
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=INVALID_SESSION_BODY,
    )


async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logger.error(f"Session store unavailable on {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "auth_system_error",
            "message": "Authentication system error. Please try again later.",
        },
    )


async def permission_denied_handler(request: Request, exc: PermissionDenied):
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={
            "error": "forbidden",
            "message": "Insufficient permissions",
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(StoreUnavailable, store_unavailable_handler)
    app.add_exception_handler(PermissionDenied, permission_denied_handler)

"""
Security utilities for password hashing and session token handling.
"""
import secrets

import bcrypt

from portal_auth.core.config import get_settings

settings = get_settings()

# Characters of a session id that may appear in logs
REDACTED_PREFIX_LENGTH = 6


def generate_session_token() -> str:
    """Create an opaque session id with 256 bits of entropy."""
    return secrets.token_urlsafe(32)


def generate_csrf_token() -> str:
    """Create the anti-CSRF token issued alongside a session."""
    return secrets.token_hex(32)


def redact_token(token: str | None) -> str:
    """
    Shorten a session id for logging.

    Only a short prefix is kept so log lines can be correlated without
    exposing a usable credential.
    """
    if not token:
        return "-"
    return token[:REDACTED_PREFIX_LENGTH] + "..."


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))

"""
Session management: fingerprinting, two-tier storage, validation and
lifecycle operations.
"""
from portal_auth.sessions.manager import SessionManager
from portal_auth.sessions.types import (
    Identity,
    RequestContext,
    Session,
    ValidationOutcome,
    ValidationResult,
)


__all__ = [
    "SessionManager",
    "Identity",
    "RequestContext",
    "Session",
    "ValidationOutcome",
    "ValidationResult",
]

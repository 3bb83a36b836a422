"""
Structured audit events for the session lifecycle.

Session ids are always redacted; fingerprints are never logged.
"""
import logging
from typing import Optional

from portal_auth.core.security import redact_token

logger = logging.getLogger("portal_auth.audit")


def log_session_event(
    event: str,
    *,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    ip: Optional[str] = None,
    outcome: str = "ok",
    level: int = logging.INFO,
    **details,
) -> None:
    fields = {
        "event": event,
        "user_id": user_id,
        "session": redact_token(session_id),
        "ip": ip,
        "outcome": outcome,
        **details,
    }
    logger.log(
        level,
        " ".join(f"{key}={value}" for key, value in fields.items()),
        extra={"audit": fields},
    )

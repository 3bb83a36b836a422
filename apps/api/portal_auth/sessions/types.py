"""
Value types shared by the session store, validator and middleware.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps read back from backends without tz support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class RequestContext:
    """The parts of an inbound request the session layer looks at."""
    user_agent: str = ""
    ip: str = ""


@dataclass(frozen=True)
class Session:
    id: str
    user_id: str
    fingerprint: str
    ip_address: str
    ip_subnet: str
    user_agent: str
    csrf_token: str
    created_at: datetime
    last_activity: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def touched(self, at: datetime) -> "Session":
        """Copy with last_activity moved forward; never moves it back."""
        if at <= self.last_activity:
            return self
        return replace(self, last_activity=at)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "fingerprint": self.fingerprint,
            "ip_address": self.ip_address,
            "ip_subnet": self.ip_subnet,
            "user_agent": self.user_agent,
            "csrf_token": self.csrf_token,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            fingerprint=data["fingerprint"],
            ip_address=data.get("ip_address") or "",
            ip_subnet=data.get("ip_subnet") or "",
            user_agent=data.get("user_agent") or "",
            csrf_token=data["csrf_token"],
            created_at=as_utc(datetime.fromisoformat(data["created_at"])),
            last_activity=as_utc(datetime.fromisoformat(data["last_activity"])),
            expires_at=as_utc(datetime.fromisoformat(data["expires_at"])),
        )


@dataclass(frozen=True)
class Identity:
    """Read-only view of a platform user, owned by the identity store."""
    id: str
    role: str
    permissions: frozenset = field(default_factory=frozenset)
    is_active: bool = True
    email: Optional[str] = None
    full_name: Optional[str] = None


class ValidationOutcome(str, Enum):
    REVOKED = "revoked"
    NOT_FOUND_OR_EXPIRED = "not_found_or_expired"
    FINGERPRINT_MISMATCH = "fingerprint_mismatch"
    VALID = "valid"


@dataclass(frozen=True)
class ValidationResult:
    outcome: ValidationOutcome
    session: Optional[Session] = None

    @property
    def is_valid(self) -> bool:
        return self.outcome is ValidationOutcome.VALID

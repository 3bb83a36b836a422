"""
One-time login codes for client accounts.

Codes are six digits, stored only as bcrypt hashes and valid for a few
minutes. A code tolerates a limited number of wrong guesses, after which
it is discarded and the client has to request a new one.
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from sqlalchemy.orm import Session

from portal_auth.core.security import hash_password, verify_password
from portal_auth.models.otp_code import OtpCode
from portal_auth.sessions.types import as_utc, utcnow

OTP_LENGTH = 6


def generate_otp() -> str:
    return f"{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}"


class OtpStatus(str, Enum):
    VERIFIED = "verified"
    MISSING = "missing"
    EXPIRED = "expired"
    INVALID = "invalid"
    LOCKED = "locked"


@dataclass
class OtpCheck:
    """Outcome of checking a submitted code."""
    status: OtpStatus
    remaining_attempts: int = 0


class OtpService:
    """Issues and checks client login codes, one pending code per email."""

    def __init__(
        self,
        db: Session,
        ttl: timedelta = timedelta(minutes=10),
        max_attempts: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.ttl = ttl
        self.max_attempts = max_attempts
        self.clock = clock

    def issue(self, email: str) -> str:
        """Create a code for ``email``, replacing any pending one. Returns the plain code."""
        now = self.clock()
        code = generate_otp()
        # Abandoned codes of every email are swept here
        self.db.query(OtpCode).filter(OtpCode.expires_at <= now).delete(synchronize_session=False)
        self.db.query(OtpCode).filter(OtpCode.email == email).delete()
        self.db.add(OtpCode(
            email=email,
            code_hash=hash_password(code),
            attempts=0,
            created_at=now,
            expires_at=now + self.ttl,
        ))
        self.db.commit()
        return code

    def verify(self, email: str, code: str) -> OtpCheck:
        """
        Check ``code`` against the pending one.

        A verified, expired or exhausted code is deleted; a wrong guess only
        counts against the remaining attempts.
        """
        record = self.db.query(OtpCode).filter(OtpCode.email == email).first()
        if record is None:
            return OtpCheck(OtpStatus.MISSING)

        if as_utc(record.expires_at) <= self.clock():
            self._discard(record)
            return OtpCheck(OtpStatus.EXPIRED)

        if record.attempts >= self.max_attempts:
            self._discard(record)
            return OtpCheck(OtpStatus.LOCKED)

        if not verify_password(code, record.code_hash):
            record.attempts += 1
            remaining = self.max_attempts - record.attempts
            if remaining <= 0:
                self._discard(record)
                return OtpCheck(OtpStatus.LOCKED)
            self.db.commit()
            return OtpCheck(OtpStatus.INVALID, remaining)

        self._discard(record)
        return OtpCheck(OtpStatus.VERIFIED)

    def _discard(self, record: OtpCode) -> None:
        self.db.delete(record)
        self.db.commit()

"""
Pending one-time login codes for client accounts.

At most one code per email; issuing a new one replaces the old.
"""
from sqlalchemy import Column, String, Integer, DateTime, Index

from portal_auth.db.base import Base


class OtpCode(Base):
    __tablename__ = "otp_codes"

    email = Column(String(255), primary_key=True)
    # bcrypt hash, the plain code is never stored
    code_hash = Column(String(255), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_otp_codes_expires", "expires_at"),
    )

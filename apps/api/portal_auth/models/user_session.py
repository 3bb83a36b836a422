"""
Durable tier of the session store.

One row per live session. Rows are deleted (not flagged) on logout,
rotation, bulk revocation and the expiry sweep.
"""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from portal_auth.db.base import Base


class UserSession(Base):
    __tablename__ = "user_sessions"

    session_token = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # sha256 hex of user-agent + IP subnet
    fingerprint = Column(String(64), nullable=False)
    ip_address = Column(String(64))
    ip_subnet = Column(String(64))
    user_agent = Column(Text, nullable=False, default="")
    csrf_token = Column(String(64), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False)
    last_activity = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index("idx_user_sessions_user", "user_id"),
        Index("idx_user_sessions_expires", "expires_at"),
    )

"""
Platform user accounts.

The session layer only reads this table; account management lives in the
user-provisioning service.
"""
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, true
from sqlalchemy.orm import relationship

from portal_auth.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False, unique=True, index=True)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(255))
    role = Column(String(50), nullable=False, server_default="client")
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_login = Column(DateTime(timezone=True))

    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")

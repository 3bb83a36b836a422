"""
SQLAlchemy models for Portal Auth.
"""
from portal_auth.models.otp_code import OtpCode
from portal_auth.models.user import User
from portal_auth.models.user_session import UserSession


__all__ = [
    "OtpCode",
    "User",
    "UserSession",
]

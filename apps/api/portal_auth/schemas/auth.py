"""
Auth-related Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class UserLogin(BaseModel):
    """Schema for login request."""
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    """Schema for the authenticated user (without password)."""
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: str
    permissions: list[str] = []


class SessionIssued(BaseModel):
    """Returned when a session is created or rotated."""
    user: UserResponse
    session_token: str
    csrf_token: str
    expires_at: datetime


class SessionInfo(BaseModel):
    """One of the caller's active sessions, id redacted."""
    id: str
    ip_address: str
    user_agent: str
    created_at: datetime
    last_activity: datetime
    expires_at: datetime
    current: bool = False


class ChangePassword(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8)


class RevokeResult(BaseModel):
    revoked: int


class MessageResponse(BaseModel):
    message: str


class ManageableRoles(BaseModel):
    roles: list[str]


class VerifySession(BaseModel):
    """Token check for collaborators that do not carry the cookie."""
    session_token: str = Field(min_length=1)


class SessionVerified(BaseModel):
    valid: bool = True
    user: UserResponse
    expires_at: datetime


class OtpRequest(BaseModel):
    """Schema for requesting a client login code."""
    email: EmailStr


class OtpVerify(BaseModel):
    email: EmailStr
    otp: str = Field(min_length=6, max_length=6, pattern=r"^\d{6}$")


class OtpIssued(BaseModel):
    message: str
    # Only filled in when DEBUG is on
    otp: Optional[str] = None

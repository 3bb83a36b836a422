"""
Authentication router: login, logout, session management and password change.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from portal_auth.core.config import get_settings
from portal_auth.core.deps import (
    AuthContext,
    authenticate_token,
    extract_session_token,
    get_current_auth,
    get_identity_store,
    get_request_context,
    get_session_manager,
)
from portal_auth.core.errors import NoTokenProvided, NotFoundOrExpired
from portal_auth.core.security import hash_password, redact_token, verify_password
from portal_auth.db.session import get_db
from portal_auth.models.user import User
from portal_auth.schemas.auth import (
    ChangePassword,
    MessageResponse,
    OtpIssued,
    OtpRequest,
    OtpVerify,
    RevokeResult,
    SessionInfo,
    SessionIssued,
    SessionVerified,
    UserLogin,
    UserResponse,
    VerifySession,
)
from portal_auth.services.otp import OtpService, OtpStatus
from portal_auth.sessions.audit import log_session_event
from portal_auth.sessions.identity import IdentityStore, identity_from_user
from portal_auth.sessions.manager import SessionManager
from portal_auth.sessions.policy import Roles
from portal_auth.sessions.types import Identity, Session as UserSessionRecord

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()


def _user_response(identity: Identity) -> UserResponse:
    return UserResponse(
        id=identity.id,
        email=identity.email,
        full_name=identity.full_name,
        role=identity.role,
        permissions=sorted(identity.permissions),
    )


def _set_session_cookie(response: Response, session: UserSessionRecord) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session.id,
        max_age=settings.SESSION_TTL_HOURS * 3600,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite=settings.SESSION_COOKIE_SAMESITE,
    )


def _clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite=settings.SESSION_COOKIE_SAMESITE,
    )


def _issued(response: Response, identity: Identity, session: UserSessionRecord) -> SessionIssued:
    _set_session_cookie(response, session)
    return SessionIssued(
        user=_user_response(identity),
        session_token=session.id,
        csrf_token=session.csrf_token,
        expires_at=session.expires_at,
    )


def _otp_service(db: Session) -> OtpService:
    return OtpService(
        db,
        ttl=timedelta(minutes=settings.OTP_TTL_MINUTES),
        max_attempts=settings.OTP_MAX_ATTEMPTS,
    )


def _stamp_login(db: Session, user: User) -> Identity:
    user.last_login = datetime.now(timezone.utc)
    db.commit()
    return identity_from_user(user)


def _authenticate(db: Session, email: str, password: str) -> Optional[Identity]:
    """Check credentials and stamp last_login. Returns None on any failure."""
    user = db.query(User).filter(User.email == email).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return _stamp_login(db, user)


def _find_active_user(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email, User.is_active.is_(True)).first()


def _client_login(db: Session, email: str) -> Optional[Identity]:
    user = _find_active_user(db, email)
    if not user or user.role != Roles.CLIENT:
        return None
    return _stamp_login(db, user)


def _change_password(db: Session, user_id: str, current_password: str, new_password: str) -> bool:
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not verify_password(current_password, user.hashed_password):
        return False

    user.hashed_password = hash_password(new_password)
    db.commit()
    return True


@router.post("/login", response_model=SessionIssued)
async def login(
    user_data: UserLogin,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    manager: SessionManager = Depends(get_session_manager),
) -> SessionIssued:
    """
    Authenticate with email and password and open a session.

    The session id is set as an http-only cookie and also returned in the
    body for clients using the ``Authorization: Session`` header.
    """
    identity = await run_in_threadpool(_authenticate, db, user_data.email, user_data.password)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    session = await manager.create(identity.id, get_request_context(request))
    return _issued(response, identity, session)


@router.post("/client/send-otp", response_model=OtpIssued)
async def send_client_otp(payload: OtpRequest, db: Session = Depends(get_db)) -> OtpIssued:
    """
    Issue a one-time login code to a client account.

    Staff accounts must use password login. Delivery of the code is left to
    the notification service; with DEBUG on the code is echoed back.
    """
    user = await run_in_threadpool(_find_active_user, db, payload.email)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Email not registered"
        )
    if user.role != Roles.CLIENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This login method is for clients only"
        )

    code = await run_in_threadpool(_otp_service(db).issue, payload.email)
    log_session_event("otp.issued", user_id=user.id)
    return OtpIssued(
        message="OTP sent to your email",
        otp=code if settings.DEBUG else None,
    )


@router.post("/client/verify-otp", response_model=SessionIssued)
async def verify_client_otp(
    payload: OtpVerify,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    manager: SessionManager = Depends(get_session_manager),
) -> SessionIssued:
    """Exchange a valid one-time code for a session."""
    check = await run_in_threadpool(_otp_service(db).verify, payload.email, payload.otp)
    if check.status is OtpStatus.LOCKED:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many failed attempts. Please request a new OTP."
        )
    if check.status is OtpStatus.INVALID:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid OTP", "remaining_attempts": check.remaining_attempts},
        )
    if check.status is OtpStatus.EXPIRED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="OTP expired")
    if check.status is not OtpStatus.VERIFIED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="OTP expired or invalid")

    identity = await run_in_threadpool(_client_login, db, payload.email)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    session = await manager.create(identity.id, get_request_context(request))
    return _issued(response, identity, session)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    """Revoke the presented session. Logging out twice is not an error."""
    token = extract_session_token(request)
    if not token:
        raise NoTokenProvided()

    await manager.revoke(token, reason="logout")
    _clear_session_cookie(response)
    return MessageResponse(message="Successfully logged out")


@router.post("/verify-session", response_model=SessionVerified)
async def verify_session(
    payload: VerifySession,
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
    identities: IdentityStore = Depends(get_identity_store),
) -> SessionVerified:
    """
    Check a session token passed in the body.

    The token is validated against this request's user-agent and address,
    so a service verifying on behalf of a browser must forward the
    browser's ``User-Agent`` (and ``X-Forwarded-For`` behind a trusted
    proxy). A mismatch revokes the session like on any other route.
    """
    auth = await authenticate_token(payload.session_token, request, manager, identities)
    return SessionVerified(user=_user_response(auth.identity), expires_at=auth.session.expires_at)


@router.get("/me", response_model=UserResponse)
async def get_me(auth: AuthContext = Depends(get_current_auth)) -> UserResponse:
    """Get the current authenticated user's profile."""
    return _user_response(auth.identity)


@router.get("/sessions", response_model=list[SessionInfo])
async def list_my_sessions(
    auth: AuthContext = Depends(get_current_auth),
    manager: SessionManager = Depends(get_session_manager),
) -> list[SessionInfo]:
    sessions = await manager.list_sessions(auth.identity.id)
    return [
        SessionInfo(
            id=redact_token(s.id),
            ip_address=s.ip_address,
            user_agent=s.user_agent,
            created_at=s.created_at,
            last_activity=s.last_activity,
            expires_at=s.expires_at,
            current=s.id == auth.session.id,
        )
        for s in sessions
    ]


@router.post("/sessions/revoke-others", response_model=RevokeResult)
async def revoke_other_sessions(
    auth: AuthContext = Depends(get_current_auth),
    manager: SessionManager = Depends(get_session_manager),
) -> RevokeResult:
    """Sign out every other device, keeping the current session."""
    revoked = await manager.revoke_all(auth.identity.id, except_id=auth.session.id)
    return RevokeResult(revoked=revoked)


@router.post("/rotate", response_model=SessionIssued)
async def rotate_session(
    request: Request,
    response: Response,
    auth: AuthContext = Depends(get_current_auth),
    manager: SessionManager = Depends(get_session_manager),
) -> SessionIssued:
    """
    Swap the current session for a new id.

    Called after privilege changes so a token issued before the change
    stops working.
    """
    session = await manager.rotate(auth.session.id, get_request_context(request))
    if session is None:
        raise NotFoundOrExpired()

    return _issued(response, auth.identity, session)


@router.post("/change-password", response_model=RevokeResult)
async def change_password(
    payload: ChangePassword,
    auth: AuthContext = Depends(get_current_auth),
    db: Session = Depends(get_db),
    manager: SessionManager = Depends(get_session_manager),
) -> RevokeResult:
    """Change the password and sign out every other session of the user."""
    changed = await run_in_threadpool(
        _change_password, db, auth.identity.id, payload.current_password, payload.new_password
    )
    if not changed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )

    revoked = await manager.revoke_all(auth.identity.id, except_id=auth.session.id)
    return RevokeResult(revoked=revoked)
